"""
Error taxonomy and result values for the service layer.

Service operations never raise for expected failures. Internally they raise
``ServiceError``; the ``service_operation`` decorator turns that into an
``Err`` value at the public boundary and turns anything unexpected into an
``INTERNAL_ERROR``.
"""

import enum
import functools
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Generic, Optional, TypeVar, Union

from pydantic import ValidationError as PydanticValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ErrorKind(str, enum.Enum):
    """Every failure a service operation can report."""

    USER_NOT_FOUND = "USER_NOT_FOUND"
    USER_INACTIVE = "USER_INACTIVE"
    INSUFFICIENT_PERMISSIONS = "INSUFFICIENT_PERMISSIONS"
    UNAUTHORIZED = "UNAUTHORIZED"
    REGION_NOT_FOUND = "REGION_NOT_FOUND"
    PLACE_NOT_FOUND = "PLACE_NOT_FOUND"
    PLACE_NOT_PUBLISHED = "PLACE_NOT_PUBLISHED"
    PLACE_ARCHIVED = "PLACE_ARCHIVED"
    CHECKIN_NOT_FOUND = "CHECKIN_NOT_FOUND"
    CHECKIN_ALREADY_DELETED = "CHECKIN_ALREADY_DELETED"
    CHECKIN_DELETED = "CHECKIN_DELETED"
    CHECKIN_TOO_FAR = "CHECKIN_TOO_FAR"
    LOCATION_VALIDATION_FAILED = "LOCATION_VALIDATION_FAILED"
    PHOTO_NOT_FOUND = "PHOTO_NOT_FOUND"
    PHOTO_LIMIT_EXCEEDED = "PHOTO_LIMIT_EXCEEDED"
    PHOTOS_UPLOAD_FAILED = "PHOTOS_UPLOAD_FAILED"
    IMAGE_NOT_FOUND = "IMAGE_NOT_FOUND"
    IMAGE_LIMIT_EXCEEDED = "IMAGE_LIMIT_EXCEEDED"
    FILE_TOO_LARGE = "FILE_TOO_LARGE"
    FILE_UPLOAD_FAILED = "FILE_UPLOAD_FAILED"
    PERMISSION_NOT_FOUND = "PERMISSION_NOT_FOUND"
    CONTENT_HAS_DEPENDENCIES = "CONTENT_HAS_DEPENDENCIES"
    ALREADY_EXISTS = "ALREADY_EXISTS"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    TRANSACTION_FAILED = "TRANSACTION_FAILED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ServiceError(Exception):
    """A failure with a specific kind and a human-readable message."""

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        cause: Optional[BaseException] = None,
        usecase: Optional[str] = None,
    ):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.cause = cause
        self.usecase = usecase

    def __repr__(self) -> str:
        return f"ServiceError({self.kind.value}, {self.message!r})"

    def to_dict(self, include_cause: bool = False) -> Dict[str, Any]:
        """
        Render the error for a caller.

        Args:
            include_cause: Attach the underlying cause (admins only)
        """
        data = {"kind": self.kind.value, "message": self.message}
        if self.usecase:
            data["usecase"] = self.usecase
        if include_cause and self.cause is not None:
            data["cause"] = f"{type(self.cause).__name__}: {self.cause}"
        return data


@dataclass(frozen=True)
class Ok(Generic[T]):
    """Successful result."""

    value: T

    @property
    def is_ok(self) -> bool:
        return True

    def unwrap(self) -> T:
        return self.value


@dataclass(frozen=True)
class Err:
    """Failed result carrying a ``ServiceError``."""

    error: ServiceError

    @property
    def is_ok(self) -> bool:
        return False

    @property
    def kind(self) -> ErrorKind:
        return self.error.kind

    def unwrap(self):
        raise self.error


Result = Union[Ok[T], Err]


def _describe_validation_error(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ())) or "input"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts) or "Invalid input"


def service_operation(usecase: str):
    """
    Wrap an async service function so it returns ``Ok``/``Err`` instead of raising.

    - ``ServiceError`` becomes ``Err`` (tagged with ``usecase``)
    - pydantic validation failures become ``VALIDATION_ERROR``
    - anything else is logged and becomes ``INTERNAL_ERROR``
    """

    def decorator(func: Callable[..., Awaitable[Any]]):
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> Result:
            try:
                return Ok(await func(*args, **kwargs))
            except ServiceError as e:
                if e.usecase is None:
                    e.usecase = usecase
                return Err(e)
            except PydanticValidationError as e:
                return Err(
                    ServiceError(
                        ErrorKind.VALIDATION_ERROR,
                        _describe_validation_error(e),
                        cause=e,
                        usecase=usecase,
                    )
                )
            except Exception as e:
                logger.exception(f"Unexpected error in {usecase}")
                return Err(
                    ServiceError(
                        ErrorKind.INTERNAL_ERROR,
                        f"Unexpected error during {usecase.replace('_', ' ')}",
                        cause=e,
                        usecase=usecase,
                    )
                )

        return wrapper

    return decorator


def coerce_enum(enum_cls, value, field: str):
    """Convert ``value`` to ``enum_cls`` or raise a VALIDATION_ERROR naming the field."""
    try:
        return enum_cls(value)
    except ValueError as e:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ServiceError(
            ErrorKind.VALIDATION_ERROR,
            f"{field}: must be one of {allowed}",
            cause=e,
        ) from e
