"""
Service context and unit of work.

A ``ServiceContext`` holds the collaborators every service operation needs:
the session factory, the geolocation validator, the email notifier and the
per-instance limits. Repositories are always bound to a single session, so
each unit of work gets its own ``Repositories`` bundle.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional, TypeVar

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kissa import config
from kissa.database import db
from kissa.repositories.checkin_repository import CheckinRepository
from kissa.repositories.permission_repository import PlacePermissionRepository
from kissa.repositories.photo_repository import CheckinPhotoRepository
from kissa.repositories.place_repository import PlaceRepository
from kissa.repositories.region_repository import RegionRepository
from kissa.repositories.user_repository import UserRepository
from kissa.services.email_service import SendGridEmailNotifier
from kissa.services.errors import ErrorKind, ServiceError
from kissa.services.location_service import HaversineLocationValidator

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Repositories:
    """Every repository, bound to the same session."""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.users = UserRepository(session)
        self.regions = RegionRepository(session)
        self.places = PlaceRepository(session)
        self.checkins = CheckinRepository(session)
        self.photos = CheckinPhotoRepository(session)
        self.permissions = PlacePermissionRepository(session)


class ServiceContext:
    def __init__(
        self,
        session_factory: Optional[async_sessionmaker] = None,
        location_validator=None,
        email_notifier=None,
        max_checkin_distance_meters: Optional[int] = None,
        max_photos_per_checkin: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self.location_validator = location_validator or HaversineLocationValidator()
        self.email_notifier = email_notifier or SendGridEmailNotifier()
        self.max_checkin_distance_meters = (
            max_checkin_distance_meters
            if max_checkin_distance_meters is not None
            else config.CHECKIN_DISTANCE_METERS
        )
        self.max_photos_per_checkin = (
            max_photos_per_checkin
            if max_photos_per_checkin is not None
            else config.MAX_PHOTOS_PER_CHECKIN
        )

    @property
    def session_factory(self) -> async_sessionmaker:
        # Resolved lazily so the module-level factory can be swapped out
        return self._session_factory or db.AsyncSessionLocal

    @asynccontextmanager
    async def repositories(self) -> AsyncIterator[Repositories]:
        """
        Repositories on a short-lived session for reads outside a transaction.

        Nothing written through this session is committed.
        """
        async with self.session_factory() as session:
            yield Repositories(session)

    async def with_transaction(self, fn: Callable[[Repositories], Awaitable[T]]) -> T:
        """
        Run ``fn`` inside one database transaction.

        Commits when ``fn`` returns and rolls back when it raises. A
        ``ServiceError`` raised by ``fn`` is re-raised unchanged; any other
        failure is re-raised as ``TRANSACTION_FAILED``.
        """
        try:
            async with self.session_factory() as session:
                async with session.begin():
                    return await fn(Repositories(session))
        except ServiceError:
            raise
        except Exception as e:
            logger.error(f"Transaction rolled back: {e!r}")
            raise ServiceError(
                ErrorKind.TRANSACTION_FAILED,
                "Transaction failed, no changes were saved",
                cause=e,
            ) from e
