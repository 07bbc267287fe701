"""
Pydantic models for service request validation and responses.
"""

import re
from datetime import datetime
from typing import Optional, List

from pydantic import BaseModel, Field, ConfigDict, field_validator, model_validator

from kissa.database.models import (
    CheckinStatus,
    PlaceCategory,
    PlaceStatus,
    RegionStatus,
    UserRole,
    UserStatus,
)
from kissa.utils import constants

_URL_RE = re.compile(r"^https?://[^\s/$.?#][^\s]*$", re.IGNORECASE)
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _check_url(value: Optional[str]) -> Optional[str]:
    if value is not None and not _URL_RE.match(value):
        raise ValueError("must be an http(s) URL")
    return value


def _check_email(value: Optional[str]) -> Optional[str]:
    if value is not None and not _EMAIL_RE.match(value):
        raise ValueError("must be a valid email address")
    return value


def _reject_explicit_nulls(model: BaseModel, required: tuple) -> None:
    """Reject fields explicitly set to None when the underlying column is NOT NULL."""
    for name in required:
        if name in model.model_fields_set and getattr(model, name) is None:
            raise ValueError(f"{name} cannot be cleared")


# ============================================================================
# Shared
# ============================================================================


class Coordinates(BaseModel):
    """WGS84 latitude/longitude pair."""

    latitude: float = Field(ge=constants.MIN_LATITUDE, le=constants.MAX_LATITUDE)
    longitude: float = Field(ge=constants.MIN_LONGITUDE, le=constants.MAX_LONGITUDE)


class PlaceStats(BaseModel):
    """Aggregate figures for one place, computed from its check-ins."""

    checkin_count: int = 0
    average_rating: Optional[float] = None


# ============================================================================
# Users
# ============================================================================


class UserResponse(BaseModel):
    """User as returned by the services."""

    model_config = ConfigDict(from_attributes=True)
    id: str
    email: str
    name: str
    role: UserRole
    status: UserStatus
    created_at: Optional[datetime] = None


# ============================================================================
# Regions
# ============================================================================


class CreateRegionRequest(BaseModel):
    """Input for creating a region."""

    name: str = Field(min_length=1, max_length=constants.MAX_NAME_LENGTH)
    description: Optional[str] = Field(default=None, max_length=constants.MAX_DESCRIPTION_LENGTH)
    short_description: Optional[str] = Field(
        default=None, max_length=constants.MAX_SHORT_DESCRIPTION_LENGTH
    )
    coordinates: Optional[Coordinates] = None
    address: Optional[str] = Field(default=None, max_length=constants.MAX_ADDRESS_LENGTH)


class UpdateRegionRequest(BaseModel):
    """
    Partial region update.

    Fields left out are untouched; fields explicitly set to None are cleared.
    Identity, status and counters are not part of this model and are ignored.
    """

    name: Optional[str] = Field(default=None, min_length=1, max_length=constants.MAX_NAME_LENGTH)
    description: Optional[str] = Field(default=None, max_length=constants.MAX_DESCRIPTION_LENGTH)
    short_description: Optional[str] = Field(
        default=None, max_length=constants.MAX_SHORT_DESCRIPTION_LENGTH
    )
    coordinates: Optional[Coordinates] = None
    address: Optional[str] = Field(default=None, max_length=constants.MAX_ADDRESS_LENGTH)

    @model_validator(mode="after")
    def required_fields_not_cleared(self):
        _reject_explicit_nulls(self, ("name",))
        return self


class RegionResponse(BaseModel):
    """Region with derived counters."""

    model_config = ConfigDict(from_attributes=True)
    id: str
    name: str
    description: Optional[str] = None
    short_description: Optional[str] = None
    coordinates: Optional[Coordinates] = None
    address: Optional[str] = None
    status: RegionStatus
    created_by: str
    place_count: int = 0
    favorite_count: int = 0
    visit_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ============================================================================
# Places
# ============================================================================


class CreatePlaceRequest(BaseModel):
    """Input for creating a place inside a region."""

    region_id: str
    name: str = Field(min_length=1, max_length=constants.MAX_NAME_LENGTH)
    description: Optional[str] = Field(default=None, max_length=constants.MAX_DESCRIPTION_LENGTH)
    short_description: Optional[str] = Field(
        default=None, max_length=constants.MAX_SHORT_DESCRIPTION_LENGTH
    )
    category: PlaceCategory
    coordinates: Coordinates
    address: str = Field(max_length=constants.MAX_ADDRESS_LENGTH)
    phone: Optional[str] = Field(default=None, max_length=constants.MAX_PHONE_LENGTH)
    website: Optional[str] = None
    email: Optional[str] = None

    @field_validator("website")
    @classmethod
    def validate_website(cls, value):
        return _check_url(value)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value):
        return _check_email(value)


class UpdatePlaceRequest(BaseModel):
    """
    Partial place update.

    Fields left out are untouched; fields explicitly set to None are cleared.
    Setting ``region_id`` moves the place to another region.
    """

    region_id: Optional[str] = None
    name: Optional[str] = Field(default=None, min_length=1, max_length=constants.MAX_NAME_LENGTH)
    description: Optional[str] = Field(default=None, max_length=constants.MAX_DESCRIPTION_LENGTH)
    short_description: Optional[str] = Field(
        default=None, max_length=constants.MAX_SHORT_DESCRIPTION_LENGTH
    )
    category: Optional[PlaceCategory] = None
    coordinates: Optional[Coordinates] = None
    address: Optional[str] = Field(default=None, max_length=constants.MAX_ADDRESS_LENGTH)
    phone: Optional[str] = Field(default=None, max_length=constants.MAX_PHONE_LENGTH)
    website: Optional[str] = None
    email: Optional[str] = None

    @field_validator("website")
    @classmethod
    def validate_website(cls, value):
        return _check_url(value)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value):
        return _check_email(value)

    @model_validator(mode="after")
    def required_fields_not_cleared(self):
        _reject_explicit_nulls(
            self, ("region_id", "name", "category", "coordinates", "address")
        )
        return self


class PlaceResponse(BaseModel):
    """Place with derived counters and rating."""

    model_config = ConfigDict(from_attributes=True)
    id: str
    region_id: str
    name: str
    description: Optional[str] = None
    short_description: Optional[str] = None
    category: PlaceCategory
    coordinates: Coordinates
    address: str
    phone: Optional[str] = None
    website: Optional[str] = None
    email: Optional[str] = None
    status: PlaceStatus
    created_by: str
    visit_count: int = 0
    favorite_count: int = 0
    checkin_count: int = 0
    average_rating: Optional[float] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class PlaceListResponse(BaseModel):
    """Paginated place listing."""

    items: List[PlaceResponse]
    total_count: int
    page: int
    page_size: int


class MapLocation(BaseModel):
    """Minimal place data for map markers."""

    model_config = ConfigDict(from_attributes=True)
    id: str
    name: str
    category: PlaceCategory
    coordinates: Coordinates
    checkin_count: int = 0
    average_rating: Optional[float] = None


# ============================================================================
# Check-ins
# ============================================================================


class CheckinPhotoInput(BaseModel):
    """A photo reference supplied with a check-in."""

    url: str
    caption: Optional[str] = Field(default=None, max_length=constants.MAX_CAPTION_LENGTH)

    @field_validator("url")
    @classmethod
    def validate_url(cls, value):
        return _check_url(value)


class CreateCheckinRequest(BaseModel):
    """Input for checking in to a place."""

    place_id: str
    comment: Optional[str] = Field(default=None, max_length=constants.MAX_COMMENT_LENGTH)
    rating: Optional[int] = Field(default=None, ge=constants.MIN_RATING, le=constants.MAX_RATING)
    user_location: Coordinates
    is_private: bool = False
    photos: List[CheckinPhotoInput] = Field(default_factory=list)


class UpdateCheckinRequest(BaseModel):
    """Partial check-in update; at least one field must be supplied."""

    comment: Optional[str] = Field(default=None, max_length=constants.MAX_COMMENT_LENGTH)
    rating: Optional[int] = Field(default=None, ge=constants.MIN_RATING, le=constants.MAX_RATING)
    is_private: Optional[bool] = None


class CheckinPhotoResponse(BaseModel):
    """Stored check-in photo."""

    model_config = ConfigDict(from_attributes=True)
    id: str
    checkin_id: str
    url: str
    caption: Optional[str] = None
    display_order: int = 0
    created_at: Optional[datetime] = None


class CheckinResponse(BaseModel):
    """Check-in as returned by the services."""

    model_config = ConfigDict(from_attributes=True)
    id: str
    user_id: str
    place_id: str
    comment: Optional[str] = None
    rating: Optional[int] = None
    user_location: Optional[Coordinates] = None
    is_private: bool = False
    status: CheckinStatus
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


# ============================================================================
# Place permissions
# ============================================================================


class InviteEditorRequest(BaseModel):
    """Invite an existing user (by email) to edit a place."""

    place_id: str
    email: str
    can_edit: bool = True
    can_delete: bool = False
    custom_message: Optional[str] = Field(default=None, max_length=500)

    @field_validator("email")
    @classmethod
    def validate_email(cls, value):
        return _check_email(value.strip())


class UpdatePermissionRequest(BaseModel):
    """Change the capabilities granted by a permission row."""

    can_edit: Optional[bool] = None
    can_delete: Optional[bool] = None


class PlacePermissionResponse(BaseModel):
    """Delegated permission row. ``accepted_at`` is None until accepted."""

    model_config = ConfigDict(from_attributes=True)
    id: str
    place_id: str
    user_id: str
    can_edit: bool
    can_delete: bool
    invited_by: str
    invited_at: Optional[datetime] = None
    accepted_at: Optional[datetime] = None
