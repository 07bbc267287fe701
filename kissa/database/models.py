"""
SQLAlchemy ORM models for regions, places, check-ins and editor permissions.
"""

import enum
import uuid

from sqlalchemy import (
    Column,
    Integer,
    String,
    Text,
    Boolean,
    Float,
    DateTime,
    ForeignKey,
    UniqueConstraint,
    CheckConstraint,
    Index,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from kissa.database.db import Base


def _new_id() -> str:
    return str(uuid.uuid4())


class UserRole(str, enum.Enum):
    """User role enum. Gates content-creation capability."""

    VISITOR = "visitor"
    EDITOR = "editor"
    ADMIN = "admin"


class UserStatus(str, enum.Enum):
    """User account status enum. Only active users may mutate anything."""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class RegionStatus(str, enum.Enum):
    """Region publication status enum."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class PlaceStatus(str, enum.Enum):
    """Place publication status enum."""

    DRAFT = "draft"
    PUBLISHED = "published"
    ARCHIVED = "archived"


class PlaceCategory(str, enum.Enum):
    """Closed set of place categories."""

    RESTAURANT = "restaurant"
    CAFE = "cafe"
    HOTEL = "hotel"
    SHOPPING = "shopping"
    ENTERTAINMENT = "entertainment"
    CULTURE = "culture"
    NATURE = "nature"
    HISTORICAL = "historical"
    RELIGIOUS = "religious"
    TRANSPORTATION = "transportation"
    HOSPITAL = "hospital"
    EDUCATION = "education"
    OFFICE = "office"
    OTHER = "other"


class CheckinStatus(str, enum.Enum):
    """Check-in status enum. DELETED is terminal for soft operations."""

    ACTIVE = "active"
    HIDDEN = "hidden"
    REPORTED = "reported"
    DELETED = "deleted"


class User(Base):
    """Registered users."""

    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String(255), nullable=False, unique=True)
    name = Column(String(100), nullable=False)
    role = Column(String(20), nullable=False, default=UserRole.VISITOR.value)
    status = Column(String(20), nullable=False, default=UserStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint("role IN ('visitor', 'editor', 'admin')", name="ck_users_role"),
        CheckConstraint(
            "status IN ('active', 'suspended', 'deleted')", name="ck_users_status"
        ),
        Index("idx_users_email", "email"),
    )

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value


class Region(Base):
    """Top-level grouping of places, owned by its creator."""

    __tablename__ = "regions"

    id = Column(String(36), primary_key=True, default=_new_id)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    short_description = Column(String(300), nullable=True)
    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    address = Column(String(500), nullable=True)
    status = Column(String(20), nullable=False, default=RegionStatus.DRAFT.value)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    # Derived counters, recomputed from source rows
    place_count = Column(Integer, nullable=False, default=0)
    favorite_count = Column(Integer, nullable=False, default=0)
    visit_count = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    places = relationship("Place", back_populates="region", passive_deletes=True)
    creator = relationship("User", foreign_keys=[created_by])

    __table_args__ = (
        CheckConstraint(
            "status IN ('draft', 'published', 'archived')", name="ck_regions_status"
        ),
        Index("idx_regions_created_by", "created_by"),
        Index("idx_regions_status", "status"),
    )

    @property
    def coordinates(self):
        if self.latitude is None or self.longitude is None:
            return None
        return {"latitude": self.latitude, "longitude": self.longitude}


class Place(Base):
    """A check-in target inside a region."""

    __tablename__ = "places"

    id = Column(String(36), primary_key=True, default=_new_id)
    region_id = Column(String(36), ForeignKey("regions.id", ondelete="CASCADE"), nullable=False)
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    short_description = Column(String(300), nullable=True)
    category = Column(String(30), nullable=False)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    address = Column(String(500), nullable=False)
    phone = Column(String(20), nullable=True)
    website = Column(String(500), nullable=True)
    email = Column(String(255), nullable=True)
    status = Column(String(20), nullable=False, default=PlaceStatus.DRAFT.value)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    # Derived counters, recomputed from source rows
    visit_count = Column(Integer, nullable=False, default=0)
    favorite_count = Column(Integer, nullable=False, default=0)
    checkin_count = Column(Integer, nullable=False, default=0)
    average_rating = Column(Float, nullable=True)  # mean of active, rated check-ins
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    region = relationship("Region", back_populates="places")
    creator = relationship("User", foreign_keys=[created_by])
    checkins = relationship("Checkin", back_populates="place", passive_deletes=True)
    permissions = relationship("PlacePermission", back_populates="place", passive_deletes=True)

    __table_args__ = (
        CheckConstraint("latitude >= -90 AND latitude <= 90", name="ck_places_latitude"),
        CheckConstraint("longitude >= -180 AND longitude <= 180", name="ck_places_longitude"),
        CheckConstraint(
            "status IN ('draft', 'published', 'archived')", name="ck_places_status"
        ),
        Index("idx_places_region", "region_id"),
        Index("idx_places_created_by", "created_by"),
        Index("idx_places_status", "status"),
    )

    @property
    def coordinates(self):
        return {"latitude": self.latitude, "longitude": self.longitude}


class Checkin(Base):
    """A user's visit to a place, optionally rated."""

    __tablename__ = "checkins"

    id = Column(String(36), primary_key=True, default=_new_id)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    place_id = Column(String(36), ForeignKey("places.id", ondelete="CASCADE"), nullable=False)
    comment = Column(Text, nullable=True)
    rating = Column(Integer, nullable=True)  # 1-5 stars
    user_latitude = Column(Float, nullable=True)
    user_longitude = Column(Float, nullable=True)
    is_private = Column(Boolean, nullable=False, default=False)
    status = Column(String(20), nullable=False, default=CheckinStatus.ACTIVE.value)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    place = relationship("Place", back_populates="checkins")
    user = relationship("User", foreign_keys=[user_id])
    photos = relationship(
        "CheckinPhoto",
        back_populates="checkin",
        passive_deletes=True,
        order_by="CheckinPhoto.display_order",
    )

    __table_args__ = (
        CheckConstraint("rating IS NULL OR (rating >= 1 AND rating <= 5)", name="ck_checkins_rating_range"),
        CheckConstraint(
            "status IN ('active', 'hidden', 'reported', 'deleted')", name="ck_checkins_status"
        ),
        Index("idx_checkins_place_status", "place_id", "status"),
        Index("idx_checkins_user_created", "user_id", "created_at"),
    )

    @property
    def user_location(self):
        if self.user_latitude is None or self.user_longitude is None:
            return None
        return {"latitude": self.user_latitude, "longitude": self.user_longitude}


class CheckinPhoto(Base):
    """Photos attached to a check-in (bounded per check-in)."""

    __tablename__ = "checkin_photos"

    id = Column(String(36), primary_key=True, default=_new_id)
    checkin_id = Column(
        String(36), ForeignKey("checkins.id", ondelete="CASCADE"), nullable=False
    )
    url = Column(String(500), nullable=False)
    caption = Column(String(200), nullable=True)
    display_order = Column(Integer, nullable=False, server_default="0")
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    # Relationships
    checkin = relationship("Checkin", back_populates="photos")

    __table_args__ = (
        Index("idx_checkin_photos_checkin", "checkin_id", "display_order"),
    )


class PlacePermission(Base):
    """Delegated edit/delete capability on a place (one row per user and place)."""

    __tablename__ = "place_permissions"

    id = Column(String(36), primary_key=True, default=_new_id)
    place_id = Column(String(36), ForeignKey("places.id", ondelete="CASCADE"), nullable=False)
    user_id = Column(String(36), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    can_edit = Column(Boolean, nullable=False, default=True)
    can_delete = Column(Boolean, nullable=False, default=False)
    invited_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    invited_at = Column(DateTime(timezone=True), server_default=func.now())
    accepted_at = Column(DateTime(timezone=True), nullable=True)  # NULL means invited, not accepted

    # Relationships
    place = relationship("Place", back_populates="permissions")
    user = relationship("User", foreign_keys=[user_id])
    inviter = relationship("User", foreign_keys=[invited_by])

    __table_args__ = (
        UniqueConstraint("user_id", "place_id", name="uq_place_permissions_user_place"),
        Index("idx_place_permissions_place", "place_id"),
        Index("idx_place_permissions_user", "user_id"),
    )
