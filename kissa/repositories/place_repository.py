"""
Place persistence, including the delegated-permission checks and listing queries.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, update, delete, func, or_
from sqlalchemy.ext.asyncio import AsyncSession

from kissa.database.models import (
    Checkin,
    CheckinPhoto,
    Place,
    PlaceCategory,
    PlacePermission,
    PlaceStatus,
)
from kissa.models.schemas import CreatePlaceRequest


@dataclass
class PlaceFilters:
    """Optional filters for place listings. Unset fields do not filter."""

    region_id: Optional[str] = None
    category: Optional[PlaceCategory] = None
    status: Optional[PlaceStatus] = None
    created_by: Optional[str] = None
    keyword: Optional[str] = None


def _escape_like(value: str) -> str:
    """Escape LIKE-special characters (%, _) so they match literally."""
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _keyword_clause(keyword: str):
    pattern = f"%{_escape_like(keyword.strip().lower())}%"
    return or_(
        func.lower(Place.name).like(pattern, escape="\\"),
        func.lower(func.coalesce(Place.description, "")).like(pattern, escape="\\"),
        func.lower(Place.address).like(pattern, escape="\\"),
    )


class PlaceRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, data: CreatePlaceRequest, created_by: str) -> Place:
        """Insert a draft place with zeroed counters and no rating."""
        place = Place(
            region_id=data.region_id,
            name=data.name,
            description=data.description,
            short_description=data.short_description,
            category=PlaceCategory(data.category).value,
            latitude=data.coordinates.latitude,
            longitude=data.coordinates.longitude,
            address=data.address,
            phone=data.phone,
            website=data.website,
            email=data.email,
            status=PlaceStatus.DRAFT.value,
            created_by=created_by,
            visit_count=0,
            favorite_count=0,
            checkin_count=0,
            average_rating=None,
        )
        self.session.add(place)
        await self.session.flush()
        await self.session.refresh(place)
        return place

    async def find_by_id(self, place_id: str) -> Optional[Place]:
        return await self.session.get(Place, place_id, populate_existing=True)

    async def update(self, place_id: str, fields: Dict[str, Any]) -> Optional[Place]:
        """
        Apply a partial update.

        Args:
            place_id: Place ID
            fields: Column values to write; ``coordinates`` is expanded to
                latitude/longitude

        Returns:
            The updated place, or None if it does not exist
        """
        values = dict(fields)
        if "coordinates" in values:
            coords = values.pop("coordinates")
            values["latitude"] = coords["latitude"]
            values["longitude"] = coords["longitude"]
        if "category" in values:
            values["category"] = PlaceCategory(values["category"]).value
        if values:
            result = await self.session.execute(
                update(Place).where(Place.id == place_id).values(**values)
            )
            if result.rowcount == 0:
                return None
        return await self.find_by_id(place_id)

    async def update_status(self, place_id: str, status: PlaceStatus) -> Optional[Place]:
        return await self.update(place_id, {"status": PlaceStatus(status).value})

    async def update_checkin_count(self, place_id: str, checkin_count: int) -> None:
        await self.session.execute(
            update(Place).where(Place.id == place_id).values(checkin_count=checkin_count)
        )

    async def update_rating(self, place_id: str, average_rating: Optional[float]) -> None:
        await self.session.execute(
            update(Place).where(Place.id == place_id).values(average_rating=average_rating)
        )

    async def increment_visit_count(self, place_id: str) -> None:
        await self.session.execute(
            update(Place)
            .where(Place.id == place_id)
            .values(visit_count=Place.visit_count + 1)
            .execution_options(synchronize_session=False)
        )

    async def count_by_region(self, region_id: str) -> int:
        result = await self.session.execute(
            select(func.count(Place.id)).where(Place.region_id == region_id)
        )
        return result.scalar_one()

    async def _has_permission(
        self, place_id: str, user_id: str, flag, require_accepted: bool
    ) -> bool:
        result = await self.session.execute(
            select(Place.created_by).where(Place.id == place_id)
        )
        created_by = result.scalar_one_or_none()
        if created_by is None:
            return False
        if created_by == user_id:
            return True

        query = select(PlacePermission.id).where(
            PlacePermission.place_id == place_id,
            PlacePermission.user_id == user_id,
            flag.is_(True),
        )
        if require_accepted:
            query = query.where(PlacePermission.accepted_at.isnot(None))
        result = await self.session.execute(query.limit(1))
        return result.scalar_one_or_none() is not None

    async def check_edit_permission(
        self, place_id: str, user_id: str, require_accepted: bool = True
    ) -> bool:
        """
        Whether the user created the place or holds a permission with can_edit.

        Args:
            place_id: Place ID
            user_id: User ID
            require_accepted: Only count permissions that have been accepted
        """
        return await self._has_permission(
            place_id, user_id, PlacePermission.can_edit, require_accepted
        )

    async def check_delete_permission(
        self, place_id: str, user_id: str, require_accepted: bool = True
    ) -> bool:
        """Whether the user created the place or holds a permission with can_delete."""
        return await self._has_permission(
            place_id, user_id, PlacePermission.can_delete, require_accepted
        )

    async def delete(self, place_id: str) -> bool:
        """
        Delete a place and its check-ins, photos and permissions.

        Returns:
            True if this call removed the place, False if it was already gone
        """
        checkin_ids = select(Checkin.id).where(Checkin.place_id == place_id)
        await self.session.execute(
            delete(CheckinPhoto).where(CheckinPhoto.checkin_id.in_(checkin_ids))
        )
        await self.session.execute(delete(Checkin).where(Checkin.place_id == place_id))
        await self.session.execute(
            delete(PlacePermission).where(PlacePermission.place_id == place_id)
        )
        result = await self.session.execute(delete(Place).where(Place.id == place_id))
        return result.rowcount > 0

    async def list(
        self, filters: Optional[PlaceFilters] = None, limit: int = 20, offset: int = 0
    ) -> Tuple[List[Place], int]:
        """
        List places matching the filters, newest first.

        Returns:
            (page of places, total number of matches)
        """
        filters = filters or PlaceFilters()
        conditions = []
        if filters.region_id is not None:
            conditions.append(Place.region_id == filters.region_id)
        if filters.category is not None:
            conditions.append(Place.category == PlaceCategory(filters.category).value)
        if filters.status is not None:
            conditions.append(Place.status == PlaceStatus(filters.status).value)
        if filters.created_by is not None:
            conditions.append(Place.created_by == filters.created_by)
        if filters.keyword:
            conditions.append(_keyword_clause(filters.keyword))

        count_result = await self.session.execute(
            select(func.count(Place.id)).where(*conditions)
        )
        total = count_result.scalar_one()

        result = await self.session.execute(
            select(Place)
            .where(*conditions)
            .order_by(Place.created_at.desc(), Place.name.asc())
            .limit(limit)
            .offset(offset)
        )
        return list(result.scalars().all()), total

    async def search(self, keyword: str, limit: int = 20) -> List[Place]:
        """Published places whose name, description or address contains the keyword."""
        result = await self.session.execute(
            select(Place)
            .where(Place.status == PlaceStatus.PUBLISHED.value, _keyword_clause(keyword))
            .order_by(Place.checkin_count.desc(), Place.name.asc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get_by_region(
        self, region_id: str, status: Optional[PlaceStatus] = None
    ) -> List[Place]:
        query = select(Place).where(Place.region_id == region_id)
        if status is not None:
            query = query.where(Place.status == PlaceStatus(status).value)
        result = await self.session.execute(query.order_by(Place.name.asc()))
        return list(result.scalars().all())

    async def get_by_creator(self, user_id: str) -> List[Place]:
        result = await self.session.execute(
            select(Place).where(Place.created_by == user_id).order_by(Place.name.asc())
        )
        return list(result.scalars().all())

    async def get_by_permission(self, user_id: str) -> List[Place]:
        """Places the user may edit through an accepted permission."""
        result = await self.session.execute(
            select(Place)
            .join(PlacePermission, PlacePermission.place_id == Place.id)
            .where(
                PlacePermission.user_id == user_id,
                PlacePermission.can_edit.is_(True),
                PlacePermission.accepted_at.isnot(None),
            )
            .order_by(Place.name.asc())
        )
        return list(result.scalars().all())

    async def get_map_locations(self, region_id: Optional[str] = None) -> List[Place]:
        query = select(Place).where(Place.status == PlaceStatus.PUBLISHED.value)
        if region_id is not None:
            query = query.where(Place.region_id == region_id)
        result = await self.session.execute(query.order_by(Place.name.asc()))
        return list(result.scalars().all())
