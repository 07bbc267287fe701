"""
Region persistence.
"""

from typing import Dict, List, Optional, Any

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from kissa.database.models import (
    Checkin,
    CheckinPhoto,
    CheckinStatus,
    Place,
    PlacePermission,
    PlaceStatus,
    Region,
    RegionStatus,
)
from kissa.models.schemas import CreateRegionRequest


class RegionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, data: CreateRegionRequest, created_by: str) -> Region:
        """Insert a draft region with zeroed counters."""
        region = Region(
            name=data.name,
            description=data.description,
            short_description=data.short_description,
            latitude=data.coordinates.latitude if data.coordinates else None,
            longitude=data.coordinates.longitude if data.coordinates else None,
            address=data.address,
            status=RegionStatus.DRAFT.value,
            created_by=created_by,
            place_count=0,
            favorite_count=0,
            visit_count=0,
        )
        self.session.add(region)
        await self.session.flush()
        await self.session.refresh(region)
        return region

    async def find_by_id(self, region_id: str) -> Optional[Region]:
        return await self.session.get(Region, region_id, populate_existing=True)

    async def update(self, region_id: str, fields: Dict[str, Any]) -> Optional[Region]:
        """
        Apply a partial update.

        Args:
            region_id: Region ID
            fields: Column values to write; ``coordinates`` is expanded to
                latitude/longitude and may be None to clear both

        Returns:
            The updated region, or None if it does not exist
        """
        values = dict(fields)
        if "coordinates" in values:
            coords = values.pop("coordinates")
            values["latitude"] = coords["latitude"] if coords else None
            values["longitude"] = coords["longitude"] if coords else None
        if values:
            result = await self.session.execute(
                update(Region).where(Region.id == region_id).values(**values)
            )
            if result.rowcount == 0:
                return None
        return await self.find_by_id(region_id)

    async def update_status(self, region_id: str, status: RegionStatus) -> Optional[Region]:
        return await self.update(region_id, {"status": RegionStatus(status).value})

    async def update_place_count(self, region_id: str, place_count: int) -> None:
        await self.session.execute(
            update(Region).where(Region.id == region_id).values(place_count=place_count)
        )

    async def list(
        self,
        status: Optional[RegionStatus] = None,
        created_by: Optional[str] = None,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Region]:
        query = select(Region)
        if status is not None:
            query = query.where(Region.status == RegionStatus(status).value)
        if created_by is not None:
            query = query.where(Region.created_by == created_by)
        query = query.order_by(Region.name.asc(), Region.id.asc()).limit(limit).offset(offset)
        result = await self.session.execute(query)
        return list(result.scalars().all())

    async def has_published_places(self, region_id: str) -> bool:
        result = await self.session.execute(
            select(Place.id)
            .where(Place.region_id == region_id, Place.status == PlaceStatus.PUBLISHED.value)
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def has_active_checkins_in_region(self, region_id: str) -> bool:
        """Whether any place in the region, whatever its status, has an active check-in."""
        result = await self.session.execute(
            select(Checkin.id)
            .join(Place, Place.id == Checkin.place_id)
            .where(Place.region_id == region_id, Checkin.status == CheckinStatus.ACTIVE.value)
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def delete(self, region_id: str) -> bool:
        """
        Delete a region together with its places and everything hanging off them.

        Returns:
            True if the region row was removed, False if it was already gone
        """
        place_ids = select(Place.id).where(Place.region_id == region_id)
        checkin_ids = select(Checkin.id).where(Checkin.place_id.in_(place_ids))
        await self.session.execute(
            delete(CheckinPhoto).where(CheckinPhoto.checkin_id.in_(checkin_ids))
        )
        await self.session.execute(delete(Checkin).where(Checkin.place_id.in_(place_ids)))
        await self.session.execute(
            delete(PlacePermission).where(PlacePermission.place_id.in_(place_ids))
        )
        await self.session.execute(delete(Place).where(Place.region_id == region_id))
        result = await self.session.execute(delete(Region).where(Region.id == region_id))
        return result.rowcount > 0
