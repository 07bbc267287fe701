"""
Check-in persistence and the aggregate queries used to keep place stats in sync.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy import select, update, delete, func, case, and_
from sqlalchemy.ext.asyncio import AsyncSession

from kissa.database.models import Checkin, CheckinPhoto, CheckinStatus
from kissa.models.schemas import CreateCheckinRequest, PlaceStats


class CheckinRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, user_id: str, data: CreateCheckinRequest) -> Checkin:
        checkin = Checkin(
            user_id=user_id,
            place_id=data.place_id,
            comment=data.comment,
            rating=data.rating,
            user_latitude=data.user_location.latitude,
            user_longitude=data.user_location.longitude,
            is_private=data.is_private,
            status=CheckinStatus.ACTIVE.value,
        )
        self.session.add(checkin)
        await self.session.flush()
        await self.session.refresh(checkin)
        return checkin

    async def find_by_id(self, checkin_id: str) -> Optional[Checkin]:
        return await self.session.get(Checkin, checkin_id, populate_existing=True)

    async def update(self, checkin_id: str, fields: Dict[str, Any]) -> Optional[Checkin]:
        if fields:
            result = await self.session.execute(
                update(Checkin).where(Checkin.id == checkin_id).values(**fields)
            )
            if result.rowcount == 0:
                return None
        return await self.find_by_id(checkin_id)

    async def update_status(self, checkin_id: str, status: CheckinStatus) -> Optional[Checkin]:
        return await self.update(checkin_id, {"status": CheckinStatus(status).value})

    async def delete(self, checkin_id: str) -> bool:
        """Physically remove a check-in and its photos."""
        await self.session.execute(
            delete(CheckinPhoto).where(CheckinPhoto.checkin_id == checkin_id)
        )
        result = await self.session.execute(delete(Checkin).where(Checkin.id == checkin_id))
        return result.rowcount > 0

    async def get_by_user(
        self,
        user_id: str,
        include_private: bool = True,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Checkin]:
        """A user's non-deleted check-ins, newest first."""
        query = select(Checkin).where(
            Checkin.user_id == user_id,
            Checkin.status != CheckinStatus.DELETED.value,
        )
        if not include_private:
            query = query.where(
                Checkin.is_private.is_(False),
                Checkin.status == CheckinStatus.ACTIVE.value,
            )
        query = query.order_by(Checkin.created_at.desc(), Checkin.id.desc())
        result = await self.session.execute(query.limit(limit).offset(offset))
        return list(result.scalars().all())

    async def get_by_place(
        self,
        place_id: str,
        include_private: bool = False,
        limit: int = 20,
        offset: int = 0,
    ) -> List[Checkin]:
        """Active check-ins on a place, newest first."""
        query = select(Checkin).where(
            Checkin.place_id == place_id,
            Checkin.status == CheckinStatus.ACTIVE.value,
        )
        if not include_private:
            query = query.where(Checkin.is_private.is_(False))
        query = query.order_by(Checkin.created_at.desc(), Checkin.id.desc())
        result = await self.session.execute(query.limit(limit).offset(offset))
        return list(result.scalars().all())

    async def has_user_checked_in(
        self, user_id: str, place_id: str, since: Optional[datetime] = None
    ) -> bool:
        query = select(Checkin.id).where(
            Checkin.user_id == user_id,
            Checkin.place_id == place_id,
            Checkin.status != CheckinStatus.DELETED.value,
        )
        if since is not None:
            query = query.where(Checkin.created_at >= since)
        result = await self.session.execute(query.limit(1))
        return result.scalar_one_or_none() is not None

    async def has_active_checkins(self, place_id: str) -> bool:
        result = await self.session.execute(
            select(Checkin.id)
            .where(Checkin.place_id == place_id, Checkin.status == CheckinStatus.ACTIVE.value)
            .limit(1)
        )
        return result.scalar_one_or_none() is not None

    async def get_place_stats(self, place_id: str) -> PlaceStats:
        """
        Compute a place's derived figures straight from its check-ins.

        checkin_count counts every check-in that is not deleted; average_rating
        is the mean over active check-ins that carry a rating (None if none do).
        """
        rated_active = and_(
            Checkin.status == CheckinStatus.ACTIVE.value,
            Checkin.rating.isnot(None),
        )
        result = await self.session.execute(
            select(
                func.count(case((Checkin.status != CheckinStatus.DELETED.value, 1))),
                func.avg(case((rated_active, Checkin.rating))),
            ).where(Checkin.place_id == place_id)
        )
        checkin_count, average_rating = result.one()
        return PlaceStats(
            checkin_count=checkin_count or 0,
            average_rating=float(average_rating) if average_rating is not None else None,
        )
