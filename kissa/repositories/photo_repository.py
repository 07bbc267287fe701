"""
Check-in photo persistence.
"""

from typing import List, Optional

from sqlalchemy import select, update, delete, func
from sqlalchemy.ext.asyncio import AsyncSession

from kissa.database.models import CheckinPhoto
from kissa.models.schemas import CheckinPhotoInput


class CheckinPhotoRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def add(self, checkin_id: str, photos: List[CheckinPhotoInput]) -> List[CheckinPhoto]:
        """
        Append photos to a check-in, keeping the order they were supplied in.

        Args:
            checkin_id: Check-in ID
            photos: Photo references in display order

        Returns:
            The stored photos, in the same order
        """
        result = await self.session.execute(
            select(func.max(CheckinPhoto.display_order)).where(
                CheckinPhoto.checkin_id == checkin_id
            )
        )
        current_max = result.scalar_one_or_none()
        next_order = 0 if current_max is None else current_max + 1

        rows = []
        for offset, photo in enumerate(photos):
            row = CheckinPhoto(
                checkin_id=checkin_id,
                url=photo.url,
                caption=photo.caption,
                display_order=next_order + offset,
            )
            self.session.add(row)
            rows.append(row)
        await self.session.flush()
        for row in rows:
            await self.session.refresh(row)
        return rows

    async def find_by_checkin(self, checkin_id: str) -> List[CheckinPhoto]:
        result = await self.session.execute(
            select(CheckinPhoto)
            .where(CheckinPhoto.checkin_id == checkin_id)
            .order_by(CheckinPhoto.display_order.asc())
        )
        return list(result.scalars().all())

    async def find_by_id(self, photo_id: str) -> Optional[CheckinPhoto]:
        return await self.session.get(CheckinPhoto, photo_id, populate_existing=True)

    async def count_by_checkin(self, checkin_id: str) -> int:
        result = await self.session.execute(
            select(func.count(CheckinPhoto.id)).where(CheckinPhoto.checkin_id == checkin_id)
        )
        return result.scalar_one()

    async def delete(self, photo_id: str) -> bool:
        result = await self.session.execute(delete(CheckinPhoto).where(CheckinPhoto.id == photo_id))
        return result.rowcount > 0

    async def delete_by_checkin(self, checkin_id: str) -> int:
        result = await self.session.execute(
            delete(CheckinPhoto).where(CheckinPhoto.checkin_id == checkin_id)
        )
        return result.rowcount

    async def update_caption(self, photo_id: str, caption: Optional[str]) -> Optional[CheckinPhoto]:
        result = await self.session.execute(
            update(CheckinPhoto).where(CheckinPhoto.id == photo_id).values(caption=caption)
        )
        if result.rowcount == 0:
            return None
        return await self.find_by_id(photo_id)
