"""
Place permission (editor invitation) persistence.
"""

from typing import List, Optional

from sqlalchemy import select, update, delete
from sqlalchemy.ext.asyncio import AsyncSession

from kissa.database.models import Place, PlacePermission
from kissa.utils.datetime_utils import utcnow


class PlacePermissionRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def invite(
        self,
        place_id: str,
        user_id: str,
        invited_by: str,
        can_edit: bool = True,
        can_delete: bool = False,
    ) -> PlacePermission:
        """Insert an unaccepted permission row for (user, place)."""
        permission = PlacePermission(
            place_id=place_id,
            user_id=user_id,
            invited_by=invited_by,
            can_edit=can_edit,
            can_delete=can_delete,
            accepted_at=None,
        )
        self.session.add(permission)
        await self.session.flush()
        await self.session.refresh(permission)
        return permission

    async def find_by_id(self, permission_id: str) -> Optional[PlacePermission]:
        return await self.session.get(PlacePermission, permission_id, populate_existing=True)

    async def accept(self, permission_id: str) -> Optional[PlacePermission]:
        result = await self.session.execute(
            update(PlacePermission)
            .where(PlacePermission.id == permission_id)
            .values(accepted_at=utcnow())
        )
        if result.rowcount == 0:
            return None
        return await self.find_by_id(permission_id)

    async def update(
        self,
        permission_id: str,
        can_edit: Optional[bool] = None,
        can_delete: Optional[bool] = None,
    ) -> Optional[PlacePermission]:
        values = {}
        if can_edit is not None:
            values["can_edit"] = can_edit
        if can_delete is not None:
            values["can_delete"] = can_delete
        if values:
            result = await self.session.execute(
                update(PlacePermission)
                .where(PlacePermission.id == permission_id)
                .values(**values)
            )
            if result.rowcount == 0:
                return None
        return await self.find_by_id(permission_id)

    async def remove(self, permission_id: str) -> bool:
        result = await self.session.execute(
            delete(PlacePermission).where(PlacePermission.id == permission_id)
        )
        return result.rowcount > 0

    async def find_by_user_and_place(
        self, user_id: str, place_id: str
    ) -> Optional[PlacePermission]:
        result = await self.session.execute(
            select(PlacePermission).where(
                PlacePermission.user_id == user_id,
                PlacePermission.place_id == place_id,
            )
        )
        return result.scalar_one_or_none()

    async def find_by_place(self, place_id: str) -> List[PlacePermission]:
        result = await self.session.execute(
            select(PlacePermission)
            .where(PlacePermission.place_id == place_id)
            .order_by(PlacePermission.invited_at.asc(), PlacePermission.id.asc())
        )
        return list(result.scalars().all())

    async def get_shared_places(self, user_id: str) -> List[Place]:
        """Places shared with the user through an accepted permission of any kind."""
        result = await self.session.execute(
            select(Place)
            .join(PlacePermission, PlacePermission.place_id == Place.id)
            .where(
                PlacePermission.user_id == user_id,
                PlacePermission.accepted_at.isnot(None),
            )
            .order_by(Place.name.asc())
        )
        return list(result.scalars().all())
