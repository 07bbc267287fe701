"""
User persistence.
"""

from typing import Optional

from sqlalchemy import select, update, func
from sqlalchemy.ext.asyncio import AsyncSession

from kissa.database.models import User, UserRole, UserStatus


def normalize_email(email: Optional[str]) -> Optional[str]:
    """Lowercase and strip an email address for lookups."""
    return email.strip().lower() if email else None


class UserRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def find_by_id(self, user_id: str) -> Optional[User]:
        return await self.session.get(User, user_id, populate_existing=True)

    async def find_by_email(self, email: str) -> Optional[User]:
        """
        Get user by email address.

        Args:
            email: Email address (case and surrounding whitespace are ignored)

        Returns:
            User or None if not found
        """
        email = normalize_email(email)
        if not email:
            return None
        result = await self.session.execute(
            select(User).where(func.lower(User.email) == email).limit(1)
        )
        return result.scalar_one_or_none()

    async def create(
        self,
        email: str,
        name: str,
        role: UserRole = UserRole.VISITOR,
        status: UserStatus = UserStatus.ACTIVE,
    ) -> User:
        user = User(
            email=normalize_email(email),
            name=name,
            role=UserRole(role).value,
            status=UserStatus(status).value,
        )
        self.session.add(user)
        await self.session.flush()
        await self.session.refresh(user)
        return user

    async def update_role(self, user_id: str, role: UserRole) -> Optional[User]:
        result = await self.session.execute(
            update(User).where(User.id == user_id).values(role=UserRole(role).value)
        )
        if result.rowcount == 0:
            return None
        return await self.find_by_id(user_id)

    async def update_status(self, user_id: str, status: UserStatus) -> Optional[User]:
        result = await self.session.execute(
            update(User).where(User.id == user_id).values(status=UserStatus(status).value)
        )
        if result.rowcount == 0:
            return None
        return await self.find_by_id(user_id)
