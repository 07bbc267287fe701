"""
User administration: role and status changes.

Users are never hard deleted here; "deleted" is a status like any other.
"""

import logging

from kissa.database.models import UserRole, UserStatus
from kissa.models.schemas import UserResponse
from kissa.services.authorization import require_admin, resolve_actor
from kissa.services.context import ServiceContext
from kissa.services.errors import ErrorKind, ServiceError, coerce_enum, service_operation

logger = logging.getLogger(__name__)


@service_operation("get_user")
async def get_user(ctx: ServiceContext, user_id: str) -> UserResponse:
    async with ctx.repositories() as repos:
        user = await repos.users.find_by_id(user_id)
        if user is None:
            raise ServiceError(ErrorKind.USER_NOT_FOUND, "User not found")
        return UserResponse.model_validate(user)


@service_operation("update_user_role")
async def update_user_role(
    ctx: ServiceContext, admin_id: str, user_id: str, role: UserRole
) -> UserResponse:
    """
    Change a user's role (admin only).

    Args:
        ctx: Service context
        admin_id: Acting admin's ID
        user_id: Target user's ID
        role: New role

    Returns:
        Result wrapping the updated UserResponse
    """
    role = coerce_enum(UserRole, role, "role")
    async with ctx.repositories() as repos:
        admin = await resolve_actor(repos, admin_id)
        require_admin(admin, "Only administrators can change user roles")

    async def update(repos):
        user = await repos.users.update_role(user_id, role)
        if user is None:
            raise ServiceError(ErrorKind.USER_NOT_FOUND, "User not found")
        return UserResponse.model_validate(user)

    user = await ctx.with_transaction(update)
    logger.info(f"Admin {admin_id} set role of {user_id} to {role.value}")
    return user


@service_operation("update_user_status")
async def update_user_status(
    ctx: ServiceContext, admin_id: str, user_id: str, status: UserStatus
) -> UserResponse:
    """Suspend, reactivate or soft delete a user (admin only, never yourself)."""
    status = coerce_enum(UserStatus, status, "status")
    async with ctx.repositories() as repos:
        admin = await resolve_actor(repos, admin_id)
        require_admin(admin, "Only administrators can change user status")
    if admin_id == user_id:
        raise ServiceError(ErrorKind.VALIDATION_ERROR, "Administrators cannot change their own status")

    async def update(repos):
        user = await repos.users.update_status(user_id, status)
        if user is None:
            raise ServiceError(ErrorKind.USER_NOT_FOUND, "User not found")
        return UserResponse.model_validate(user)

    user = await ctx.with_transaction(update)
    logger.info(f"Admin {admin_id} set status of {user_id} to {status.value}")
    return user
