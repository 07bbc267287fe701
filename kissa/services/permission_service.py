"""
Editor permission workflow for places.

Per (place, user) pair:  (none) -> invited -> accepted, and remove returns
any state to (none). Invitation emails are best-effort: a delivery failure
is logged and the invitation still stands.
"""

import logging
from typing import List

from sqlalchemy.exc import IntegrityError

from kissa.models.schemas import (
    InviteEditorRequest,
    PlacePermissionResponse,
    PlaceResponse,
    UpdatePermissionRequest,
)
from kissa.services.authorization import Action, require, resolve_actor
from kissa.services.context import ServiceContext
from kissa.services.errors import ErrorKind, ServiceError, service_operation
from kissa.utils.observability import run_best_effort

logger = logging.getLogger(__name__)


@service_operation("invite_editor")
async def invite_editor(
    ctx: ServiceContext, inviter_id: str, data
) -> PlacePermissionResponse:
    """
    Invite an existing user, by email, to edit a place.

    The inviter needs edit rights on the place; a pending (unaccepted)
    permission is enough for this check. Only one permission row may exist
    per user and place.

    Args:
        ctx: Service context
        inviter_id: Acting user's ID
        data: InviteEditorRequest or an equivalent dict

    Returns:
        Result wrapping the new, unaccepted PlacePermissionResponse
    """
    request = InviteEditorRequest.model_validate(data)

    async with ctx.repositories() as repos:
        inviter = await resolve_actor(repos, inviter_id)
        place = await repos.places.find_by_id(request.place_id)
        if place is None:
            raise ServiceError(ErrorKind.PLACE_NOT_FOUND, "Place not found")
        await require(repos, inviter, Action.EDIT, place, require_accepted=False)

        invitee = await repos.users.find_by_email(request.email)
        if invitee is None:
            raise ServiceError(ErrorKind.USER_NOT_FOUND, "No user with that email address")
        existing = await repos.permissions.find_by_user_and_place(invitee.id, place.id)
        if existing is not None:
            raise ServiceError(
                ErrorKind.ALREADY_EXISTS, "User already has permission for this place"
            )
        invitee_id, invitee_email = invitee.id, invitee.email
        inviter_name, place_name = inviter.name, place.name

    async def invite(repos):
        try:
            permission = await repos.permissions.invite(
                place_id=request.place_id,
                user_id=invitee_id,
                invited_by=inviter_id,
                can_edit=request.can_edit,
                can_delete=request.can_delete,
            )
        except IntegrityError as e:
            # Lost a race with a concurrent invite for the same pair
            raise ServiceError(
                ErrorKind.ALREADY_EXISTS, "User already has permission for this place", cause=e
            ) from e
        return PlacePermissionResponse.model_validate(permission)

    permission = await ctx.with_transaction(invite)
    logger.info(f"User {inviter_id} invited {invitee_id} to edit place {request.place_id}")

    await run_best_effort(
        "editor_invitation_email",
        ctx.email_notifier.send_editor_invitation(
            to_email=invitee_email,
            inviter_name=inviter_name,
            place_name=place_name,
            permission_id=permission.id,
            custom_message=request.custom_message,
        ),
        permission_id=permission.id,
        place_id=request.place_id,
    )
    return permission


@service_operation("accept_invitation")
async def accept_invitation(
    ctx: ServiceContext, user_id: str, permission_id: str
) -> PlacePermissionResponse:
    """
    Accept an editor invitation.

    The permission ID is trusted as addressed to the caller; matching the
    invitee is left to the caller. Accepting twice keeps the first timestamp.
    """
    async with ctx.repositories() as repos:
        await resolve_actor(repos, user_id)

    async def accept(repos):
        permission = await repos.permissions.find_by_id(permission_id)
        if permission is None:
            raise ServiceError(ErrorKind.PERMISSION_NOT_FOUND, "Invitation not found")
        if permission.accepted_at is None:
            permission = await repos.permissions.accept(permission_id)
        return PlacePermissionResponse.model_validate(permission)

    return await ctx.with_transaction(accept)


@service_operation("update_permission")
async def update_permission(
    ctx: ServiceContext, user_id: str, permission_id: str, data
) -> PlacePermissionResponse:
    """Change the edit/delete flags of a permission row."""
    request = UpdatePermissionRequest.model_validate(data)
    if request.can_edit is None and request.can_delete is None:
        raise ServiceError(
            ErrorKind.VALIDATION_ERROR, "At least one of can_edit or can_delete must be provided"
        )

    async with ctx.repositories() as repos:
        await resolve_actor(repos, user_id)

    async def update(repos):
        permission = await repos.permissions.update(
            permission_id, can_edit=request.can_edit, can_delete=request.can_delete
        )
        if permission is None:
            raise ServiceError(ErrorKind.PERMISSION_NOT_FOUND, "Permission not found")
        return PlacePermissionResponse.model_validate(permission)

    return await ctx.with_transaction(update)


@service_operation("remove_permission")
async def remove_permission(ctx: ServiceContext, user_id: str, permission_id: str) -> None:
    """Delete a permission row, whatever state it is in."""
    async with ctx.repositories() as repos:
        await resolve_actor(repos, user_id)

    async def remove(repos):
        if not await repos.permissions.remove(permission_id):
            raise ServiceError(ErrorKind.PERMISSION_NOT_FOUND, "Permission not found")

    await ctx.with_transaction(remove)
    logger.info(f"Permission {permission_id} removed by {user_id}")


@service_operation("get_place_editors")
async def get_place_editors(
    ctx: ServiceContext, user_id: str, place_id: str
) -> List[PlacePermissionResponse]:
    """All permission rows on a place, for users who may edit it."""
    async with ctx.repositories() as repos:
        actor = await resolve_actor(repos, user_id)
        place = await repos.places.find_by_id(place_id)
        if place is None:
            raise ServiceError(ErrorKind.PLACE_NOT_FOUND, "Place not found")
        await require(repos, actor, Action.EDIT, place)
        permissions = await repos.permissions.find_by_place(place_id)
        return [PlacePermissionResponse.model_validate(p) for p in permissions]


@service_operation("get_user_editable_places")
async def get_user_editable_places(ctx: ServiceContext, user_id: str) -> List[PlaceResponse]:
    """Places shared with the actor through accepted permissions."""
    async with ctx.repositories() as repos:
        await resolve_actor(repos, user_id)
        places = await repos.permissions.get_shared_places(user_id)
        return [PlaceResponse.model_validate(p) for p in places]
