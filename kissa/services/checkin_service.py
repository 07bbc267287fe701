"""
Check-in lifecycle: create, update, soft delete, hard delete and moderation.

Every mutation recomputes the place's derived stats inside the same
transaction as the write.

Status transitions:
    active -> hidden | reported | deleted   (admin moderation)
    active -> deleted                       (owner soft delete)
    deleted is terminal; only a hard delete removes the row.
"""

import logging
from typing import List

from kissa.database.models import CheckinStatus, PlaceStatus
from kissa.models.schemas import (
    CheckinResponse,
    Coordinates,
    CreateCheckinRequest,
    UpdateCheckinRequest,
)
from kissa.services.aggregates import recompute_place_stats
from kissa.services.authorization import Action, require, require_admin, resolve_actor
from kissa.services.context import ServiceContext
from kissa.services.errors import ErrorKind, ServiceError, coerce_enum, service_operation
from kissa.services.location_service import LocationServiceError
from kissa.utils import constants
from kissa.utils.datetime_utils import hours_ago
from kissa.utils.observability import log_event, run_best_effort

logger = logging.getLogger(__name__)


async def _note_recent_checkin(ctx: ServiceContext, user_id: str, place_id: str) -> bool:
    async with ctx.repositories() as repos:
        recent = await repos.checkins.has_user_checked_in(
            user_id, place_id, since=hours_ago(constants.DUPLICATE_CHECKIN_WINDOW_HOURS)
        )
    if recent:
        log_event("recent_checkin", "detected", user_id=user_id, place_id=place_id)
    return recent


@service_operation("create_checkin")
async def create_checkin(ctx: ServiceContext, user_id: str, data) -> CheckinResponse:
    """
    Check a user in to a published place.

    The user's location must be within the configured distance of the place.
    The check-in, its photos and the place's recomputed stats are written in
    one transaction.

    Args:
        ctx: Service context
        user_id: Acting user's ID
        data: CreateCheckinRequest or an equivalent dict

    Returns:
        Result wrapping the created CheckinResponse
    """
    request = CreateCheckinRequest.model_validate(data)
    if len(request.photos) > ctx.max_photos_per_checkin:
        raise ServiceError(
            ErrorKind.PHOTO_LIMIT_EXCEEDED,
            f"Cannot attach {len(request.photos)} photos. "
            f"Maximum is {ctx.max_photos_per_checkin} photos per checkin",
        )

    async with ctx.repositories() as repos:
        await resolve_actor(repos, user_id)
        place = await repos.places.find_by_id(request.place_id)
        if place is None:
            raise ServiceError(ErrorKind.PLACE_NOT_FOUND, "Place not found")
        if place.status != PlaceStatus.PUBLISHED.value:
            raise ServiceError(
                ErrorKind.PLACE_NOT_PUBLISHED, "Cannot check in to unpublished place"
            )
        place_location = Coordinates(latitude=place.latitude, longitude=place.longitude)

    try:
        within_range = await ctx.location_validator.validate_user_location(
            request.user_location, place_location, ctx.max_checkin_distance_meters
        )
    except LocationServiceError as e:
        raise ServiceError(
            ErrorKind.LOCATION_VALIDATION_FAILED, "Failed to validate location", cause=e
        ) from e
    if not within_range:
        raise ServiceError(ErrorKind.CHECKIN_TOO_FAR, "User location is too far from place")

    await run_best_effort(
        "recent_checkin_lookup",
        _note_recent_checkin(ctx, user_id, request.place_id),
        user_id=user_id,
        place_id=request.place_id,
    )

    async def create(repos):
        checkin = await repos.checkins.create(user_id, request)
        if request.photos:
            try:
                await repos.photos.add(checkin.id, request.photos)
            except Exception as e:
                raise ServiceError(
                    ErrorKind.PHOTOS_UPLOAD_FAILED, "Failed to add checkin photos", cause=e
                ) from e
        await recompute_place_stats(repos, request.place_id)
        return CheckinResponse.model_validate(checkin)

    checkin = await ctx.with_transaction(create)
    logger.info(f"User {user_id} checked in to place {request.place_id}")
    return checkin


@service_operation("update_checkin")
async def update_checkin(
    ctx: ServiceContext, user_id: str, checkin_id: str, data
) -> CheckinResponse:
    """
    Update the comment, rating or privacy of a check-in.

    Only the author may update a check-in; admins cannot. At least one field
    must be supplied. A rating change recomputes the place's stats.
    """
    request = UpdateCheckinRequest.model_validate(data)
    fields = request.model_dump(exclude_none=True)
    if not fields:
        raise ServiceError(
            ErrorKind.VALIDATION_ERROR,
            "At least one of comment, rating or is_private must be provided",
        )

    async with ctx.repositories() as repos:
        await resolve_actor(repos, user_id)
        checkin = await repos.checkins.find_by_id(checkin_id)
        if checkin is None:
            raise ServiceError(ErrorKind.CHECKIN_NOT_FOUND, "Checkin not found")
        if checkin.user_id != user_id:
            raise ServiceError(ErrorKind.UNAUTHORIZED, "Unauthorized to update this checkin")
        if checkin.status == CheckinStatus.DELETED.value:
            raise ServiceError(ErrorKind.CHECKIN_DELETED, "Cannot update deleted checkin")
        place_id = checkin.place_id

    async def update(repos):
        updated = await repos.checkins.update(checkin_id, fields)
        if updated is None:
            raise ServiceError(ErrorKind.CHECKIN_NOT_FOUND, "Checkin not found")
        if "rating" in fields:
            await recompute_place_stats(repos, place_id)
        return CheckinResponse.model_validate(updated)

    return await ctx.with_transaction(update)


@service_operation("delete_checkin")
async def delete_checkin(ctx: ServiceContext, user_id: str, checkin_id: str) -> None:
    """Soft delete a check-in (author or admin) and drop its photos."""
    async with ctx.repositories() as repos:
        actor = await resolve_actor(repos, user_id)
        checkin = await repos.checkins.find_by_id(checkin_id)
        if checkin is None:
            raise ServiceError(ErrorKind.CHECKIN_NOT_FOUND, "Checkin not found")
        await require(repos, actor, Action.DELETE, checkin)
        if checkin.status == CheckinStatus.DELETED.value:
            raise ServiceError(
                ErrorKind.CHECKIN_ALREADY_DELETED, "Checkin is already deleted"
            )
        place_id = checkin.place_id

    async def soft_delete(repos):
        await repos.checkins.update_status(checkin_id, CheckinStatus.DELETED)
        await repos.photos.delete_by_checkin(checkin_id)
        await recompute_place_stats(repos, place_id)

    await ctx.with_transaction(soft_delete)
    logger.info(f"Checkin {checkin_id} deleted by {user_id}")


@service_operation("hard_delete_checkin")
async def hard_delete_checkin(ctx: ServiceContext, user_id: str, checkin_id: str) -> None:
    """
    Permanently remove a check-in (admin only).

    Place stats are recomputed unless the check-in was already soft deleted,
    in which case they were reconciled at that point.
    """
    async with ctx.repositories() as repos:
        actor = await resolve_actor(repos, user_id)
        require_admin(
            actor,
            "Only administrators can permanently delete checkins",
            kind=ErrorKind.UNAUTHORIZED,
        )
        if await repos.checkins.find_by_id(checkin_id) is None:
            raise ServiceError(ErrorKind.CHECKIN_NOT_FOUND, "Checkin not found")

    async def hard_delete(repos):
        checkin = await repos.checkins.find_by_id(checkin_id)
        if checkin is None:
            raise ServiceError(ErrorKind.CHECKIN_NOT_FOUND, "Checkin not found")
        already_reconciled = checkin.status == CheckinStatus.DELETED.value
        place_id = checkin.place_id
        await repos.checkins.delete(checkin_id)
        if not already_reconciled:
            await recompute_place_stats(repos, place_id)

    await ctx.with_transaction(hard_delete)
    logger.info(f"Checkin {checkin_id} permanently deleted by admin {user_id}")


@service_operation("moderate_checkin")
async def moderate_checkin(
    ctx: ServiceContext, user_id: str, checkin_id: str, status: CheckinStatus
) -> CheckinResponse:
    """Move a check-in to another status (admin only). Deleted check-ins stay deleted."""
    status = coerce_enum(CheckinStatus, status, "status")

    async with ctx.repositories() as repos:
        actor = await resolve_actor(repos, user_id)
        require_admin(actor, "Only administrators can moderate checkins")
        checkin = await repos.checkins.find_by_id(checkin_id)
        if checkin is None:
            raise ServiceError(ErrorKind.CHECKIN_NOT_FOUND, "Checkin not found")
        if checkin.status == CheckinStatus.DELETED.value:
            raise ServiceError(
                ErrorKind.CHECKIN_ALREADY_DELETED, "Checkin is already deleted"
            )
        place_id = checkin.place_id

    async def moderate(repos):
        updated = await repos.checkins.update_status(checkin_id, status)
        if updated is None:
            raise ServiceError(ErrorKind.CHECKIN_NOT_FOUND, "Checkin not found")
        if status == CheckinStatus.DELETED:
            await repos.photos.delete_by_checkin(checkin_id)
        await recompute_place_stats(repos, place_id)
        return CheckinResponse.model_validate(updated)

    moderated = await ctx.with_transaction(moderate)
    logger.info(f"Checkin {checkin_id} moved to {status.value} by admin {user_id}")
    return moderated


@service_operation("get_checkin")
async def get_checkin(ctx: ServiceContext, user_id: str, checkin_id: str) -> CheckinResponse:
    """Fetch one check-in. Private or moderated check-ins are visible to their author and admins."""
    async with ctx.repositories() as repos:
        actor = await resolve_actor(repos, user_id)
        checkin = await repos.checkins.find_by_id(checkin_id)
        if checkin is None or (
            checkin.status == CheckinStatus.DELETED.value and not actor.is_admin
        ):
            raise ServiceError(ErrorKind.CHECKIN_NOT_FOUND, "Checkin not found")
        await require(repos, actor, Action.VIEW, checkin)
        return CheckinResponse.model_validate(checkin)


@service_operation("list_user_checkins")
async def list_user_checkins(
    ctx: ServiceContext,
    actor_id: str,
    user_id: str,
    limit: int = constants.DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> List[CheckinResponse]:
    """A user's check-ins, newest first. Others only see public, active ones."""
    limit = max(1, min(limit, constants.MAX_PAGE_SIZE))
    async with ctx.repositories() as repos:
        actor = await resolve_actor(repos, actor_id)
        include_private = actor.id == user_id or actor.is_admin
        checkins = await repos.checkins.get_by_user(
            user_id, include_private=include_private, limit=limit, offset=max(0, offset)
        )
        return [CheckinResponse.model_validate(c) for c in checkins]


@service_operation("list_place_checkins")
async def list_place_checkins(
    ctx: ServiceContext,
    place_id: str,
    limit: int = constants.DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> List[CheckinResponse]:
    """Public, active check-ins on a place, newest first."""
    limit = max(1, min(limit, constants.MAX_PAGE_SIZE))
    async with ctx.repositories() as repos:
        if await repos.places.find_by_id(place_id) is None:
            raise ServiceError(ErrorKind.PLACE_NOT_FOUND, "Place not found")
        checkins = await repos.checkins.get_by_place(place_id, limit=limit, offset=max(0, offset))
        return [CheckinResponse.model_validate(c) for c in checkins]
