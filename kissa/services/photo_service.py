"""
Check-in photo management. Photos are references (URLs); storing the files
themselves is handled elsewhere.
"""

import logging
from typing import List, Optional

from kissa.database.models import CheckinStatus
from kissa.models.schemas import CheckinPhotoInput, CheckinPhotoResponse
from kissa.services.authorization import Action, require, resolve_actor
from kissa.services.context import ServiceContext
from kissa.services.errors import ErrorKind, ServiceError, service_operation
from kissa.utils import constants

logger = logging.getLogger(__name__)


async def _load_photo_and_checkin(repos, photo_id: str):
    photo = await repos.photos.find_by_id(photo_id)
    if photo is None:
        raise ServiceError(ErrorKind.PHOTO_NOT_FOUND, "Photo not found")
    checkin = await repos.checkins.find_by_id(photo.checkin_id)
    if checkin is None:
        raise ServiceError(ErrorKind.CHECKIN_NOT_FOUND, "Checkin not found")
    return photo, checkin


@service_operation("upload_checkin_photos")
async def upload_checkin_photos(
    ctx: ServiceContext, user_id: str, checkin_id: str, photos: List
) -> List[CheckinPhotoResponse]:
    """
    Append photos to the author's own check-in.

    The combined count may not exceed the per-check-in ceiling; nothing is
    stored when it would.
    """
    inputs = [CheckinPhotoInput.model_validate(p) for p in photos]
    if not inputs:
        raise ServiceError(ErrorKind.VALIDATION_ERROR, "At least one photo is required")

    async with ctx.repositories() as repos:
        await resolve_actor(repos, user_id)
        checkin = await repos.checkins.find_by_id(checkin_id)
        if checkin is None:
            raise ServiceError(ErrorKind.CHECKIN_NOT_FOUND, "Checkin not found")
        if checkin.user_id != user_id:
            raise ServiceError(
                ErrorKind.UNAUTHORIZED, "Unauthorized to upload photos to this checkin"
            )
        if checkin.status == CheckinStatus.DELETED.value:
            raise ServiceError(
                ErrorKind.CHECKIN_DELETED, "Cannot upload photos to deleted checkin"
            )

    async def upload(repos):
        existing = await repos.photos.count_by_checkin(checkin_id)
        if existing + len(inputs) > ctx.max_photos_per_checkin:
            raise ServiceError(
                ErrorKind.PHOTO_LIMIT_EXCEEDED,
                f"Cannot upload {len(inputs)} photos. Would exceed maximum of "
                f"{ctx.max_photos_per_checkin} photos per checkin. Current count: {existing}",
            )
        try:
            stored = await repos.photos.add(checkin_id, inputs)
        except Exception as e:
            raise ServiceError(
                ErrorKind.PHOTOS_UPLOAD_FAILED, "Failed to add checkin photos", cause=e
            ) from e
        return [CheckinPhotoResponse.model_validate(p) for p in stored]

    return await ctx.with_transaction(upload)


@service_operation("get_checkin_photos")
async def get_checkin_photos(
    ctx: ServiceContext, user_id: str, checkin_id: str
) -> List[CheckinPhotoResponse]:
    """Photos of a check-in in display order, subject to the check-in's visibility."""
    async with ctx.repositories() as repos:
        actor = await resolve_actor(repos, user_id)
        checkin = await repos.checkins.find_by_id(checkin_id)
        if checkin is None:
            raise ServiceError(ErrorKind.CHECKIN_NOT_FOUND, "Checkin not found")
        await require(repos, actor, Action.VIEW, checkin)
        photos = await repos.photos.find_by_checkin(checkin_id)
        return [CheckinPhotoResponse.model_validate(p) for p in photos]


@service_operation("delete_checkin_photo")
async def delete_checkin_photo(ctx: ServiceContext, user_id: str, photo_id: str) -> None:
    """Remove one photo (check-in author or admin)."""
    async with ctx.repositories() as repos:
        actor = await resolve_actor(repos, user_id)
        _, checkin = await _load_photo_and_checkin(repos, photo_id)
        await require(repos, actor, Action.DELETE, checkin)

    async def remove(repos):
        if not await repos.photos.delete(photo_id):
            raise ServiceError(ErrorKind.PHOTO_NOT_FOUND, "Photo not found")

    await ctx.with_transaction(remove)
    logger.info(f"Photo {photo_id} deleted by {user_id}")


@service_operation("update_checkin_photo_caption")
async def update_checkin_photo_caption(
    ctx: ServiceContext, user_id: str, photo_id: str, caption: Optional[str]
) -> CheckinPhotoResponse:
    """Change or clear a photo caption (check-in author only)."""
    if caption is not None and len(caption) > constants.MAX_CAPTION_LENGTH:
        raise ServiceError(
            ErrorKind.VALIDATION_ERROR,
            f"caption: must be at most {constants.MAX_CAPTION_LENGTH} characters",
        )

    async with ctx.repositories() as repos:
        await resolve_actor(repos, user_id)
        _, checkin = await _load_photo_and_checkin(repos, photo_id)
        if checkin.user_id != user_id:
            raise ServiceError(ErrorKind.UNAUTHORIZED, "Unauthorized to edit this photo")
        if checkin.status == CheckinStatus.DELETED.value:
            raise ServiceError(ErrorKind.CHECKIN_DELETED, "Cannot edit photos of deleted checkin")

    async def update(repos):
        photo = await repos.photos.update_caption(photo_id, caption)
        if photo is None:
            raise ServiceError(ErrorKind.PHOTO_NOT_FOUND, "Photo not found")
        return CheckinPhotoResponse.model_validate(photo)

    return await ctx.with_transaction(update)
