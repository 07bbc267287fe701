"""
Region lifecycle and listing.
"""

import logging
from typing import List, Optional

from kissa.database.models import RegionStatus
from kissa.models.schemas import CreateRegionRequest, RegionResponse, UpdateRegionRequest
from kissa.services.authorization import Action, require, require_admin, resolve_actor
from kissa.services.context import ServiceContext
from kissa.services.errors import ErrorKind, ServiceError, coerce_enum, service_operation
from kissa.utils import constants

logger = logging.getLogger(__name__)


async def _load_region(repos, region_id: str):
    region = await repos.regions.find_by_id(region_id)
    if region is None:
        raise ServiceError(ErrorKind.REGION_NOT_FOUND, "Region not found")
    return region


@service_operation("create_region")
async def create_region(ctx: ServiceContext, user_id: str, data) -> RegionResponse:
    """Create a draft region owned by the actor (editors and admins)."""
    request = CreateRegionRequest.model_validate(data)

    async with ctx.repositories() as repos:
        actor = await resolve_actor(repos, user_id)
        await require(repos, actor, Action.CREATE)

    async def create(repos):
        region = await repos.regions.create(request, created_by=user_id)
        return RegionResponse.model_validate(region)

    region = await ctx.with_transaction(create)
    logger.info(f"Region {region.id} created by {user_id}")
    return region


@service_operation("update_region")
async def update_region(
    ctx: ServiceContext, user_id: str, region_id: str, data
) -> RegionResponse:
    """
    Partially update a region (owner or admin).

    Only fields present in ``data`` are written; present fields set to None
    are cleared. Status and counters cannot be changed here.
    """
    request = UpdateRegionRequest.model_validate(data)
    fields = request.model_dump(exclude_unset=True)

    async with ctx.repositories() as repos:
        actor = await resolve_actor(repos, user_id)
        region = await _load_region(repos, region_id)
        await require(repos, actor, Action.EDIT, region)

    async def update(repos):
        updated = await repos.regions.update(region_id, fields)
        if updated is None:
            raise ServiceError(ErrorKind.REGION_NOT_FOUND, "Region not found")
        return RegionResponse.model_validate(updated)

    return await ctx.with_transaction(update)


async def _change_status(ctx: ServiceContext, region_id: str, status: RegionStatus) -> RegionResponse:
    async def change(repos):
        updated = await repos.regions.update_status(region_id, status)
        if updated is None:
            raise ServiceError(ErrorKind.REGION_NOT_FOUND, "Region not found")
        return RegionResponse.model_validate(updated)

    return await ctx.with_transaction(change)


@service_operation("update_region_status")
async def update_region_status(
    ctx: ServiceContext, user_id: str, region_id: str, status: RegionStatus
) -> RegionResponse:
    """Publish, unpublish or archive a region the actor owns."""
    status = coerce_enum(RegionStatus, status, "status")
    async with ctx.repositories() as repos:
        actor = await resolve_actor(repos, user_id)
        region = await _load_region(repos, region_id)
        await require(repos, actor, Action.EDIT, region)
    return await _change_status(ctx, region_id, status)


@service_operation("admin_update_region_status")
async def admin_update_region_status(
    ctx: ServiceContext, user_id: str, region_id: str, status: RegionStatus
) -> RegionResponse:
    """Set any region's status (admin only)."""
    status = coerce_enum(RegionStatus, status, "status")
    async with ctx.repositories() as repos:
        actor = await resolve_actor(repos, user_id)
        require_admin(actor, "Only administrators can manage region status")
        await _load_region(repos, region_id)
    region = await _change_status(ctx, region_id, status)
    logger.info(f"Admin {user_id} set region {region_id} to {status.value}")
    return region


@service_operation("delete_region")
async def delete_region(ctx: ServiceContext, user_id: str, region_id: str) -> None:
    """
    Delete a region (owner or admin).

    Refused while the region holds a published place or any of its places
    has an active check-in. Draft and archived places are deleted with it.
    """
    async with ctx.repositories() as repos:
        actor = await resolve_actor(repos, user_id)
        region = await _load_region(repos, region_id)
        await require(repos, actor, Action.DELETE, region)
        if await repos.regions.has_published_places(region_id):
            raise ServiceError(
                ErrorKind.CONTENT_HAS_DEPENDENCIES,
                "Cannot delete region that has published places",
            )
        if await repos.regions.has_active_checkins_in_region(region_id):
            raise ServiceError(
                ErrorKind.CONTENT_HAS_DEPENDENCIES,
                "Cannot delete region with places that have active checkins",
            )

    async def delete(repos):
        if not await repos.regions.delete(region_id):
            raise ServiceError(ErrorKind.REGION_NOT_FOUND, "Region not found")

    await ctx.with_transaction(delete)
    logger.info(f"Region {region_id} deleted by {user_id}")


@service_operation("get_region")
async def get_region(
    ctx: ServiceContext, region_id: str, user_id: Optional[str] = None
) -> RegionResponse:
    """Fetch a region. Unpublished regions are visible to their owner and admins only."""
    async with ctx.repositories() as repos:
        region = await _load_region(repos, region_id)
        if user_id is not None:
            actor = await resolve_actor(repos, user_id)
            await require(repos, actor, Action.VIEW, region)
        elif region.status != RegionStatus.PUBLISHED.value:
            raise ServiceError(ErrorKind.REGION_NOT_FOUND, "Region not found")
        return RegionResponse.model_validate(region)


@service_operation("list_regions")
async def list_regions(
    ctx: ServiceContext,
    status: Optional[RegionStatus] = RegionStatus.PUBLISHED,
    created_by: Optional[str] = None,
    limit: int = constants.DEFAULT_PAGE_SIZE,
    offset: int = 0,
) -> List[RegionResponse]:
    """Regions ordered by name, filtered by status (None for all) and creator."""
    if status is not None:
        status = coerce_enum(RegionStatus, status, "status")
    limit = max(1, min(limit, constants.MAX_PAGE_SIZE))
    async with ctx.repositories() as repos:
        regions = await repos.regions.list(
            status=status, created_by=created_by, limit=limit, offset=max(0, offset)
        )
        return [RegionResponse.model_validate(r) for r in regions]
