"""
Place lifecycle (create, update, move, delete, status changes) and place queries.

Region place counts are recomputed from the places table in the same
transaction as any change that adds, removes or moves a place.
"""

import logging
from dataclasses import replace
from typing import List, Optional

from kissa.database.models import PlaceStatus
from kissa.models.schemas import (
    CreatePlaceRequest,
    MapLocation,
    PlaceListResponse,
    PlaceResponse,
    UpdatePlaceRequest,
)
from kissa.repositories.place_repository import PlaceFilters
from kissa.services.aggregates import recompute_region_place_count
from kissa.services.authorization import (
    Action,
    check,
    is_content_creator,
    require,
    require_admin,
    resolve_actor,
)
from kissa.services.context import ServiceContext
from kissa.services.errors import ErrorKind, ServiceError, coerce_enum, service_operation
from kissa.utils import constants
from kissa.utils.observability import run_best_effort

logger = logging.getLogger(__name__)


async def _load_place(repos, place_id: str):
    place = await repos.places.find_by_id(place_id)
    if place is None:
        raise ServiceError(ErrorKind.PLACE_NOT_FOUND, "Place not found")
    return place


async def _load_region(repos, region_id: str):
    region = await repos.regions.find_by_id(region_id)
    if region is None:
        raise ServiceError(ErrorKind.REGION_NOT_FOUND, "Region not found")
    return region


# ============================================================================
# Mutations
# ============================================================================


@service_operation("create_place")
async def create_place(ctx: ServiceContext, user_id: str, data) -> PlaceResponse:
    """
    Create a draft place inside a region the actor owns (admins: any region).

    Args:
        ctx: Service context
        user_id: Acting user's ID (editor or admin)
        data: CreatePlaceRequest or an equivalent dict

    Returns:
        Result wrapping the new PlaceResponse
    """
    request = CreatePlaceRequest.model_validate(data)

    async with ctx.repositories() as repos:
        actor = await resolve_actor(repos, user_id)
        if not is_content_creator(actor):
            raise ServiceError(
                ErrorKind.INSUFFICIENT_PERMISSIONS, "Only editors can create places"
            )
        region = await _load_region(repos, request.region_id)
        await require(repos, actor, Action.CREATE, region)

    async def create(repos):
        place = await repos.places.create(request, created_by=user_id)
        await recompute_region_place_count(repos, request.region_id)
        return PlaceResponse.model_validate(place)

    place = await ctx.with_transaction(create)
    logger.info(f"Place {place.id} created in region {request.region_id} by {user_id}")
    return place


@service_operation("update_place")
async def update_place(ctx: ServiceContext, user_id: str, place_id: str, data) -> PlaceResponse:
    """
    Partially update a place.

    Only fields present in ``data`` are written; present fields set to None
    are cleared. Setting ``region_id`` moves the place, which needs place
    creation rights in the target region and recomputes both regions' counts.
    """
    request = UpdatePlaceRequest.model_validate(data)
    fields = request.model_dump(exclude_unset=True)

    async with ctx.repositories() as repos:
        actor = await resolve_actor(repos, user_id)
        place = await _load_place(repos, place_id)
        await require(repos, actor, Action.EDIT, place)
        if place.status == PlaceStatus.ARCHIVED.value and not actor.is_admin:
            raise ServiceError(ErrorKind.PLACE_ARCHIVED, "Archived places cannot be edited")

        source_region_id = place.region_id
        target_region_id = fields.get("region_id")
        if target_region_id == source_region_id:
            fields.pop("region_id")
            target_region_id = None
        if target_region_id is not None:
            target_region = await _load_region(repos, target_region_id)
            await require(repos, actor, Action.CREATE, target_region)

    async def update(repos):
        updated = await repos.places.update(place_id, fields)
        if updated is None:
            raise ServiceError(ErrorKind.PLACE_NOT_FOUND, "Place not found")
        if target_region_id is not None:
            await recompute_region_place_count(repos, source_region_id)
            await recompute_region_place_count(repos, target_region_id)
        return PlaceResponse.model_validate(updated)

    return await ctx.with_transaction(update)


@service_operation("delete_place")
async def delete_place(ctx: ServiceContext, user_id: str, place_id: str) -> None:
    """
    Delete a place that has no active check-ins.

    Hidden, reported and soft-deleted check-ins are removed with the place.
    When two deletes race, the loser gets PLACE_NOT_FOUND.
    """
    async with ctx.repositories() as repos:
        actor = await resolve_actor(repos, user_id)
        place = await _load_place(repos, place_id)
        await require(repos, actor, Action.DELETE, place)
        if await repos.checkins.has_active_checkins(place_id):
            raise ServiceError(
                ErrorKind.CONTENT_HAS_DEPENDENCIES,
                "Cannot delete place that has active check-ins",
            )
        region_id = place.region_id

    async def delete(repos):
        if not await repos.places.delete(place_id):
            raise ServiceError(ErrorKind.PLACE_NOT_FOUND, "Place not found")
        await recompute_region_place_count(repos, region_id)

    await ctx.with_transaction(delete)
    logger.info(f"Place {place_id} deleted by {user_id}")


async def _change_status(ctx: ServiceContext, place_id: str, status: PlaceStatus) -> PlaceResponse:
    async def change(repos):
        updated = await repos.places.update_status(place_id, status)
        if updated is None:
            raise ServiceError(ErrorKind.PLACE_NOT_FOUND, "Place not found")
        return PlaceResponse.model_validate(updated)

    return await ctx.with_transaction(change)


@service_operation("update_place_status")
async def update_place_status(
    ctx: ServiceContext, user_id: str, place_id: str, status: PlaceStatus
) -> PlaceResponse:
    """Publish, unpublish or archive a place the actor may edit."""
    status = coerce_enum(PlaceStatus, status, "status")
    async with ctx.repositories() as repos:
        actor = await resolve_actor(repos, user_id)
        place = await _load_place(repos, place_id)
        await require(repos, actor, Action.EDIT, place)
    return await _change_status(ctx, place_id, status)


@service_operation("admin_update_place_status")
async def admin_update_place_status(
    ctx: ServiceContext, user_id: str, place_id: str, status: PlaceStatus
) -> PlaceResponse:
    """Set any place's status (admin only)."""
    status = coerce_enum(PlaceStatus, status, "status")
    async with ctx.repositories() as repos:
        actor = await resolve_actor(repos, user_id)
        require_admin(actor, "Only administrators can manage place status")
        await _load_place(repos, place_id)
    place = await _change_status(ctx, place_id, status)
    logger.info(f"Admin {user_id} set place {place_id} to {status.value}")
    return place


# ============================================================================
# Queries
# ============================================================================


async def record_place_visit(ctx: ServiceContext, place_id: str) -> None:
    """Increment a place's visit counter. Callers treat this as best-effort."""

    async def increment(repos):
        await repos.places.increment_visit_count(place_id)

    await ctx.with_transaction(increment)


@service_operation("get_place")
async def get_place(
    ctx: ServiceContext,
    place_id: str,
    user_id: Optional[str] = None,
    record_visit: bool = True,
) -> PlaceResponse:
    """
    Fetch a place.

    Anonymous callers only see published places. A successful view of a
    published place bumps its visit counter; a failure there is only logged.
    """
    async with ctx.repositories() as repos:
        place = await _load_place(repos, place_id)
        if user_id is not None:
            actor = await resolve_actor(repos, user_id)
            await require(repos, actor, Action.VIEW, place)
        elif place.status != PlaceStatus.PUBLISHED.value:
            raise ServiceError(ErrorKind.PLACE_NOT_FOUND, "Place not found")
        response = PlaceResponse.model_validate(place)

    if record_visit and response.status == PlaceStatus.PUBLISHED:
        await run_best_effort(
            "place_visit_increment", record_place_visit(ctx, place_id), place_id=place_id
        )
    return response


@service_operation("list_places")
async def list_places(
    ctx: ServiceContext,
    filters: Optional[PlaceFilters] = None,
    page: int = 1,
    page_size: int = constants.DEFAULT_PAGE_SIZE,
    user_id: Optional[str] = None,
) -> PlaceListResponse:
    """
    Paginated place listing.

    Admins see every status; everyone else sees published places, plus their
    own places when filtering by themselves as creator.
    """
    filters = filters or PlaceFilters()
    page = max(1, page)
    page_size = max(1, min(page_size, constants.MAX_PAGE_SIZE))

    async with ctx.repositories() as repos:
        actor = await resolve_actor(repos, user_id) if user_id is not None else None
        sees_everything = actor is not None and (
            actor.is_admin or filters.created_by == actor.id
        )
        if not sees_everything:
            filters = replace(filters, status=PlaceStatus.PUBLISHED)
        places, total = await repos.places.list(
            filters, limit=page_size, offset=(page - 1) * page_size
        )
        return PlaceListResponse(
            items=[PlaceResponse.model_validate(p) for p in places],
            total_count=total,
            page=page,
            page_size=page_size,
        )


@service_operation("search_places")
async def search_places(
    ctx: ServiceContext, keyword: str, limit: int = constants.DEFAULT_PAGE_SIZE
) -> List[PlaceResponse]:
    """Keyword search over published places' name, description and address."""
    if not keyword or not keyword.strip():
        raise ServiceError(ErrorKind.VALIDATION_ERROR, "keyword: must not be empty")
    limit = max(1, min(limit, constants.MAX_PAGE_SIZE))
    async with ctx.repositories() as repos:
        places = await repos.places.search(keyword, limit=limit)
        return [PlaceResponse.model_validate(p) for p in places]


@service_operation("get_places_by_region")
async def get_places_by_region(
    ctx: ServiceContext, region_id: str, user_id: Optional[str] = None
) -> List[PlaceResponse]:
    """Places in a region. The region's owner and admins also see unpublished ones."""
    async with ctx.repositories() as repos:
        region = await _load_region(repos, region_id)
        status = PlaceStatus.PUBLISHED
        if user_id is not None:
            actor = await resolve_actor(repos, user_id)
            decision = await check(repos, actor, Action.EDIT, region)
            if decision.allowed:
                status = None
        places = await repos.places.get_by_region(region_id, status=status)
        return [PlaceResponse.model_validate(p) for p in places]


@service_operation("get_places_by_creator")
async def get_places_by_creator(ctx: ServiceContext, user_id: str) -> List[PlaceResponse]:
    """Every place the actor created, in any status."""
    async with ctx.repositories() as repos:
        await resolve_actor(repos, user_id)
        places = await repos.places.get_by_creator(user_id)
        return [PlaceResponse.model_validate(p) for p in places]


@service_operation("get_places_by_permission")
async def get_places_by_permission(ctx: ServiceContext, user_id: str) -> List[PlaceResponse]:
    """Places the actor may edit through an accepted editor permission."""
    async with ctx.repositories() as repos:
        await resolve_actor(repos, user_id)
        places = await repos.places.get_by_permission(user_id)
        return [PlaceResponse.model_validate(p) for p in places]


@service_operation("get_map_locations")
async def get_map_locations(
    ctx: ServiceContext, region_id: Optional[str] = None
) -> List[MapLocation]:
    """Marker data for published places, optionally limited to one region."""
    async with ctx.repositories() as repos:
        places = await repos.places.get_map_locations(region_id)
        return [MapLocation.model_validate(p) for p in places]
