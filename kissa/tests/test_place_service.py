"""
Tests for the place lifecycle and place queries.
"""
import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from kissa.database.models import (
    Checkin,
    CheckinStatus,
    Place,
    PlaceCategory,
    PlaceStatus,
    Region,
    UserRole,
)
from kissa.repositories.place_repository import PlaceFilters
from kissa.services import checkin_service, place_service
from kissa.services.errors import ErrorKind
from kissa.tests.conftest import TOKYO


def new_place(region_id, **overrides):
    data = {
        "region_id": region_id,
        "name": "Coffee Dream",
        "category": "cafe",
        "coordinates": {"latitude": TOKYO[0], "longitude": TOKYO[1]},
        "address": "2-1 Dogenzaka, Shibuya, Tokyo",
        "website": "https://coffee-dream.example.jp",
    }
    data.update(overrides)
    return data


# ============================================================================
# Create
# ============================================================================

@pytest.mark.asyncio
async def test_create_place(ctx, seed, region, editor):
    """Test a new place starts as a draft with zeroed counters and bumps the region count."""
    result = await place_service.create_place(ctx, editor.id, new_place(region.id))

    assert result.is_ok
    place = result.value
    assert place.status == PlaceStatus.DRAFT
    assert place.created_by == editor.id
    assert place.category == PlaceCategory.CAFE
    assert place.checkin_count == 0
    assert place.visit_count == 0
    assert place.favorite_count == 0
    assert place.average_rating is None
    assert (await seed.get(Region, region.id)).place_count == 1


@pytest.mark.asyncio
async def test_create_place_requires_editor_role(ctx, region, visitor):
    result = await place_service.create_place(ctx, visitor.id, new_place(region.id))
    assert result.kind == ErrorKind.INSUFFICIENT_PERMISSIONS


@pytest.mark.asyncio
async def test_create_place_requires_region_ownership(ctx, seed, region):
    other_editor = await seed.user(role=UserRole.EDITOR)

    result = await place_service.create_place(ctx, other_editor.id, new_place(region.id))

    assert result.kind == ErrorKind.UNAUTHORIZED


@pytest.mark.asyncio
async def test_admin_can_create_place_in_any_region(ctx, region, admin):
    result = await place_service.create_place(ctx, admin.id, new_place(region.id))
    assert result.is_ok


@pytest.mark.asyncio
async def test_create_place_unknown_region(ctx, editor):
    result = await place_service.create_place(ctx, editor.id, new_place("missing"))
    assert result.kind == ErrorKind.REGION_NOT_FOUND


@pytest.mark.asyncio
async def test_create_place_validation(ctx, region, editor):
    """Test bad category, coordinates, URL and email are validation errors."""
    cases = [
        new_place(region.id, category="spaceport"),
        new_place(region.id, coordinates={"latitude": 10, "longitude": 181}),
        new_place(region.id, website="not a url"),
        new_place(region.id, email="nobody"),
        new_place(region.id, name=""),
    ]
    for data in cases:
        result = await place_service.create_place(ctx, editor.id, data)
        assert result.kind == ErrorKind.VALIDATION_ERROR, data


# ============================================================================
# Update
# ============================================================================

@pytest.mark.asyncio
async def test_update_place_partial(ctx, seed, region, editor):
    """Test omitted fields stay, explicit None clears, and counters can't be set."""
    place = await seed.place(region, editor, description="Old school kissaten")

    result = await place_service.update_place(
        ctx,
        editor.id,
        place.id,
        {"name": "Tanpopo Coffee", "description": None, "checkin_count": 99, "status": "archived"},
    )

    assert result.is_ok
    updated = result.value
    assert updated.name == "Tanpopo Coffee"
    assert updated.description is None
    assert updated.address == place.address
    assert updated.checkin_count == 0
    assert updated.status == PlaceStatus.PUBLISHED


@pytest.mark.asyncio
async def test_update_place_cannot_clear_required_field(ctx, seed, region, editor):
    place = await seed.place(region, editor)

    result = await place_service.update_place(ctx, editor.id, place.id, {"name": None})

    assert result.kind == ErrorKind.VALIDATION_ERROR


@pytest.mark.asyncio
async def test_update_place_coordinates(ctx, seed, region, editor):
    place = await seed.place(region, editor)

    result = await place_service.update_place(
        ctx, editor.id, place.id, {"coordinates": {"latitude": 35.0, "longitude": 139.0}}
    )

    assert result.value.coordinates.latitude == 35.0
    assert result.value.coordinates.longitude == 139.0


@pytest.mark.asyncio
async def test_update_place_delegated_permission(ctx, seed, place, editor, visitor):
    """Test an accepted can_edit permission grants edit rights; a pending one does not."""
    helper = await seed.user()
    await seed.permission(place, visitor, invited_by=editor, accepted=True)
    await seed.permission(place, helper, invited_by=editor, accepted=False)

    accepted = await place_service.update_place(ctx, visitor.id, place.id, {"phone": "03-1234-5678"})
    pending = await place_service.update_place(ctx, helper.id, place.id, {"phone": "03-0000-0000"})

    assert accepted.is_ok
    assert accepted.value.phone == "03-1234-5678"
    assert pending.kind == ErrorKind.UNAUTHORIZED


@pytest.mark.asyncio
async def test_update_archived_place(ctx, seed, region, editor, admin):
    place = await seed.place(region, editor, status=PlaceStatus.ARCHIVED)

    by_owner = await place_service.update_place(ctx, editor.id, place.id, {"name": "Reopened"})
    by_admin = await place_service.update_place(ctx, admin.id, place.id, {"name": "Reopened"})

    assert by_owner.kind == ErrorKind.PLACE_ARCHIVED
    assert by_admin.is_ok


@pytest.mark.asyncio
async def test_move_place_between_regions(ctx, seed, region, editor):
    """Test moving a place recomputes both regions' place counts."""
    target = await seed.region(editor, name="Shimokitazawa")
    created = await place_service.create_place(ctx, editor.id, new_place(region.id))
    await place_service.create_place(ctx, editor.id, new_place(region.id, name="Second"))

    result = await place_service.update_place(
        ctx, editor.id, created.value.id, {"region_id": target.id}
    )

    assert result.is_ok
    assert result.value.region_id == target.id
    assert (await seed.get(Region, region.id)).place_count == 1
    assert (await seed.get(Region, target.id)).place_count == 1


@pytest.mark.asyncio
async def test_move_place_needs_rights_in_target_region(ctx, seed, place, editor):
    stranger = await seed.user(role=UserRole.EDITOR)
    foreign_region = await seed.region(stranger, name="Elsewhere")

    result = await place_service.update_place(
        ctx, editor.id, place.id, {"region_id": foreign_region.id}
    )

    assert result.kind == ErrorKind.UNAUTHORIZED
    assert (await seed.get(Place, place.id)).region_id == place.region_id


# ============================================================================
# Delete
# ============================================================================

@pytest.mark.asyncio
async def test_delete_place_blocked_by_active_checkin(ctx, seed, place, editor, visitor, admin):
    """Test an active check-in blocks deletion until it is moderated away."""
    checkin = await seed.checkin(visitor, place)

    blocked = await place_service.delete_place(ctx, editor.id, place.id)
    assert blocked.kind == ErrorKind.CONTENT_HAS_DEPENDENCIES

    assert (await checkin_service.moderate_checkin(ctx, admin.id, checkin.id, "hidden")).is_ok
    deleted = await place_service.delete_place(ctx, editor.id, place.id)

    assert deleted.is_ok
    assert await seed.get(Place, place.id) is None
    assert await seed.get(Checkin, checkin.id) is None


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [CheckinStatus.REPORTED, CheckinStatus.DELETED])
async def test_delete_place_with_inactive_checkins(ctx, seed, place, editor, visitor, status):
    await seed.checkin(visitor, place, status=status)

    result = await place_service.delete_place(ctx, editor.id, place.id)

    assert result.is_ok


@pytest.mark.asyncio
async def test_delete_place_updates_region_count(ctx, seed, region, editor):
    first = await place_service.create_place(ctx, editor.id, new_place(region.id))
    await place_service.create_place(ctx, editor.id, new_place(region.id, name="Other"))
    assert (await seed.get(Region, region.id)).place_count == 2

    result = await place_service.delete_place(ctx, editor.id, first.value.id)

    assert result.is_ok
    assert (await seed.get(Region, region.id)).place_count == 1


@pytest.mark.asyncio
async def test_delete_place_authorization(ctx, seed, place, editor, visitor):
    """Test can_edit alone does not allow deletion but can_delete does."""
    deleter = await seed.user()
    await seed.permission(place, visitor, invited_by=editor, can_edit=True, can_delete=False)
    await seed.permission(place, deleter, invited_by=editor, can_edit=False, can_delete=True)

    denied = await place_service.delete_place(ctx, visitor.id, place.id)
    allowed = await place_service.delete_place(ctx, deleter.id, place.id)

    assert denied.kind == ErrorKind.UNAUTHORIZED
    assert allowed.is_ok
    async with ctx.repositories() as repos:
        assert await repos.permissions.find_by_place(place.id) == []


@pytest.mark.asyncio
async def test_concurrent_deletes(ctx, seed, place, editor):
    """Test exactly one of two racing deletes wins; the other sees PLACE_NOT_FOUND."""
    results = await asyncio.gather(
        place_service.delete_place(ctx, editor.id, place.id),
        place_service.delete_place(ctx, editor.id, place.id),
    )

    assert sum(1 for r in results if r.is_ok) == 1
    assert [r.kind for r in results if not r.is_ok] == [ErrorKind.PLACE_NOT_FOUND]
    assert await seed.get(Place, place.id) is None


# ============================================================================
# Status changes
# ============================================================================

@pytest.mark.asyncio
async def test_publish_own_place(ctx, seed, region, editor, visitor):
    place = await seed.place(region, editor, status=PlaceStatus.DRAFT)

    denied = await place_service.update_place_status(ctx, visitor.id, place.id, "published")
    published = await place_service.update_place_status(ctx, editor.id, place.id, "published")

    assert denied.kind == ErrorKind.UNAUTHORIZED
    assert published.value.status == PlaceStatus.PUBLISHED


@pytest.mark.asyncio
async def test_admin_update_place_status(ctx, place, editor, admin):
    denied = await place_service.admin_update_place_status(ctx, editor.id, place.id, "archived")
    archived = await place_service.admin_update_place_status(ctx, admin.id, place.id, "archived")

    assert denied.kind == ErrorKind.INSUFFICIENT_PERMISSIONS
    assert archived.value.status == PlaceStatus.ARCHIVED


# ============================================================================
# Queries
# ============================================================================

@pytest.mark.asyncio
async def test_get_place_records_visit(ctx, seed, place):
    result = await place_service.get_place(ctx, place.id)

    assert result.is_ok
    assert result.value.visit_count == 0
    assert (await seed.get(Place, place.id)).visit_count == 1


@pytest.mark.asyncio
async def test_get_place_visit_failure_is_not_fatal(ctx, seed, place, caplog):
    """Test a failing visit counter is logged and the place is still returned."""
    broken = AsyncMock(side_effect=RuntimeError("counter table locked"))
    with patch.object(ctx, "with_transaction", broken):
        result = await place_service.get_place(ctx, place.id)

    assert result.is_ok
    assert "place_visit_increment failed" in caplog.text


@pytest.mark.asyncio
async def test_get_draft_place_visibility(ctx, seed, region, editor, visitor):
    draft = await seed.place(region, editor, status=PlaceStatus.DRAFT)

    anonymous = await place_service.get_place(ctx, draft.id)
    stranger = await place_service.get_place(ctx, draft.id, user_id=visitor.id)
    owner = await place_service.get_place(ctx, draft.id, user_id=editor.id)

    assert anonymous.kind == ErrorKind.PLACE_NOT_FOUND
    assert stranger.kind == ErrorKind.UNAUTHORIZED
    assert owner.is_ok
    assert (await seed.get(Place, draft.id)).visit_count == 0


@pytest.mark.asyncio
async def test_list_places_paging_and_filters(ctx, seed, region, editor):
    for n in range(5):
        await seed.place(region, editor, name=f"Cafe {n}")
    await seed.place(region, editor, name="Ramen Ya", category=PlaceCategory.RESTAURANT)
    await seed.place(region, editor, name="Hidden Draft", status=PlaceStatus.DRAFT)

    first = await place_service.list_places(ctx, PlaceFilters(category=PlaceCategory.CAFE), page=1, page_size=2)
    last = await place_service.list_places(ctx, PlaceFilters(category=PlaceCategory.CAFE), page=3, page_size=2)
    everything = await place_service.list_places(ctx)

    assert first.value.total_count == 5
    assert len(first.value.items) == 2
    assert len(last.value.items) == 1
    assert everything.value.total_count == 6


@pytest.mark.asyncio
async def test_list_places_own_drafts(ctx, seed, region, editor):
    await seed.place(region, editor, name="Draft", status=PlaceStatus.DRAFT)

    mine = await place_service.list_places(ctx, PlaceFilters(created_by=editor.id), user_id=editor.id)

    assert [p.name for p in mine.value.items] == ["Draft"]


@pytest.mark.asyncio
async def test_search_places(ctx, seed, region, editor):
    await seed.place(region, editor, name="Blue Bottle", description="Pour-over coffee")
    await seed.place(region, editor, name="Ichiran", category=PlaceCategory.RESTAURANT)
    await seed.place(region, editor, name="Coffee Lab", status=PlaceStatus.DRAFT)

    result = await place_service.search_places(ctx, "COFFEE")
    empty = await place_service.search_places(ctx, "   ")

    assert [p.name for p in result.value] == ["Blue Bottle"]
    assert empty.kind == ErrorKind.VALIDATION_ERROR


@pytest.mark.asyncio
async def test_search_treats_wildcards_literally(ctx, seed, region, editor):
    await seed.place(region, editor, name="Blue Bottle")
    await seed.place(region, editor, name="Ichiran")
    await seed.place(region, editor, name="Cafe_100%")

    underscore = await place_service.search_places(ctx, "_")
    percent = await place_service.search_places(ctx, "%")
    listed = await place_service.list_places(ctx, PlaceFilters(keyword="e_1"))

    assert [p.name for p in underscore.value] == ["Cafe_100%"]
    assert [p.name for p in percent.value] == ["Cafe_100%"]
    assert [p.name for p in listed.value.items] == ["Cafe_100%"]


@pytest.mark.asyncio
async def test_places_by_region_creator_and_permission(ctx, seed, region, editor, visitor):
    published = await seed.place(region, editor, name="A Published")
    await seed.place(region, editor, name="B Draft", status=PlaceStatus.DRAFT)
    await seed.permission(published, visitor, invited_by=editor)

    public_view = await place_service.get_places_by_region(ctx, region.id)
    owner_view = await place_service.get_places_by_region(ctx, region.id, user_id=editor.id)
    created = await place_service.get_places_by_creator(ctx, editor.id)
    shared = await place_service.get_places_by_permission(ctx, visitor.id)

    assert [p.name for p in public_view.value] == ["A Published"]
    assert [p.name for p in owner_view.value] == ["A Published", "B Draft"]
    assert len(created.value) == 2
    assert [p.id for p in shared.value] == [published.id]


@pytest.mark.asyncio
async def test_get_map_locations(ctx, seed, region, editor):
    await seed.place(region, editor, name="On Map")
    await seed.place(region, editor, name="Off Map", status=PlaceStatus.DRAFT)

    result = await place_service.get_map_locations(ctx, region_id=region.id)

    assert [m.name for m in result.value] == ["On Map"]
    assert result.value[0].coordinates.latitude == TOKYO[0]
