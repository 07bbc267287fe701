"""
Tests for the authorization resolver.
"""
import pytest

from kissa.database.models import Checkin, Place, PlaceStatus, Region, RegionStatus, UserRole, UserStatus
from kissa.services.authorization import Action, authorize
from kissa.services.context import Repositories
from kissa.services.errors import ErrorKind


async def decide(session_factory, actor_id, action, model=None, target_id=None, **kwargs):
    async with session_factory() as session:
        repos = Repositories(session)
        target = await session.get(model, target_id) if model else None
        return await authorize(repos, actor_id, action, target, **kwargs)


@pytest.mark.asyncio
async def test_unknown_and_inactive_actors(session_factory, seed, place):
    suspended = await seed.user(role=UserRole.ADMIN, status=UserStatus.SUSPENDED)

    unknown = await decide(session_factory, "missing", Action.VIEW, Place, place.id)
    inactive = await decide(session_factory, suspended.id, Action.VIEW, Place, place.id)

    assert unknown.error.kind == ErrorKind.USER_NOT_FOUND
    assert inactive.error.kind == ErrorKind.USER_INACTIVE


@pytest.mark.asyncio
async def test_admin_may_edit_anything(session_factory, place, admin):
    decision = await decide(session_factory, admin.id, Action.DELETE, Place, place.id)
    assert decision.allowed
    assert decision.actor.id == admin.id


@pytest.mark.asyncio
async def test_region_creation_requires_role(session_factory, editor, visitor):
    allowed = await decide(session_factory, editor.id, Action.CREATE)
    denied = await decide(session_factory, visitor.id, Action.CREATE)

    assert allowed.allowed
    assert denied.error.kind == ErrorKind.INSUFFICIENT_PERMISSIONS


@pytest.mark.asyncio
async def test_place_creation_requires_region_ownership(session_factory, seed, region, admin, visitor):
    other_editor = await seed.user(role=UserRole.EDITOR)

    owner = await decide(session_factory, region.created_by, Action.CREATE, Region, region.id)
    by_admin = await decide(session_factory, admin.id, Action.CREATE, Region, region.id)
    stranger = await decide(session_factory, other_editor.id, Action.CREATE, Region, region.id)
    no_role = await decide(session_factory, visitor.id, Action.CREATE, Region, region.id)

    assert owner.allowed
    assert by_admin.allowed
    assert stranger.error.kind == ErrorKind.UNAUTHORIZED
    assert no_role.error.kind == ErrorKind.INSUFFICIENT_PERMISSIONS


@pytest.mark.asyncio
async def test_delegated_place_permissions(session_factory, seed, place, editor, visitor):
    """Test permission flags and acceptance gate edit and delete separately."""
    pending_user = await seed.user()
    await seed.permission(place, visitor, invited_by=editor, can_edit=True, can_delete=False)
    await seed.permission(place, pending_user, invited_by=editor, accepted=False)

    edit = await decide(session_factory, visitor.id, Action.EDIT, Place, place.id)
    delete = await decide(session_factory, visitor.id, Action.DELETE, Place, place.id)
    pending = await decide(session_factory, pending_user.id, Action.EDIT, Place, place.id)
    pending_lookup = await decide(
        session_factory, pending_user.id, Action.EDIT, Place, place.id, require_accepted=False
    )

    assert edit.allowed
    assert delete.error.kind == ErrorKind.UNAUTHORIZED
    assert pending.error.kind == ErrorKind.UNAUTHORIZED
    assert pending_lookup.allowed


@pytest.mark.asyncio
async def test_draft_place_visibility(session_factory, seed, region, editor, visitor):
    draft = await seed.place(region, editor, status=PlaceStatus.DRAFT)

    creator = await decide(session_factory, editor.id, Action.VIEW, Place, draft.id)
    other = await decide(session_factory, visitor.id, Action.VIEW, Place, draft.id)

    assert creator.allowed
    assert other.error.kind == ErrorKind.UNAUTHORIZED


@pytest.mark.asyncio
async def test_region_view_and_edit(session_factory, seed, editor, visitor):
    published = await seed.region(editor)
    draft = await seed.region(editor, status=RegionStatus.DRAFT)

    view_published = await decide(session_factory, visitor.id, Action.VIEW, Region, published.id)
    view_draft = await decide(session_factory, visitor.id, Action.VIEW, Region, draft.id)
    edit_published = await decide(session_factory, visitor.id, Action.EDIT, Region, published.id)

    assert view_published.allowed
    assert view_draft.error.kind == ErrorKind.UNAUTHORIZED
    assert edit_published.error.kind == ErrorKind.UNAUTHORIZED


@pytest.mark.asyncio
async def test_checkin_rules(session_factory, seed, place, editor, visitor, admin):
    public = await seed.checkin(visitor, place)
    private = await seed.checkin(visitor, place, is_private=True)

    author_edit = await decide(session_factory, visitor.id, Action.EDIT, Checkin, private.id)
    other_view_public = await decide(session_factory, editor.id, Action.VIEW, Checkin, public.id)
    other_view_private = await decide(session_factory, editor.id, Action.VIEW, Checkin, private.id)
    other_edit = await decide(session_factory, editor.id, Action.EDIT, Checkin, public.id)
    admin_view_private = await decide(session_factory, admin.id, Action.VIEW, Checkin, private.id)

    assert author_edit.allowed
    assert other_view_public.allowed
    assert other_view_private.error.kind == ErrorKind.UNAUTHORIZED
    assert other_edit.error.kind == ErrorKind.UNAUTHORIZED
    assert admin_view_private.allowed
