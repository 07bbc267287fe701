"""
Authorization resolver.

Decides whether an actor may perform an action on a region, place or
check-in. Rules are applied in priority order:

1. The actor must exist and be active.
2. Admins may view, edit and delete anything.
3. Creating regions or places requires the editor or admin role.
4. Creating a place inside a region requires owning that region (or admin).
5. Editing or deleting a place requires being its creator, an admin, or
   holding a permission with the matching flag.
6. Editing or deleting a check-in requires being its author (or admin).
"""

import enum
from dataclasses import dataclass
from typing import Optional, Union

from kissa.database.models import (
    Checkin,
    CheckinStatus,
    Place,
    PlaceStatus,
    Region,
    RegionStatus,
    User,
    UserRole,
)
from kissa.services.errors import ErrorKind, ServiceError


class Action(str, enum.Enum):
    VIEW = "view"
    CREATE = "create"
    EDIT = "edit"
    DELETE = "delete"


Target = Union[Region, Place, Checkin, None]


@dataclass
class Decision:
    """Outcome of an authorization check; ``error`` is set when denied."""

    allowed: bool
    actor: Optional[User] = None
    error: Optional[ServiceError] = None


def _deny(kind: ErrorKind, message: str, actor: Optional[User] = None) -> Decision:
    return Decision(allowed=False, actor=actor, error=ServiceError(kind, message))


def is_content_creator(user: User) -> bool:
    return user.role in (UserRole.EDITOR.value, UserRole.ADMIN.value)


async def resolve_actor(repos, user_id: str) -> User:
    """
    Load the acting user.

    Raises:
        ServiceError: USER_NOT_FOUND or USER_INACTIVE
    """
    user = await repos.users.find_by_id(user_id) if user_id else None
    if user is None:
        raise ServiceError(ErrorKind.USER_NOT_FOUND, "User not found")
    if not user.is_active:
        raise ServiceError(ErrorKind.USER_INACTIVE, "User account is not active")
    return user


def require_admin(
    actor: User,
    message: str = "Administrator role required",
    kind: ErrorKind = ErrorKind.INSUFFICIENT_PERMISSIONS,
) -> None:
    if not actor.is_admin:
        raise ServiceError(kind, message)


async def _decide_for_place(
    repos, actor: User, action: Action, place: Place, require_accepted: bool
) -> Decision:
    if action == Action.VIEW:
        if place.status == PlaceStatus.PUBLISHED.value or place.created_by == actor.id:
            return Decision(True, actor)
        if await repos.places.check_edit_permission(place.id, actor.id, require_accepted):
            return Decision(True, actor)
        return _deny(ErrorKind.UNAUTHORIZED, "You don't have access to this place", actor)

    if action == Action.EDIT:
        if await repos.places.check_edit_permission(place.id, actor.id, require_accepted):
            return Decision(True, actor)
        return _deny(ErrorKind.UNAUTHORIZED, "You don't have permission to edit this place", actor)

    if action == Action.DELETE:
        if await repos.places.check_delete_permission(place.id, actor.id, require_accepted):
            return Decision(True, actor)
        return _deny(
            ErrorKind.UNAUTHORIZED, "You don't have permission to delete this place", actor
        )

    return _deny(ErrorKind.UNAUTHORIZED, f"Cannot {action.value} a place this way", actor)


def _decide_for_region(actor: User, action: Action, region: Region) -> Decision:
    if action == Action.CREATE:
        # Creating a place inside this region
        if not is_content_creator(actor):
            return _deny(
                ErrorKind.INSUFFICIENT_PERMISSIONS,
                "Only editors can create places",
                actor,
            )
        if region.created_by == actor.id:
            return Decision(True, actor)
        return _deny(
            ErrorKind.UNAUTHORIZED, "You can only add places to regions you own", actor
        )

    if action == Action.VIEW and region.status == RegionStatus.PUBLISHED.value:
        return Decision(True, actor)
    if region.created_by == actor.id:
        return Decision(True, actor)
    return _deny(
        ErrorKind.UNAUTHORIZED, f"You don't have permission to {action.value} this region", actor
    )


def _decide_for_checkin(actor: User, action: Action, checkin: Checkin) -> Decision:
    if checkin.user_id == actor.id:
        return Decision(True, actor)
    if (
        action == Action.VIEW
        and not checkin.is_private
        and checkin.status == CheckinStatus.ACTIVE.value
    ):
        return Decision(True, actor)
    return _deny(
        ErrorKind.UNAUTHORIZED, f"Unauthorized to {action.value} this checkin", actor
    )


async def check(
    repos,
    actor: User,
    action: Action,
    target: Target = None,
    *,
    require_accepted: bool = True,
) -> Decision:
    """Apply rules 2-6 for an actor that has already been resolved."""
    if actor.is_admin and action in (Action.VIEW, Action.EDIT, Action.DELETE):
        return Decision(True, actor)

    if action == Action.CREATE and target is None:
        if is_content_creator(actor):
            return Decision(True, actor)
        return _deny(
            ErrorKind.INSUFFICIENT_PERMISSIONS, "Only editors can create regions", actor
        )

    if isinstance(target, Region):
        if action == Action.CREATE and actor.is_admin:
            return Decision(True, actor)
        return _decide_for_region(actor, action, target)
    if isinstance(target, Place):
        return await _decide_for_place(repos, actor, action, target, require_accepted)
    if isinstance(target, Checkin):
        return _decide_for_checkin(actor, action, target)

    return _deny(ErrorKind.UNAUTHORIZED, "Unsupported authorization target", actor)


async def authorize(
    repos,
    actor_id: str,
    action: Action,
    target: Target = None,
    *,
    require_accepted: bool = True,
) -> Decision:
    """
    Decide whether ``actor_id`` may perform ``action`` on ``target``.

    Args:
        repos: Repositories bundle for the current session
        actor_id: Acting user's ID
        action: Requested action
        target: Region, Place or Checkin. For ``Action.CREATE`` a None target
            means creating a region and a Region target means creating a
            place inside it.
        require_accepted: Whether delegated place permissions only count
            once accepted. Invitation flows look permissions up without it.

    Returns:
        Decision carrying the resolved actor and, when denied, the error
    """
    try:
        actor = await resolve_actor(repos, actor_id)
    except ServiceError as e:
        return Decision(allowed=False, error=e)
    return await check(repos, actor, action, target, require_accepted=require_accepted)


async def require(
    repos,
    actor: User,
    action: Action,
    target: Target = None,
    *,
    require_accepted: bool = True,
) -> None:
    """Raise the denial if ``actor`` may not perform ``action`` on ``target``."""
    decision = await check(repos, actor, action, target, require_accepted=require_accepted)
    if not decision.allowed:
        raise decision.error
