"""Ownership and team-role checks.

Every check is a pure function over already-loaded rows and returns a
``Decision``; the service layer turns a denial into ``NotFound`` or
``Forbidden`` with ``enforce``. Existence is always decided before
ownership, so a missing row is reported as not found even to strangers.
"""

from enum import Enum
from typing import Iterable, Optional, Protocol

from errors import Forbidden, NotFound
from models import Team, TeamMember


class Decision(str, Enum):
    allow = "allow"
    forbidden = "forbidden"
    not_found = "not_found"


class Owned(Protocol):
    user_id: int


def owns_resource(resource: Optional[Owned], user_id: int) -> Decision:
    if resource is None:
        return Decision.not_found
    if resource.user_id != user_id:
        return Decision.forbidden
    return Decision.allow


def is_member(members: Iterable[TeamMember], user_id: int) -> bool:
    return any(member.user_id == user_id for member in members)


def can_view_team(
    team: Optional[Team], members: Iterable[TeamMember], user_id: int
) -> Decision:
    if team is None:
        return Decision.not_found
    if team.owner_id == user_id or is_member(members, user_id):
        return Decision.allow
    return Decision.forbidden


def can_add_member(team: Optional[Team], user_id: int) -> Decision:
    if team is None:
        return Decision.not_found
    if team.owner_id != user_id:
        return Decision.forbidden
    return Decision.allow


def can_remove_member(
    team: Optional[Team], user_id: int, target_user_id: int
) -> Decision:
    if team is None:
        return Decision.not_found
    if team.owner_id == user_id or target_user_id == user_id:
        return Decision.allow
    return Decision.forbidden


def is_removable(team: Team, target_user_id: int) -> bool:
    return target_user_id != team.owner_id


def enforce(
    decision: Decision,
    not_found: str = "Not found",
    forbidden: str = "Access denied",
) -> None:
    if decision == Decision.not_found:
        raise NotFound(not_found)
    if decision == Decision.forbidden:
        raise Forbidden(forbidden)
