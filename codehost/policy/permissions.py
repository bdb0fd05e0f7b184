"""
Project permission policy.

Permissions are evaluated in two explicit steps:

1. ``roles_for(user, project)`` resolves the set of roles the user holds on
   the project (instance admin, namespace owner, membership access level,
   or implicit read access from the project's visibility).
2. ``can(user, action, project)`` grants the action if any role in that set
   carries it, according to ``ROLE_ABILITIES``.

Blocked users hold no roles. Both functions are pure: they read the ORM
objects they are given and never query the database themselves.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, FrozenSet, Optional

from codehost.db.models import DEVELOPER, GUEST, MASTER, OWNER, REPORTER
from codehost.projects.visibility import VisibilityLevel


class Action(str, Enum):
    """Actions a user may attempt on a project."""

    READ_PROJECT = "read_project"
    ADMIN_PROJECT = "admin_project"
    CHANGE_VISIBILITY_LEVEL = "change_visibility_level"
    RENAME_PROJECT = "rename_project"
    REMOVE_PROJECT = "remove_project"


class Role(str, Enum):
    """Roles a user may hold on a project."""

    ADMIN = "admin"
    OWNER = "owner"
    MASTER = "master"
    DEVELOPER = "developer"
    REPORTER = "reporter"
    GUEST = "guest"
    ANONYMOUS = "anonymous"


_READ = frozenset({Action.READ_PROJECT})
_MASTER = _READ | {Action.ADMIN_PROJECT}
_OWNER = _MASTER | {
    Action.CHANGE_VISIBILITY_LEVEL,
    Action.RENAME_PROJECT,
    Action.REMOVE_PROJECT,
}

ROLE_ABILITIES: Dict[Role, FrozenSet[Action]] = {
    Role.ADMIN: frozenset(Action),
    Role.OWNER: _OWNER,
    Role.MASTER: _MASTER,
    Role.DEVELOPER: _READ,
    Role.REPORTER: _READ,
    Role.GUEST: _READ,
    Role.ANONYMOUS: frozenset(),
}

_ACCESS_LEVEL_ROLES = (
    (OWNER, Role.OWNER),
    (MASTER, Role.MASTER),
    (DEVELOPER, Role.DEVELOPER),
    (REPORTER, Role.REPORTER),
    (GUEST, Role.GUEST),
)


def _role_for_access_level(access_level: int) -> Optional[Role]:
    for threshold, role in _ACCESS_LEVEL_ROLES:
        if access_level >= threshold:
            return role
    return None


def _member_access_level(user: Any, project: Any) -> Optional[int]:
    for member in project.members or []:
        if member.user_id == user.id:
            return member.access_level
    return None


def roles_for(user: Any, project: Any) -> FrozenSet[Role]:
    """Resolve the roles ``user`` holds on ``project``.

    Args:
        user: A UserModel, or None for an anonymous request
        project: A ProjectModel

    Returns:
        A frozenset of Role values; empty for blocked users
    """
    if user is None:
        if project.visibility_level == VisibilityLevel.PUBLIC:
            return frozenset({Role.GUEST, Role.ANONYMOUS})
        return frozenset({Role.ANONYMOUS})

    if getattr(user, "is_blocked", False):
        return frozenset()

    roles = set()

    if getattr(user, "is_admin", False):
        roles.add(Role.ADMIN)

    namespace = project.namespace
    if namespace is not None and namespace.owner_id == user.id:
        roles.add(Role.OWNER)

    access_level = _member_access_level(user, project)
    if access_level is not None:
        role = _role_for_access_level(access_level)
        if role is not None:
            roles.add(role)

    # Signed-in users can read internal and public projects
    if project.visibility_level >= VisibilityLevel.INTERNAL:
        roles.add(Role.GUEST)

    return frozenset(roles)


def can(user: Any, action: Action, project: Any) -> bool:
    """Return True if ``user`` may perform ``action`` on ``project``."""
    action = Action(action)
    return any(action in ROLE_ABILITIES[role] for role in roles_for(user, project))
