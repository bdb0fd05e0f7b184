"""
Project visibility levels.

Levels are ordered by restrictiveness: a lower value is more restrictive.
Non-admin users may not set a level that appears in the instance-wide
``restricted_visibility_levels`` setting.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Iterable, List, Optional

from codehost.exceptions import InvalidVisibilityLevel


class VisibilityLevel(IntEnum):
    """Visibility of a project, ordered from most to least restrictive."""

    PRIVATE = 0
    INTERNAL = 10
    PUBLIC = 20

    @property
    def label(self) -> str:
        return self.name.lower()

    @classmethod
    def from_value(cls, value: Any) -> "VisibilityLevel":
        """Map an int (0/10/20) or a level name to a VisibilityLevel."""
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            raise InvalidVisibilityLevel(f"Invalid visibility level: {value!r}")
        if isinstance(value, int):
            try:
                return cls(value)
            except ValueError:
                raise InvalidVisibilityLevel(
                    f"Invalid visibility level: {value!r}"
                ) from None
        if isinstance(value, str):
            text = value.strip()
            if text.lstrip("-").isdigit():
                return cls.from_value(int(text))
            try:
                return cls[text.upper()]
            except KeyError:
                raise InvalidVisibilityLevel(
                    f"Invalid visibility level: {value!r}"
                ) from None
        raise InvalidVisibilityLevel(f"Invalid visibility level: {value!r}")


def parse_restricted_levels(raw: str) -> List[VisibilityLevel]:
    """
    Parse a comma-separated list of visibility levels.

    Examples:
        "public" -> [VisibilityLevel.PUBLIC]
        " 20 , internal " -> [VisibilityLevel.PUBLIC, VisibilityLevel.INTERNAL]
        "" -> []
    """
    if not raw or not raw.strip():
        return []

    items = [item.strip() for item in raw.split(",")]
    return [VisibilityLevel.from_value(item) for item in items if item]


def _default_restricted_levels() -> List[VisibilityLevel]:
    from codehost.config import get_settings

    return parse_restricted_levels(get_settings().restricted_visibility_levels)


def allowed_for(
    user: Any,
    level: Any,
    restricted: Optional[Iterable[VisibilityLevel]] = None,
) -> bool:
    """Return True if ``user`` may set ``level`` under the global allow-list.

    Admins may set any level; an unknown level is left to project
    validation. Everyone else may set any known level that is not restricted.
    """
    if user is not None and getattr(user, "is_admin", False):
        return True

    try:
        level = VisibilityLevel.from_value(level)
    except InvalidVisibilityLevel:
        return False

    if restricted is None:
        restricted = _default_restricted_levels()

    return level not in set(restricted)


def is_more_restrictive(level: Any, than: Any) -> bool:
    """Return True if ``level`` is strictly more restrictive than ``than``."""
    return VisibilityLevel.from_value(level) < VisibilityLevel.from_value(than)
