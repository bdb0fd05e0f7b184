"""Project permission policy."""

from .permissions import ROLE_ABILITIES, Action, Role, can, roles_for

__all__ = ["Action", "ROLE_ABILITIES", "Role", "can", "roles_for"]
