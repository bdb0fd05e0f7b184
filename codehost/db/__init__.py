"""
Database package for codehost.
"""

from .base import Base, get_engine, get_session_local, init_database
from .models import (
    NamespaceModel,
    ProjectMemberModel,
    ProjectModel,
    SystemHookModel,
    UserModel,
)

__all__ = [
    "Base",
    "get_engine",
    "get_session_local",
    "init_database",
    "NamespaceModel",
    "ProjectMemberModel",
    "ProjectModel",
    "SystemHookModel",
    "UserModel",
]
