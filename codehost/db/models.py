"""
SQLAlchemy models for codehost.
"""

from typing import Any, Dict, Optional

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from ..projects.errors import Errors
from ..projects.visibility import VisibilityLevel
from .base import Base


# Project membership access levels
GUEST = 10
REPORTER = 20
DEVELOPER = 30
MASTER = 40
OWNER = 50


class UserModel(Base):
    """A user account; the actor performing changes."""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=True)
    email = Column(String(255), nullable=True)
    is_admin = Column(Boolean, nullable=False, default=False)
    is_blocked = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    namespace = relationship(
        "NamespaceModel",
        back_populates="owner",
        uselist=False,
        foreign_keys="NamespaceModel.owner_id",
    )


class NamespaceModel(Base):
    """A namespace (personal or group) that contains projects."""

    __tablename__ = "namespaces"

    id = Column(Integer, primary_key=True, autoincrement=True)
    path = Column(String(255), nullable=False, unique=True, index=True)
    name = Column(String(255), nullable=False)
    owner_id = Column(Integer, ForeignKey("users.id"), nullable=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    owner = relationship("UserModel", back_populates="namespace", foreign_keys=[owner_id])
    projects = relationship("ProjectModel", back_populates="namespace")


class ProjectModel(Base):
    """SQLAlchemy model for projects."""

    __tablename__ = "projects"

    # Fields whose before/after values are tracked by the update workflow
    TRACKED_FIELDS = (
        "name",
        "path",
        "description",
        "visibility_level",
        "default_branch",
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), nullable=False, index=True)
    path = Column(String(255), nullable=False, index=True)
    description = Column(Text, nullable=True)
    namespace_id = Column(Integer, ForeignKey("namespaces.id"), nullable=False, index=True)
    creator_id = Column(Integer, ForeignKey("users.id"), nullable=True)

    visibility_level = Column(
        Integer, nullable=False, default=int(VisibilityLevel.PRIVATE), index=True
    )
    default_branch = Column(String(255), nullable=True)

    forked_from_project_id = Column(
        Integer, ForeignKey("projects.id", ondelete="SET NULL"), nullable=True, index=True
    )

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=func.now(),
        onupdate=func.now(),
    )

    namespace = relationship("NamespaceModel", back_populates="projects")
    creator = relationship("UserModel", foreign_keys=[creator_id])
    forked_from_project = relationship(
        "ProjectModel", remote_side=[id], back_populates="forks"
    )
    forks = relationship("ProjectModel", back_populates="forked_from_project")
    members = relationship(
        "ProjectMemberModel", back_populates="project", cascade="all, delete-orphan"
    )

    __table_args__ = (
        UniqueConstraint("namespace_id", "path", name="uq_projects_namespace_path"),
    )

    @property
    def errors(self) -> Errors:
        """Validation messages from the last update attempt (not persisted)."""
        errors = self.__dict__.get("_errors")
        if errors is None:
            errors = Errors()
            self.__dict__["_errors"] = errors
        return errors

    @property
    def visibility(self) -> VisibilityLevel:
        return VisibilityLevel.from_value(self.visibility_level)

    def is_private(self) -> bool:
        return self.visibility_level == VisibilityLevel.PRIVATE

    def is_internal(self) -> bool:
        return self.visibility_level == VisibilityLevel.INTERNAL

    def is_public(self) -> bool:
        return self.visibility_level == VisibilityLevel.PUBLIC

    @property
    def namespace_path(self) -> Optional[str]:
        return self.namespace.path if self.namespace is not None else None

    def full_path_for(self, path: str) -> str:
        """Repository location for this project if its path were ``path``."""
        if self.namespace_path:
            return f"{self.namespace_path}/{path}"
        return path

    @property
    def full_path(self) -> str:
        return self.full_path_for(self.path)

    def snapshot(self) -> Dict[str, Any]:
        """Current values of the tracked fields."""
        return {field: getattr(self, field) for field in self.TRACKED_FIELDS}


class ProjectMemberModel(Base):
    """A user's membership and access level on a project."""

    __tablename__ = "project_members"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(
        Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    access_level = Column(Integer, nullable=False, default=GUEST)

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())

    project = relationship("ProjectModel", back_populates="members")
    user = relationship("UserModel")

    __table_args__ = (
        UniqueConstraint("project_id", "user_id", name="uq_project_members_project_user"),
        Index("ix_project_members_user", "user_id"),
    )


class SystemHookModel(Base):
    """An instance-wide webhook notified about project events."""

    __tablename__ = "system_hooks"

    id = Column(Integer, primary_key=True, autoincrement=True)
    url = Column(String(2000), nullable=False)
    token = Column(String(255), nullable=True)
    enabled = Column(Boolean, nullable=False, default=True, index=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())


class ClusterRunnerApplicationModel(Base):
    """A CI runner installed on a cluster as a managed application."""

    __tablename__ = "clusters_applications_runners"

    id = Column(Integer, primary_key=True, autoincrement=True)
    cluster_id = Column(Integer, nullable=False, index=True)
    runner_id = Column(Integer, nullable=True)
    status = Column(Integer, nullable=False, default=0)
    version = Column(String(255), nullable=True)
    status_reason = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=func.now())
    updated_at = Column(
        DateTime(timezone=True),
        nullable=False,
        default=func.now(),
        onupdate=func.now(),
    )


__all__ = [
    "ClusterRunnerApplicationModel",
    "DEVELOPER",
    "GUEST",
    "MASTER",
    "NamespaceModel",
    "OWNER",
    "ProjectMemberModel",
    "ProjectModel",
    "REPORTER",
    "SystemHookModel",
    "UserModel",
]
