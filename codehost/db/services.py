"""
Database services for codehost.

``ProjectService`` is the persistence side of the project update workflow:
it validates and saves staged project changes, restricts fork visibility
after a parent is made more restrictive, and carries out the storage side
effects (HEAD change, repository rename) that the workflow asks for.
"""

import re
from typing import Optional

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..exceptions import InvalidVisibilityLevel, RepositoryStorageError
from ..projects.visibility import VisibilityLevel
from ..storage.repository_store import RepositoryStore
from .audit_service import AuditService
from .models import ProjectModel, UserModel

logger = structlog.get_logger()

NAME_RE = re.compile(r"^\w[\w\-. ]*$")
NAME_MESSAGE = (
    "can contain only letters, digits, '_', '.', dash and space. "
    "It must start with letter, digit or '_'."
)

PATH_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.\-]*$")
PATH_MESSAGE = (
    "can contain only letters, digits, '_', '-' and '.'. "
    "Cannot start with '-', end in '.git' or end in '.atom'"
)

MAX_LENGTH = 255

REPOSITORY_EXISTS_MESSAGE = "There is already a repository with that name on disk"


class ProjectService:
    """Service for loading, validating and saving projects."""

    def __init__(
        self,
        db: Session,
        store: Optional[RepositoryStore] = None,
        audit: Optional[AuditService] = None,
    ):
        self.db = db
        self.store = store
        self.audit = audit or AuditService(db)

    def get(self, project_id: int) -> Optional[ProjectModel]:
        """Get a project by ID."""
        return self.db.query(ProjectModel).filter(ProjectModel.id == project_id).first()

    # Validation

    def validate(self, project: ProjectModel) -> bool:
        """Validate staged values, replacing ``project.errors``."""
        errors = project.errors
        errors.clear()

        with self.db.no_autoflush:
            name = project.name
            if not name:
                errors.add("name", "can't be blank")
            elif len(name) > MAX_LENGTH:
                errors.add("name", f"is too long (maximum is {MAX_LENGTH} characters)")
            elif not NAME_RE.match(name):
                errors.add("name", NAME_MESSAGE)

            path = project.path
            if not path:
                errors.add("path", "can't be blank")
            elif len(path) > MAX_LENGTH:
                errors.add("path", f"is too long (maximum is {MAX_LENGTH} characters)")
            elif not PATH_RE.match(path) or path.endswith((".git", ".atom")):
                errors.add("path", PATH_MESSAGE)
            elif self._path_taken(project):
                errors.add("path", "has already been taken")

            try:
                level = VisibilityLevel.from_value(project.visibility_level)
            except InvalidVisibilityLevel:
                errors.add("visibility_level", "is not included in the list")
            else:
                source = project.forked_from_project
                if source is not None and level > source.visibility_level:
                    errors.add(
                        "visibility_level",
                        f"{level.label} is not allowed since the fork source "
                        "project has lower visibility.",
                    )

        return not errors

    def _path_taken(self, project: ProjectModel) -> bool:
        query = self.db.query(ProjectModel.id).filter(
            ProjectModel.namespace_id == project.namespace_id,
            ProjectModel.path == project.path,
        )
        if project.id is not None:
            query = query.filter(ProjectModel.id != project.id)
        return query.first() is not None

    # Persistence

    def save(self, project: ProjectModel, previous_level: Optional[int] = None) -> bool:
        """Validate and persist staged changes.

        When the visibility level becomes more restrictive than
        ``previous_level``, forks that are more visible than the new level
        are restricted to match, recursively. Without ``previous_level`` the
        level stored in the database is used, so callers that may already
        have flushed the change must pass it.

        Returns:
            True if saved; False with ``project.errors`` populated otherwise
        """
        with self.db.no_autoflush:
            if previous_level is None:
                previous_level = self._stored_visibility_level(project)

            if not self.validate(project):
                return False

            new_level = int(project.visibility_level)
            if previous_level is not None and new_level < int(previous_level):
                self._restrict_forks(project, new_level)

        try:
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            logger.warning("project_save_conflict", project_id=project.id, error=str(e))
            project.errors.add("path", "has already been taken")
            return False

        self.db.refresh(project)
        return True

    def discard_changes(self, project: ProjectModel) -> None:
        """Drop staged, unsaved attribute values; they reload from the database."""
        self.db.expire(project)

    def _stored_visibility_level(self, project: ProjectModel) -> Optional[int]:
        if project.id is None:
            return None
        return (
            self.db.query(ProjectModel.visibility_level)
            .filter(ProjectModel.id == project.id)
            .scalar()
        )

    def _restrict_forks(self, project: ProjectModel, level: int) -> None:
        for fork in project.forks:
            if fork.visibility_level > level:
                old_level = fork.visibility_level
                fork.visibility_level = level
                self.audit.log_visibility_cascade(
                    entity_kind="Project",
                    entity_id=fork.id,
                    old_level=old_level,
                    new_level=level,
                    source_id=project.id,
                    commit=False,
                )
                logger.info(
                    "fork_visibility_restricted",
                    project_id=fork.id,
                    source_project_id=project.id,
                    old_level=old_level,
                    new_level=level,
                )
                self._restrict_forks(fork, level)

    # Storage side effects

    def _require_store(self) -> RepositoryStore:
        if self.store is None:
            raise RuntimeError("ProjectService was created without a repository store")
        return self.store

    def repository_exists(self, project: ProjectModel) -> bool:
        return self._require_store().repository_exists(project.full_path)

    def can_create_repository(self, project: ProjectModel) -> bool:
        """Return True if the staged location is free on storage.

        A malformed path is not a collision; validation reports it on save.
        """
        try:
            if self._require_store().can_create_repository(project.full_path):
                return True
        except RepositoryStorageError:
            return True
        project.errors.add_base(REPOSITORY_EXISTS_MESSAGE)
        return False

    def change_head(self, project: ProjectModel, branch: str) -> bool:
        """Point the repository HEAD at ``branch`` and reload the default branch."""
        store = self._require_store()
        if not store.change_head(project.full_path, branch):
            project.errors.add_base(
                f"Could not change HEAD: branch '{branch}' does not exist"
            )
            return False

        project.default_branch = store.head_branch(project.full_path)
        return True

    def rename_repo(self, project: ProjectModel, old_path: str) -> bool:
        """Move the repository after ``project.path`` changed from ``old_path``.

        If storage refuses the move, the saved path is reverted.
        """
        old_full_path = project.full_path_for(old_path)
        new_full_path = project.full_path

        if self._require_store().rename_repository(old_full_path, new_full_path):
            return True

        logger.error(
            "repository_rename_failed",
            project_id=project.id,
            old_full_path=old_full_path,
            new_full_path=new_full_path,
        )
        project.path = old_path
        self.db.commit()
        self.db.refresh(project)
        project.errors.add_base("Repository cannot be renamed")
        return False


class UserService:
    """Service for looking up users."""

    def __init__(self, db: Session):
        self.db = db

    def get_by_username(self, username: str) -> Optional[UserModel]:
        return self.db.query(UserModel).filter(UserModel.username == username).first()
