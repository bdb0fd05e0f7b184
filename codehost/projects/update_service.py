"""
Project update workflow.

Applies a partial change set to a project on behalf of a user:

1. A visibility change requires the ``change_visibility_level`` ability
   and a level that is not restricted for the user.
2. A new default branch is applied to the repository HEAD first.
3. The remaining fields are staged on the project.
4. A path change must not land on an existing repository.
5. The project is saved. A path change then moves the repository; any
   other change notifies the system hooks.

Every failure is returned as a ``ServiceResult``; nothing is raised for
denied or invalid updates.
"""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional, Tuple, Union

import structlog
from sqlalchemy.orm import Session

from ..db.audit_service import AuditService
from ..db.models import ProjectModel, UserModel
from ..db.services import ProjectService
from ..exceptions import InvalidVisibilityLevel
from ..hooks.system_hooks import SystemHookService
from ..policy.permissions import Action, can
from ..storage.repository_store import FileRepositoryStore, RepositoryStore
from .schemas import ErrorCode, ProjectUpdate, ServiceResult
from .visibility import VisibilityLevel, allowed_for

logger = structlog.get_logger()

VISIBILITY_UNALLOWED = "Visibility level unallowed"
RENAME_COLLISION = (
    "Cannot rename project because there is already a repository "
    "with that new name on disk"
)
UPDATE_FAILED = "Project could not be updated"
RENAME_FAILED = "Repository cannot be renamed"


def changed_fields(
    before: Mapping[str, Any], after: Mapping[str, Any]
) -> Dict[str, Tuple[Any, Any]]:
    """Fields whose values differ between two snapshots, as ``{field: (old, new)}``."""
    return {
        field: (before.get(field), value)
        for field, value in after.items()
        if before.get(field) != value
    }


class UpdateService:
    """Updates a project's metadata on behalf of a user.

    Usage:
        result = UpdateService(db, project, user, {"visibility_level": "internal"}).execute()
        if not result.is_success:
            print(result.message, project.errors.full_messages())
    """

    def __init__(
        self,
        db: Session,
        project: ProjectModel,
        current_user: Optional[UserModel],
        params: Union[ProjectUpdate, Mapping[str, Any]],
        store: Optional[RepositoryStore] = None,
        hooks: Optional[SystemHookService] = None,
        audit: Optional[AuditService] = None,
    ):
        self.db = db
        self.project = project
        self.current_user = current_user
        if isinstance(params, ProjectUpdate):
            self.params = params
        else:
            self.params = ProjectUpdate.model_validate(dict(params))

        self.audit = audit or AuditService(db)
        self.projects = ProjectService(
            db, store=store or FileRepositoryStore.from_settings(), audit=self.audit
        )
        self._hooks = hooks

        self.logger = logger.bind(project_id=project.id, user=self.actor_id)

    @property
    def actor_id(self) -> str:
        if self.current_user is None:
            return "anonymous"
        return self.current_user.username

    def _notify_hooks(self, project: ProjectModel) -> None:
        if self._hooks is not None:
            self._hooks.execute_hooks_for(project, "update")
            return

        with SystemHookService(self.db) as hooks:
            hooks.execute_hooks_for(project, "update")

    def execute(self) -> ServiceResult:
        project = self.project
        project.errors.clear()
        changes = self.params.changes()

        new_visibility = changes.get("visibility_level")
        if new_visibility is not None and new_visibility != project.visibility_level:
            if not self._visibility_change_allowed(new_visibility):
                self._deny_visibility_level(new_visibility)
                return ServiceResult.error(
                    VISIBILITY_UNALLOWED, ErrorCode.VISIBILITY_DENIED
                )

        new_branch = changes.pop("default_branch", None)
        if new_branch and new_branch != project.default_branch:
            self._change_default_branch(new_branch)

        with self.db.no_autoflush:
            before = project.snapshot()
            for field, value in changes.items():
                if isinstance(value, VisibilityLevel):
                    value = int(value)
                setattr(project, field, value)
            diff = changed_fields(before, project.snapshot())

            if "path" in diff and not self.projects.can_create_repository(project):
                self.logger.warning(
                    "project_rename_collision", new_full_path=project.full_path
                )
                self.projects.discard_changes(project)
                return ServiceResult.error(RENAME_COLLISION, ErrorCode.NAME_COLLISION)

            saved = self.projects.save(
                project, previous_level=before["visibility_level"]
            )

        if not saved:
            self.logger.info(
                "project_update_invalid", errors=project.errors.messages
            )
            self.projects.discard_changes(project)
            return ServiceResult.error(UPDATE_FAILED, ErrorCode.PERSISTENCE_FAILURE)

        if diff:
            self.audit.log_update(
                entity_kind="Project",
                entity_id=project.id,
                before={field: old for field, (old, _) in diff.items()},
                after={field: new for field, (_, new) in diff.items()},
                actor_id=self.actor_id,
            )

        if "path" in diff:
            old_path = diff["path"][0]
            if not self._rename_repository(old_path):
                return ServiceResult.error(RENAME_FAILED, ErrorCode.STORAGE_FAILURE)
        else:
            self._notify_hooks(project)

        self.logger.info("project_updated", changed=sorted(diff))
        return ServiceResult.success()

    def _visibility_change_allowed(self, level: Any) -> bool:
        return can(
            self.current_user, Action.CHANGE_VISIBILITY_LEVEL, self.project
        ) and allowed_for(self.current_user, level)

    def _deny_visibility_level(self, level: Any) -> None:
        try:
            level = VisibilityLevel.from_value(level)
        except InvalidVisibilityLevel:
            pass
        if isinstance(level, VisibilityLevel):
            label, requested = level.label, int(level)
        else:
            label, requested = str(level), level
        self.project.errors.add(
            "visibility_level",
            f"{label} has been restricted by your administrator",
        )
        self.audit.log_visibility_denied(
            entity_kind="Project",
            entity_id=self.project.id,
            current_level=self.project.visibility_level,
            requested_level=requested,
            actor_id=self.actor_id,
        )
        self.logger.warning(
            "visibility_level_denied",
            current_level=self.project.visibility_level,
            requested_level=requested,
        )

    def _change_default_branch(self, branch: str) -> None:
        project = self.project
        if not self.projects.repository_exists(project):
            return

        old_branch = project.default_branch
        if self.projects.change_head(project, branch):
            # Commits the reloaded default branch together with the audit entry
            self.audit.log_head_change(
                entity_kind="Project",
                entity_id=project.id,
                old_branch=old_branch,
                new_branch=project.default_branch,
                actor_id=self.actor_id,
            )
            self.logger.info(
                "default_branch_changed", old_branch=old_branch, new_branch=branch
            )

    def _rename_repository(self, old_path: str) -> bool:
        project = self.project
        new_path = project.path
        old_full_path = project.full_path_for(old_path)
        new_full_path = project.full_path

        if not self.projects.rename_repo(project, old_path):
            self.audit.log_update(
                entity_kind="Project",
                entity_id=project.id,
                before={"path": new_path},
                after={"path": old_path},
                actor_kind="system",
                actor_id="update-service",
                note=RENAME_FAILED,
            )
            return False

        self.audit.log_rename(
            entity_kind="Project",
            entity_id=project.id,
            old_full_path=old_full_path,
            new_full_path=new_full_path,
            actor_id=self.actor_id,
        )
        self.logger.info(
            "project_repository_renamed",
            old_full_path=old_full_path,
            new_full_path=new_full_path,
        )
        return True
