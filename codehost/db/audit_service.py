"""
Audit Log Service.

Provides a clean interface for recording audit events for project changes.
The update workflow records successful updates, renames, default-branch
changes and denied visibility changes; the project service records forks
whose visibility was restricted by a parent's change.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import desc
from sqlalchemy.orm import Session
from ulid import ULID

from .audit_models import AuditLogModel


def generate_ulid() -> str:
    """Generate a ULID for audit log entries."""
    return str(ULID())


class AuditService:
    """Service for managing audit log entries.

    Usage:
        audit = AuditService(db_session)
        audit.log_update("Project", project.id, before, after, actor_id="alice")
    """

    def __init__(self, db: Session):
        self.db = db

    def _record(
        self,
        action: str,
        entity_kind: str,
        entity_id: Any,
        before: Optional[Dict[str, Any]],
        after: Optional[Dict[str, Any]],
        actor_kind: str,
        actor_id: Any,
        note: Optional[str],
        commit: bool,
    ) -> AuditLogModel:
        entry = AuditLogModel(
            id=generate_ulid(),
            ts=datetime.now(timezone.utc),
            actor_kind=actor_kind,
            actor_id=str(actor_id),
            action=action,
            entity_kind=entity_kind,
            entity_id=str(entity_id),
            before=before,
            after=after,
            note=note,
        )

        self.db.add(entry)
        if commit:
            self.db.commit()
            self.db.refresh(entry)
        return entry

    def log_update(
        self,
        entity_kind: str,
        entity_id: Any,
        before: Dict[str, Any],
        after: Dict[str, Any],
        actor_kind: str = "user",
        actor_id: Any = "unknown",
        note: Optional[str] = None,
        commit: bool = True,
    ) -> AuditLogModel:
        """Log an update to an entity.

        Args:
            entity_kind: Type of entity (e.g., "Project")
            entity_id: ID of the entity
            before: Changed fields before the update
            after: Changed fields after the update
            actor_kind: Type of actor ("user", "system")
            actor_id: ID or username of the actor
            note: Optional human-readable note
            commit: Commit the session after adding the entry

        Returns:
            The created AuditLogModel
        """
        return self._record(
            "updated", entity_kind, entity_id, before, after,
            actor_kind, actor_id, note, commit,
        )

    def log_visibility_denied(
        self,
        entity_kind: str,
        entity_id: Any,
        current_level: int,
        requested_level: Any,
        actor_kind: str = "user",
        actor_id: Any = "unknown",
        commit: bool = True,
    ) -> AuditLogModel:
        """Log a visibility change that policy refused."""
        return self._record(
            "visibility_denied",
            entity_kind,
            entity_id,
            {"visibility_level": current_level},
            {"visibility_level": requested_level},
            actor_kind,
            actor_id,
            f"Visibility level {requested_level} denied",
            commit,
        )

    def log_visibility_cascade(
        self,
        entity_kind: str,
        entity_id: Any,
        old_level: int,
        new_level: int,
        source_id: Any,
        actor_kind: str = "system",
        actor_id: Any = "project-service",
        commit: bool = True,
    ) -> AuditLogModel:
        """Log a fork whose visibility was restricted to match its parent."""
        return self._record(
            "visibility_cascaded",
            entity_kind,
            entity_id,
            {"visibility_level": old_level},
            {"visibility_level": new_level},
            actor_kind,
            actor_id,
            f"Restricted to match {entity_kind}:{source_id}",
            commit,
        )

    def log_rename(
        self,
        entity_kind: str,
        entity_id: Any,
        old_full_path: str,
        new_full_path: str,
        actor_kind: str = "user",
        actor_id: Any = "unknown",
        commit: bool = True,
    ) -> AuditLogModel:
        """Log a repository move on storage."""
        return self._record(
            "renamed",
            entity_kind,
            entity_id,
            {"full_path": old_full_path},
            {"full_path": new_full_path},
            actor_kind,
            actor_id,
            f"Renamed: {old_full_path} -> {new_full_path}",
            commit,
        )

    def log_head_change(
        self,
        entity_kind: str,
        entity_id: Any,
        old_branch: Optional[str],
        new_branch: str,
        actor_kind: str = "user",
        actor_id: Any = "unknown",
        commit: bool = True,
    ) -> AuditLogModel:
        """Log a change of the repository HEAD."""
        return self._record(
            "head_changed",
            entity_kind,
            entity_id,
            {"default_branch": old_branch},
            {"default_branch": new_branch},
            actor_kind,
            actor_id,
            None,
            commit,
        )

    # Query methods

    def query_by_entity(
        self,
        entity_kind: str,
        entity_id: Any,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AuditLogModel]:
        """Get audit history for a specific entity, newest first."""
        return (
            self.db.query(AuditLogModel)
            .filter(
                AuditLogModel.entity_kind == entity_kind,
                AuditLogModel.entity_id == str(entity_id),
            )
            .order_by(desc(AuditLogModel.ts), desc(AuditLogModel.id))
            .offset(offset)
            .limit(limit)
            .all()
        )

    def query_by_action(
        self,
        action: str,
        entity_kind: Optional[str] = None,
        limit: int = 100,
        offset: int = 0,
    ) -> List[AuditLogModel]:
        """Get all audit entries for a specific action type, newest first.

        Args:
            action: Action type ("updated", "visibility_denied", ...)
            entity_kind: Optional filter by entity type
            limit: Maximum number of entries to return
            offset: Number of entries to skip
        """
        query = self.db.query(AuditLogModel).filter(AuditLogModel.action == action)

        if entity_kind:
            query = query.filter(AuditLogModel.entity_kind == entity_kind)

        return (
            query.order_by(desc(AuditLogModel.ts), desc(AuditLogModel.id))
            .offset(offset)
            .limit(limit)
            .all()
        )
