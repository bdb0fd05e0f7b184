"""
System hooks.

Instance-wide webhooks that are notified about project events. Delivery is
fire-and-forget: a hook that cannot be reached or answers with an error is
logged and skipped, and the caller never sees the failure.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import httpx
import structlog
from sqlalchemy.orm import Session

from ..db.models import ProjectModel, SystemHookModel

logger = structlog.get_logger()

EVENT_HEADER = "X-Codehost-Event"
TOKEN_HEADER = "X-Codehost-Token"
EVENT_HEADER_VALUE = "System Hook"


def build_project_payload(project: ProjectModel, event: str) -> Dict[str, Any]:
    """Build the JSON body sent to system hooks for a project event."""
    owner = project.namespace.owner if project.namespace is not None else None
    return {
        "event_name": f"project_{event}",
        "created_at": project.created_at.isoformat() if project.created_at else None,
        "updated_at": project.updated_at.isoformat() if project.updated_at else None,
        "name": project.name,
        "path": project.path,
        "path_with_namespace": project.full_path,
        "project_id": project.id,
        "owner_name": (owner.name or owner.username) if owner is not None else None,
        "owner_email": owner.email if owner is not None else None,
        "project_visibility": project.visibility.label,
    }


class SystemHookService:
    """Dispatches project events to every enabled system hook.

    Usage:
        with SystemHookService(db_session) as hooks:
            hooks.execute_hooks_for(project, "update")
    """

    def __init__(
        self,
        db: Session,
        client: Optional[httpx.Client] = None,
        timeout: Optional[float] = None,
    ):
        self.db = db
        self._owns_client = client is None
        if client is None:
            if timeout is None:
                from codehost.config import get_settings

                timeout = get_settings().system_hook_timeout_seconds
            client = httpx.Client(timeout=timeout)
        self.client = client

    def close(self) -> None:
        """Close the HTTP client if this service created it."""
        if self._owns_client:
            self.client.close()

    def __enter__(self) -> "SystemHookService":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def add_hook(self, url: str, token: Optional[str] = None) -> SystemHookModel:
        """Register a new system hook."""
        hook = SystemHookModel(url=url, token=token, enabled=True)
        self.db.add(hook)
        self.db.commit()
        self.db.refresh(hook)
        return hook

    def enabled_hooks(self) -> List[SystemHookModel]:
        return (
            self.db.query(SystemHookModel)
            .filter(SystemHookModel.enabled.is_(True))
            .order_by(SystemHookModel.id)
            .all()
        )

    def execute_hooks_for(self, project: ProjectModel, event: str) -> int:
        """Send ``project_<event>`` to all enabled hooks.

        Returns:
            Number of hooks that accepted the payload
        """
        payload = build_project_payload(project, event)
        log = logger.bind(project_id=project.id, event_name=payload["event_name"])

        delivered = 0
        for hook in self.enabled_hooks():
            if self._deliver(hook, payload, log):
                delivered += 1

        log.info("system_hooks_executed", delivered=delivered)
        return delivered

    def _deliver(self, hook: SystemHookModel, payload: Dict[str, Any], log) -> bool:
        headers = {EVENT_HEADER: EVENT_HEADER_VALUE}
        if hook.token:
            headers[TOKEN_HEADER] = hook.token

        try:
            response = self.client.post(hook.url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as e:
            log.warning("system_hook_failed", hook_id=hook.id, error=str(e))
            return False

        log.debug("system_hook_delivered", hook_id=hook.id, status=response.status_code)
        return True
