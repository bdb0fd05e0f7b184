"""System hook dispatch."""

from .system_hooks import SystemHookService, build_project_payload

__all__ = ["SystemHookService", "build_project_payload"]
