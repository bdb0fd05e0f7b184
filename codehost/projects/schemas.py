"""
Request and result types for project services.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator

from ..exceptions import InvalidVisibilityLevel
from .visibility import VisibilityLevel


class ProjectUpdate(BaseModel):
    """A partial set of project fields to change.

    Only the fields that were explicitly provided are applied. Values are
    type-checked here; format rules (allowed characters, uniqueness) are
    enforced when the project is saved, so they surface as project errors.
    """

    model_config = ConfigDict(extra="forbid")

    name: Optional[str] = None
    path: Optional[str] = None
    description: Optional[str] = None
    visibility_level: Optional[Union[VisibilityLevel, int, str]] = None
    default_branch: Optional[str] = None

    @field_validator("visibility_level", mode="before")
    @classmethod
    def _coerce_visibility(cls, value: Any) -> Any:
        # Unknown levels are kept as given and rejected by the update workflow
        try:
            return VisibilityLevel.from_value(value)
        except InvalidVisibilityLevel:
            return value

    def changes(self) -> Dict[str, Any]:
        """Explicitly provided fields and their values."""
        return self.model_dump(exclude_unset=True)


class ErrorCode(str, Enum):
    """Why an update was not applied."""

    VISIBILITY_DENIED = "visibility_denied"
    NAME_COLLISION = "name_collision"
    PERSISTENCE_FAILURE = "persistence_failure"
    STORAGE_FAILURE = "storage_failure"


@dataclass(frozen=True)
class ServiceResult:
    """Outcome of a service call: success, or an error with a reason."""

    status: str
    message: Optional[str] = None
    code: Optional[ErrorCode] = None

    @classmethod
    def success(cls) -> "ServiceResult":
        return cls(status="success")

    @classmethod
    def error(cls, message: str, code: ErrorCode) -> "ServiceResult":
        return cls(status="error", message=message, code=code)

    @property
    def is_success(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> Dict[str, Any]:
        if self.is_success:
            return {"status": self.status}
        return {"status": self.status, "message": self.message}
