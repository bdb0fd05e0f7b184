"""
Exception types for codehost.

The project update workflow reports its failures as ``ServiceResult``
values. These exceptions are raised by lower layers for configuration and
programming errors, and by the storage layer when asked to operate on a
path outside its root.
"""

from typing import Any, Dict


class CodehostError(Exception):
    """Base class for codehost errors.

    Attributes:
        code: Stable error code for programmatic handling
        message: Human-readable error description
    """

    code = "CODEHOST_ERROR"

    def __init__(self, message: str):
        self.message = message
        super().__init__(f"{self.code}: {message}")

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dict for JSON serialization."""
        return {
            "error": self.code,
            "message": self.message,
        }


class InvalidVisibilityLevel(CodehostError, ValueError):
    """Raised when a value cannot be mapped to a visibility level."""

    code = "INVALID_VISIBILITY_LEVEL"


class RepositoryStorageError(CodehostError):
    """Raised when the repository store is used with an invalid location."""

    code = "REPOSITORY_STORAGE_ERROR"

    def __init__(self, full_path: str, message: str):
        self.full_path = full_path
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["full_path"] = self.full_path
        return data
