"""
Repository storage.

Projects own a bare git repository at ``<storage root>/<full_path>.git``,
where ``full_path`` is ``<namespace path>/<project path>``. Operations report failure
through their return value; only malformed paths raise.
"""
from __future__ import annotations

import logging
import re
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from dulwich.refs import SYMREF
from dulwich.repo import Repo

from codehost.exceptions import RepositoryStorageError

logger = logging.getLogger(__name__)

HEAD_REF = b"HEAD"
BRANCH_PREFIX = "refs/heads/"

_SEGMENT_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.\-]*$")


class RepositoryStore(ABC):
    """Abstract base class for repository storage."""

    @abstractmethod
    def repository_exists(self, full_path: str) -> bool:
        """Return True if a repository exists at ``full_path``."""

    @abstractmethod
    def can_create_repository(self, full_path: str) -> bool:
        """Return True if a new repository may be created at ``full_path``."""

    @abstractmethod
    def add_repository(self, full_path: str, default_branch: str = "master") -> bool:
        """Create an empty bare repository at ``full_path``."""

    @abstractmethod
    def remove_repository(self, full_path: str) -> bool:
        """Delete the repository at ``full_path``."""

    @abstractmethod
    def branch_exists(self, full_path: str, branch: str) -> bool:
        """Return True if ``branch`` exists in the repository."""

    @abstractmethod
    def head_branch(self, full_path: str) -> Optional[str]:
        """Return the branch HEAD points to, or None."""

    @abstractmethod
    def change_head(self, full_path: str, branch: str) -> bool:
        """Point HEAD at an existing ``branch``."""

    @abstractmethod
    def rename_repository(self, old_full_path: str, new_full_path: str) -> bool:
        """Move a repository to a new location."""


class FileRepositoryStore(RepositoryStore):
    """Bare repositories on the local filesystem.

    Structure:
        <root>/
        └── <namespace>/
            └── <project>.git/    # bare repository
    """

    def __init__(self, root: Path | str):
        self.root = Path(root).resolve()

    @classmethod
    def from_settings(cls, settings=None) -> "FileRepositoryStore":
        if settings is None:
            from codehost.config import get_settings

            settings = get_settings()
        return cls(settings.repository_storage_path)

    def repository_path(self, full_path: str) -> Path:
        """Absolute location of the bare repository for ``full_path``."""
        segments = full_path.strip("/").split("/")
        for segment in segments:
            if not _SEGMENT_RE.match(segment) or segment.endswith(".git"):
                raise RepositoryStorageError(
                    full_path, f"Invalid repository path: {full_path!r}"
                )
        return self.root.joinpath(*segments[:-1], f"{segments[-1]}.git")

    def repository_exists(self, full_path: str) -> bool:
        return (self.repository_path(full_path) / "HEAD").is_file()

    def can_create_repository(self, full_path: str) -> bool:
        return not self.repository_path(full_path).exists()

    def add_repository(self, full_path: str, default_branch: str = "master") -> bool:
        path = self.repository_path(full_path)
        if path.exists():
            logger.warning("Repository already exists: %s", full_path)
            return False

        path.parent.mkdir(parents=True, exist_ok=True)
        with Repo.init_bare(str(path), mkdir=True) as repo:
            repo.refs.set_symbolic_ref(HEAD_REF, _branch_ref(default_branch))
        logger.info("Created repository %s", full_path)
        return True

    def remove_repository(self, full_path: str) -> bool:
        path = self.repository_path(full_path)
        if not path.exists():
            return False
        shutil.rmtree(path)
        logger.info("Removed repository %s", full_path)
        return True

    def branch_exists(self, full_path: str, branch: str) -> bool:
        if not self.repository_exists(full_path):
            return False
        with Repo(str(self.repository_path(full_path))) as repo:
            return _branch_ref(branch) in repo.refs

    def head_branch(self, full_path: str) -> Optional[str]:
        if not self.repository_exists(full_path):
            return None
        with Repo(str(self.repository_path(full_path))) as repo:
            target = repo.refs.read_ref(HEAD_REF)
        if not target or not target.startswith(SYMREF):
            return None
        ref = target[len(SYMREF):].strip().decode()
        if ref.startswith(BRANCH_PREFIX):
            return ref[len(BRANCH_PREFIX):]
        return None

    def change_head(self, full_path: str, branch: str) -> bool:
        if not self.branch_exists(full_path, branch):
            logger.warning("Cannot change HEAD of %s: no branch %r", full_path, branch)
            return False
        with Repo(str(self.repository_path(full_path))) as repo:
            repo.refs.set_symbolic_ref(HEAD_REF, _branch_ref(branch))
        logger.info("Changed HEAD of %s to %s", full_path, branch)
        return True

    def rename_repository(self, old_full_path: str, new_full_path: str) -> bool:
        source = self.repository_path(old_full_path)
        destination = self.repository_path(new_full_path)

        if not source.exists():
            logger.error("Cannot rename %s: repository does not exist", old_full_path)
            return False
        if destination.exists():
            logger.error(
                "Cannot rename %s: %s already exists", old_full_path, new_full_path
            )
            return False

        destination.parent.mkdir(parents=True, exist_ok=True)
        source.rename(destination)
        logger.info("Renamed repository %s -> %s", old_full_path, new_full_path)
        return True


def _branch_ref(branch: str) -> bytes:
    return f"{BRANCH_PREFIX}{branch}".encode()
