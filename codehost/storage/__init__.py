"""Repository storage backends."""

from .repository_store import FileRepositoryStore, RepositoryStore

__all__ = ["FileRepositoryStore", "RepositoryStore"]
