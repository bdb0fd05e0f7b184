"""Test configuration and fixtures."""

import time
from typing import Callable, Iterable, List, Optional

import httpx
import pytest
from dulwich.objects import Blob, Commit, Tree
from dulwich.repo import Repo
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from codehost.config import settings
from codehost.db.base import Base
from codehost.db.models import (
    NamespaceModel,
    ProjectMemberModel,
    ProjectModel,
    UserModel,
)
from codehost.hooks.system_hooks import SystemHookService
from codehost.projects.visibility import VisibilityLevel
from codehost.storage.repository_store import FileRepositoryStore


@pytest.fixture
def engine():
    """A fresh in-memory database for each test."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def db_session(engine):
    Session = sessionmaker(bind=engine)
    session = Session()
    yield session
    session.close()


@pytest.fixture
def store(tmp_path) -> FileRepositoryStore:
    return FileRepositoryStore(tmp_path / "repositories")


@pytest.fixture(autouse=True)
def unrestricted_visibility(monkeypatch):
    """Start every test with no restricted visibility levels."""
    monkeypatch.setattr(settings, "restricted_visibility_levels", "")


@pytest.fixture
def restrict_visibility(monkeypatch, unrestricted_visibility) -> Callable[..., None]:
    def _restrict(*levels) -> None:
        raw = ",".join(VisibilityLevel.from_value(level).label for level in levels)
        monkeypatch.setattr(settings, "restricted_visibility_levels", raw)

    return _restrict


class HookRecorder:
    """httpx.MockTransport handler that records system hook requests."""

    def __init__(self, status_code: int = 200):
        self.status_code = status_code
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"ok": True})


@pytest.fixture
def hook_recorder() -> HookRecorder:
    return HookRecorder()


@pytest.fixture
def hooks(db_session, hook_recorder):
    """A SystemHookService with one registered hook and a mocked transport."""
    client = httpx.Client(transport=httpx.MockTransport(hook_recorder))
    service = SystemHookService(db_session, client=client)
    service.add_hook("http://hooks.example.com/system", token="s3cret")
    yield service
    client.close()


@pytest.fixture
def make_user(db_session) -> Callable[..., UserModel]:
    """Create a user with a personal namespace of the same name."""

    def _make(username: str, is_admin: bool = False, is_blocked: bool = False) -> UserModel:
        user = UserModel(
            username=username,
            name=username.title(),
            email=f"{username}@example.com",
            is_admin=is_admin,
            is_blocked=is_blocked,
        )
        user.namespace = NamespaceModel(path=username, name=username.title())
        db_session.add(user)
        db_session.commit()
        db_session.refresh(user)
        return user

    return _make


@pytest.fixture
def user(make_user) -> UserModel:
    return make_user("alice")


@pytest.fixture
def admin(make_user) -> UserModel:
    return make_user("root", is_admin=True)


@pytest.fixture
def make_project(db_session) -> Callable[..., ProjectModel]:
    """Create a project in its owner's personal namespace."""

    def _make(
        owner: UserModel,
        path: str = "my-project",
        visibility: VisibilityLevel = VisibilityLevel.PRIVATE,
        default_branch: Optional[str] = "master",
        forked_from: Optional[ProjectModel] = None,
    ) -> ProjectModel:
        project = ProjectModel(
            name=path.replace("-", " ").title(),
            path=path,
            namespace=owner.namespace,
            creator_id=owner.id,
            visibility_level=int(visibility),
            default_branch=default_branch,
            forked_from_project=forked_from,
        )
        db_session.add(project)
        db_session.commit()
        db_session.refresh(project)
        return project

    return _make


@pytest.fixture
def project(make_project, user) -> ProjectModel:
    return make_project(user)


@pytest.fixture
def add_member(db_session) -> Callable[[ProjectModel, UserModel, int], None]:
    def _add(project: ProjectModel, member: UserModel, access_level: int) -> None:
        db_session.add(
            ProjectMemberModel(
                project_id=project.id, user_id=member.id, access_level=access_level
            )
        )
        db_session.commit()
        db_session.refresh(project)

    return _add


@pytest.fixture
def seed_repository(store) -> Callable[..., None]:
    """Create a bare repository with one commit shared by the given branches."""

    def _seed(
        full_path: str,
        branches: Iterable[str] = ("master",),
        default_branch: str = "master",
    ) -> None:
        store.add_repository(full_path, default_branch=default_branch)

        blob = Blob.from_string(b"# Readme\n")
        tree = Tree()
        tree.add(b"README.md", 0o100644, blob.id)

        commit = Commit()
        commit.tree = tree.id
        commit.author = commit.committer = b"Test User <test@example.com>"
        commit.author_time = commit.commit_time = int(time.time())
        commit.author_timezone = commit.commit_timezone = 0
        commit.encoding = b"UTF-8"
        commit.message = b"Initial commit"

        with Repo(str(store.repository_path(full_path))) as repo:
            for obj in (blob, tree, commit):
                repo.object_store.add_object(obj)
            for branch in branches:
                repo.refs[f"refs/heads/{branch}".encode()] = commit.id

    return _seed
