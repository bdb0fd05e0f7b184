"""
Tests for the project update workflow.

Verifies:
- Visibility changes are gated by ability and the restricted levels setting
- Fork visibility follows a parent that becomes more restrictive
- Default branch changes go through the repository HEAD
- Renames are refused when the new location already has a repository
- Invalid values fail without dispatching system hooks
- Unknown visibility levels are refused or fail validation
- A path change moves the repository instead of dispatching hooks
"""

import json

import pytest

from codehost.db.audit_service import AuditService
from codehost.db.models import DEVELOPER, MASTER, ProjectModel
from codehost.hooks import SystemHookService
from codehost.projects import update_service
from codehost.projects.schemas import ErrorCode, ProjectUpdate
from codehost.projects.update_service import UpdateService, changed_fields
from codehost.projects.visibility import VisibilityLevel


@pytest.fixture
def update_project(db_session, store, hooks):
    def _update(project, user, params):
        return UpdateService(
            db_session, project, user, params, store=store, hooks=hooks
        ).execute()

    return _update


class TestVisibilityByOwner:
    """Owners may change visibility unless the level is restricted."""

    def test_updates_the_project_to_internal(self, update_project, project, user):
        result = update_project(
            project, user, {"visibility_level": VisibilityLevel.INTERNAL}
        )

        assert result.to_dict() == {"status": "success"}
        assert project.is_internal()

    def test_updates_the_project_to_public(self, update_project, project, user):
        result = update_project(project, user, {"visibility_level": VisibilityLevel.PUBLIC})

        assert result.to_dict() == {"status": "success"}
        assert project.is_public()

    def test_accepts_level_names(self, update_project, project, user):
        result = update_project(project, user, {"visibility_level": "internal"})

        assert result.is_success
        assert project.is_internal()


class TestRestrictedToPublic:
    """Visibility levels restricted to PUBLIC only."""

    @pytest.fixture(autouse=True)
    def _restrict(self, restrict_visibility):
        restrict_visibility(VisibilityLevel.PUBLIC)

    def test_internal_is_still_allowed(self, update_project, project, user):
        result = update_project(
            project, user, {"visibility_level": VisibilityLevel.INTERNAL}
        )

        assert result.to_dict() == {"status": "success"}
        assert project.is_internal()

    def test_public_is_refused(self, update_project, db_session, project, user):
        result = update_project(project, user, {"visibility_level": VisibilityLevel.PUBLIC})

        assert result.to_dict() == {
            "status": "error",
            "message": "Visibility level unallowed",
        }
        assert result.code == ErrorCode.VISIBILITY_DENIED
        db_session.refresh(project)
        assert project.is_private()

    def test_refusal_is_audited(self, update_project, db_session, project, user):
        update_project(project, user, {"visibility_level": VisibilityLevel.PUBLIC})

        entries = AuditService(db_session).query_by_action("visibility_denied")
        assert len(entries) == 1
        assert entries[0].entity_id == str(project.id)
        assert entries[0].actor_id == "alice"
        assert entries[0].before == {"visibility_level": 0}
        assert entries[0].after == {"visibility_level": 20}

    def test_refusal_adds_visibility_error(self, update_project, project, user):
        update_project(project, user, {"visibility_level": VisibilityLevel.PUBLIC})

        assert project.errors["visibility_level"] == [
            "public has been restricted by your administrator"
        ]

    def test_refusal_dispatches_no_hooks(
        self, update_project, project, user, hook_recorder
    ):
        update_project(project, user, {"visibility_level": VisibilityLevel.PUBLIC})

        assert hook_recorder.requests == []

    def test_admin_may_set_public(self, update_project, project, admin):
        result = update_project(project, admin, {"visibility_level": VisibilityLevel.PUBLIC})

        assert result.to_dict() == {"status": "success"}
        assert project.is_public()


class TestVisibilityAbility:
    """Users without the change_visibility_level ability."""

    def test_master_cannot_change_visibility(
        self, update_project, db_session, project, make_user, add_member
    ):
        master = make_user("bob")
        add_member(project, master, MASTER)

        result = update_project(
            project, master, {"visibility_level": VisibilityLevel.INTERNAL}
        )

        assert result.message == "Visibility level unallowed"
        db_session.refresh(project)
        assert project.is_private()

    def test_developer_cannot_change_visibility(
        self, update_project, project, make_user, add_member
    ):
        developer = make_user("carol")
        add_member(project, developer, DEVELOPER)

        result = update_project(
            project, developer, {"visibility_level": VisibilityLevel.PUBLIC}
        )

        assert result.code == ErrorCode.VISIBILITY_DENIED

    def test_blocked_owner_cannot_change_visibility(
        self, update_project, db_session, project, user
    ):
        user.is_blocked = True
        db_session.commit()

        result = update_project(
            project, user, {"visibility_level": VisibilityLevel.INTERNAL}
        )

        assert result.code == ErrorCode.VISIBILITY_DENIED

    def test_unchanged_level_needs_no_ability(
        self, update_project, project, make_user, add_member
    ):
        master = make_user("bob")
        add_member(project, master, MASTER)

        result = update_project(
            project,
            master,
            {"visibility_level": VisibilityLevel.PRIVATE, "description": "Docs"},
        )

        assert result.is_success
        assert project.description == "Docs"


class TestForkVisibility:
    """Forks follow a parent that becomes more restrictive."""

    @pytest.fixture
    def parent(self, make_project, user):
        return make_project(user, visibility=VisibilityLevel.INTERNAL)

    @pytest.fixture
    def fork(self, make_project, make_user, parent):
        forker = make_user("dave")
        return make_project(
            forker, visibility=VisibilityLevel.INTERNAL, forked_from=parent
        )

    def test_fork_restricted_when_parent_made_private(
        self, update_project, db_session, parent, fork, admin
    ):
        assert parent.is_internal()
        assert fork.is_internal()

        result = update_project(
            parent, admin, {"visibility_level": VisibilityLevel.PRIVATE}
        )

        assert result.to_dict() == {"status": "success"}
        assert parent.is_private()
        db_session.refresh(fork)
        assert fork.is_private()

    def test_fork_untouched_when_parent_made_public(
        self, update_project, db_session, parent, fork, admin
    ):
        result = update_project(parent, admin, {"visibility_level": VisibilityLevel.PUBLIC})

        assert result.to_dict() == {"status": "success"}
        assert parent.is_public()
        db_session.refresh(fork)
        assert fork.is_internal()

    def test_more_restrictive_fork_untouched(
        self, update_project, db_session, make_project, make_user, parent, admin
    ):
        private_fork = make_project(
            make_user("erin"), visibility=VisibilityLevel.PRIVATE, forked_from=parent
        )

        update_project(parent, admin, {"visibility_level": VisibilityLevel.PRIVATE})

        db_session.refresh(private_fork)
        assert private_fork.is_private()
        cascaded = AuditService(db_session).query_by_action("visibility_cascaded")
        assert [entry.entity_id for entry in cascaded] == []

    def test_cascade_reaches_forks_of_forks(
        self, update_project, db_session, make_project, make_user, parent, fork, admin
    ):
        nested = make_project(
            make_user("frank"), visibility=VisibilityLevel.INTERNAL, forked_from=fork
        )

        update_project(parent, admin, {"visibility_level": VisibilityLevel.PRIVATE})

        db_session.refresh(nested)
        assert nested.is_private()
        cascaded = AuditService(db_session).query_by_action("visibility_cascaded")
        assert sorted(entry.entity_id for entry in cascaded) == sorted(
            [str(fork.id), str(nested.id)]
        )

    def test_cascade_alongside_default_branch_change(
        self, update_project, db_session, parent, fork, admin, seed_repository
    ):
        seed_repository(parent.full_path, branches=("master", "feature"))

        result = update_project(
            parent,
            admin,
            {"default_branch": "feature", "visibility_level": VisibilityLevel.PRIVATE},
        )

        assert result.is_success
        assert parent.default_branch == "feature"
        assert parent.is_private()
        db_session.refresh(fork)
        assert fork.is_private()


class TestDefaultBranch:
    """Default branch changes go through the repository HEAD."""

    def test_changes_the_default_branch(
        self, update_project, db_session, store, project, admin, seed_repository
    ):
        seed_repository(project.full_path, branches=("master", "feature"))

        result = update_project(project, admin, {"default_branch": "feature"})

        assert result.is_success
        db_session.expire_all()
        assert db_session.get(ProjectModel, project.id).default_branch == "feature"
        assert store.head_branch(project.full_path) == "feature"

    def test_head_change_is_audited(
        self, update_project, db_session, project, admin, seed_repository
    ):
        seed_repository(project.full_path, branches=("master", "feature"))

        update_project(project, admin, {"default_branch": "feature"})

        entries = AuditService(db_session).query_by_action("head_changed")
        assert len(entries) == 1
        assert entries[0].before == {"default_branch": "master"}
        assert entries[0].after == {"default_branch": "feature"}

    def test_unknown_branch_leaves_default_branch(
        self, update_project, store, project, admin, seed_repository
    ):
        seed_repository(project.full_path)

        result = update_project(project, admin, {"default_branch": "missing"})

        assert result.is_success
        assert project.default_branch == "master"
        assert store.head_branch(project.full_path) == "master"

    def test_ignored_without_repository(self, update_project, project, admin):
        result = update_project(project, admin, {"default_branch": "feature"})

        assert result.is_success
        assert project.default_branch == "master"


class TestRename:
    """Path changes and the on-disk repository."""

    def test_refuses_path_of_existing_repository(
        self, update_project, db_session, project, admin, user, seed_repository
    ):
        seed_repository(f"{user.namespace.path}/existing")

        result = update_project(project, admin, {"path": "existing"})

        assert result.status == "error"
        assert "Cannot rename project" in result.message
        assert result.code == ErrorCode.NAME_COLLISION
        assert "base" in project.errors.messages
        assert (
            "There is already a repository with that name on disk"
            in project.errors.messages["base"]
        )
        db_session.refresh(project)
        assert project.path == "my-project"

    def test_moves_repository(
        self, update_project, store, project, admin, user, seed_repository
    ):
        seed_repository(project.full_path)

        result = update_project(project, admin, {"path": "renamed"})

        assert result.is_success
        assert project.path == "renamed"
        assert store.repository_exists(f"{user.namespace.path}/renamed")
        assert not store.repository_exists(f"{user.namespace.path}/my-project")

    def test_rename_replaces_hook_dispatch(
        self, update_project, project, admin, seed_repository, hook_recorder
    ):
        seed_repository(project.full_path)

        update_project(project, admin, {"path": "renamed"})

        assert hook_recorder.requests == []

    def test_rename_is_audited(
        self, update_project, db_session, project, admin, user, seed_repository
    ):
        seed_repository(project.full_path)

        update_project(project, admin, {"path": "renamed"})

        entries = AuditService(db_session).query_by_action("renamed")
        assert len(entries) == 1
        assert entries[0].after == {"full_path": f"{user.namespace.path}/renamed"}

    def test_failed_move_reverts_path(
        self, update_project, db_session, project, admin
    ):
        # No repository on disk, so storage has nothing to move
        result = update_project(project, admin, {"path": "renamed"})

        assert result.code == ErrorCode.STORAGE_FAILURE
        assert result.message == "Repository cannot be renamed"
        db_session.refresh(project)
        assert project.path == "my-project"


class TestInvalidParameters:
    """Values rejected when the project is saved."""

    def test_returns_error_when_record_cannot_be_updated(
        self, update_project, project, admin
    ):
        result = update_project(project, admin, {"name": "foo&bar"})

        assert result.to_dict() == {
            "status": "error",
            "message": "Project could not be updated",
        }
        assert result.code == ErrorCode.PERSISTENCE_FAILURE
        assert "name" in project.errors

    def test_invalid_update_dispatches_no_hooks(
        self, update_project, project, admin, hook_recorder
    ):
        update_project(project, admin, {"name": "foo&bar"})

        assert hook_recorder.requests == []

    def test_invalid_update_is_not_persisted(
        self, update_project, db_session, project, admin
    ):
        update_project(project, admin, {"name": "foo&bar", "description": "new"})

        db_session.refresh(project)
        assert project.name == "My Project"
        assert project.description is None

    def test_duplicate_path_in_namespace(
        self, update_project, make_project, project, user, admin
    ):
        make_project(user, path="taken")

        result = update_project(project, admin, {"path": "taken"})

        assert result.code == ErrorCode.PERSISTENCE_FAILURE
        assert project.errors["path"] == ["has already been taken"]

    def test_unknown_keys_are_rejected(self, db_session, store, project, admin):
        with pytest.raises(ValueError):
            UpdateService(db_session, project, admin, {"owner_id": 5}, store=store)


class TestUnknownVisibilityValue:
    """Levels outside private, internal and public."""

    def test_refused_for_owner(self, update_project, db_session, project, user):
        result = update_project(project, user, {"visibility_level": 30})

        assert result.to_dict() == {
            "status": "error",
            "message": "Visibility level unallowed",
        }
        assert result.code == ErrorCode.VISIBILITY_DENIED
        assert project.errors["visibility_level"] == [
            "30 has been restricted by your administrator"
        ]
        db_session.refresh(project)
        assert project.is_private()

    def test_refusal_is_audited_with_requested_value(
        self, update_project, db_session, project, user
    ):
        update_project(project, user, {"visibility_level": 30})

        entries = AuditService(db_session).query_by_action("visibility_denied")
        assert len(entries) == 1
        assert entries[0].after == {"visibility_level": 30}

    def test_admin_fails_validation(self, update_project, db_session, project, admin):
        result = update_project(project, admin, {"visibility_level": "secret"})

        assert result.to_dict() == {
            "status": "error",
            "message": "Project could not be updated",
        }
        assert result.code == ErrorCode.PERSISTENCE_FAILURE
        assert project.errors["visibility_level"] == ["is not included in the list"]
        db_session.refresh(project)
        assert project.is_private()

    def test_admin_numeric_value_dispatches_no_hooks(
        self, update_project, project, admin, hook_recorder
    ):
        result = update_project(project, admin, {"visibility_level": 30})

        assert result.code == ErrorCode.PERSISTENCE_FAILURE
        assert hook_recorder.requests == []

    def test_value_kept_as_given(self):
        assert ProjectUpdate(visibility_level="secret").visibility_level == "secret"
        assert ProjectUpdate(visibility_level=30).visibility_level == 30
        assert ProjectUpdate(visibility_level="10").visibility_level is (
            VisibilityLevel.INTERNAL
        )


class TestErrorsReset:
    """Each update starts with an empty error list."""

    def test_denial_after_failed_update(
        self, update_project, project, user, restrict_visibility
    ):
        update_project(project, user, {"name": "foo&bar"})
        assert "name" in project.errors

        restrict_visibility(VisibilityLevel.PUBLIC)
        update_project(project, user, {"visibility_level": VisibilityLevel.PUBLIC})

        assert "name" not in project.errors
        assert project.errors.full_messages() == [
            "Visibility level public has been restricted by your administrator"
        ]


class TestHooks:
    """Successful updates without a path change notify system hooks."""

    def test_dispatches_project_update(
        self, update_project, project, user, hook_recorder
    ):
        result = update_project(project, user, {"description": "Now documented"})

        assert result.is_success
        assert len(hook_recorder.requests) == 1
        request = hook_recorder.requests[0]
        assert request.headers["X-Codehost-Event"] == "System Hook"
        assert request.headers["X-Codehost-Token"] == "s3cret"
        payload = json.loads(request.content)
        assert payload["event_name"] == "project_update"
        assert payload["path_with_namespace"] == "alice/my-project"
        assert payload["project_visibility"] == "private"

    def test_successful_update_is_audited(
        self, update_project, db_session, project, user
    ):
        update_project(project, user, ProjectUpdate(name="Renamed Project"))

        entries = AuditService(db_session).query_by_action("updated")
        assert len(entries) == 1
        assert entries[0].before == {"name": "My Project"}
        assert entries[0].after == {"name": "Renamed Project"}


    def test_closes_hook_client_it_creates(
        self, monkeypatch, db_session, store, project, user
    ):
        created = []

        class RecordingHookService(SystemHookService):
            def __init__(self, db):
                super().__init__(db)
                created.append(self)

        monkeypatch.setattr(update_service, "SystemHookService", RecordingHookService)

        result = UpdateService(
            db_session, project, user, {"description": "Docs"}, store=store
        ).execute()

        assert result.is_success
        assert len(created) == 1
        assert created[0].client.is_closed

    def test_injected_hook_client_stays_open(
        self, update_project, project, user, hooks
    ):
        update_project(project, user, {"description": "Docs"})

        assert not hooks.client.is_closed


class TestChangedFields:
    def test_reports_only_differences(self):
        before = {"name": "a", "path": "a", "visibility_level": 0}
        after = {"name": "a", "path": "b", "visibility_level": 10}

        assert changed_fields(before, after) == {
            "path": ("a", "b"),
            "visibility_level": (0, 10),
        }

    def test_no_differences(self):
        assert changed_fields({"name": "a"}, {"name": "a"}) == {}
