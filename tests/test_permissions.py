"""Unit tests for the project permission policy."""

import pytest

from codehost.db.models import DEVELOPER, GUEST, MASTER, OWNER, REPORTER
from codehost.policy import Action, Role, can, roles_for
from codehost.projects.visibility import VisibilityLevel


class TestRolesFor:
    """Tests for resolving a user's roles on a project."""

    def test_namespace_owner(self, project, user):
        assert Role.OWNER in roles_for(user, project)

    def test_admin(self, project, admin):
        roles = roles_for(admin, project)
        assert Role.ADMIN in roles
        assert Role.OWNER not in roles

    @pytest.mark.parametrize(
        "access_level,role",
        [
            (GUEST, Role.GUEST),
            (REPORTER, Role.REPORTER),
            (DEVELOPER, Role.DEVELOPER),
            (MASTER, Role.MASTER),
            (OWNER, Role.OWNER),
        ],
    )
    def test_member_access_levels(
        self, project, make_user, add_member, access_level, role
    ):
        member = make_user("bob")
        add_member(project, member, access_level)

        assert role in roles_for(member, project)

    def test_stranger_on_private_project(self, project, make_user):
        assert roles_for(make_user("mallory"), project) == frozenset()

    def test_stranger_on_internal_project(self, make_project, user, make_user):
        internal = make_project(user, visibility=VisibilityLevel.INTERNAL)

        assert roles_for(make_user("mallory"), internal) == frozenset({Role.GUEST})

    def test_blocked_owner_has_no_roles(self, db_session, project, user):
        user.is_blocked = True
        db_session.commit()

        assert roles_for(user, project) == frozenset()

    def test_anonymous_on_private_project(self, project):
        assert roles_for(None, project) == frozenset({Role.ANONYMOUS})

    def test_anonymous_on_public_project(self, make_project, user):
        public = make_project(user, visibility=VisibilityLevel.PUBLIC)

        assert roles_for(None, public) == frozenset({Role.GUEST, Role.ANONYMOUS})


class TestCan:
    """Tests for action checks."""

    def test_owner_can_change_visibility(self, project, user):
        assert can(user, Action.CHANGE_VISIBILITY_LEVEL, project)

    def test_admin_can_change_visibility(self, project, admin):
        assert can(admin, Action.CHANGE_VISIBILITY_LEVEL, project)

    def test_master_cannot_change_visibility(self, project, make_user, add_member):
        master = make_user("bob")
        add_member(project, master, MASTER)

        assert can(master, Action.ADMIN_PROJECT, project)
        assert not can(master, Action.CHANGE_VISIBILITY_LEVEL, project)

    def test_developer_can_only_read(self, project, make_user, add_member):
        developer = make_user("carol")
        add_member(project, developer, DEVELOPER)

        assert can(developer, Action.READ_PROJECT, project)
        assert not can(developer, Action.ADMIN_PROJECT, project)
        assert not can(developer, Action.RENAME_PROJECT, project)

    def test_blocked_owner_cannot_read(self, db_session, project, user):
        user.is_blocked = True
        db_session.commit()

        assert not can(user, Action.READ_PROJECT, project)

    def test_anonymous_reads_public_only(self, project, make_project, user):
        public = make_project(user, path="public", visibility=VisibilityLevel.PUBLIC)

        assert can(None, Action.READ_PROJECT, public)
        assert not can(None, Action.READ_PROJECT, project)
        assert not can(None, Action.CHANGE_VISIBILITY_LEVEL, public)

    def test_accepts_action_values(self, project, user):
        assert can(user, "remove_project", project)

    def test_unknown_action_raises(self, project, user):
        with pytest.raises(ValueError):
            can(user, "delete_everything", project)
