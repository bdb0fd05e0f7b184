"""Create core tables

Revision ID: a1c2e3f4b5d6
Revises:
Create Date: 2026-10-18

Users, namespaces, projects (with fork links), project members, system
hooks, the audit log and cluster runner applications.
"""
from __future__ import annotations

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision = "a1c2e3f4b5d6"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("username", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=True),
        sa.Column("email", sa.String(255), nullable=True),
        sa.Column("is_admin", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_blocked", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_users_username", "users", ["username"], unique=True)

    op.create_table(
        "namespaces",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("path", sa.String(255), nullable=False),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("owner_id", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_namespaces_path", "namespaces", ["path"], unique=True)
    op.create_index("ix_namespaces_owner_id", "namespaces", ["owner_id"])

    op.create_table(
        "projects",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("path", sa.String(255), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column(
            "namespace_id", sa.Integer, sa.ForeignKey("namespaces.id"), nullable=False
        ),
        sa.Column("creator_id", sa.Integer, sa.ForeignKey("users.id"), nullable=True),
        sa.Column("visibility_level", sa.Integer, nullable=False, server_default="0"),
        sa.Column("default_branch", sa.String(255), nullable=True),
        sa.Column(
            "forked_from_project_id",
            sa.Integer,
            sa.ForeignKey("projects.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint("namespace_id", "path", name="uq_projects_namespace_path"),
    )
    op.create_index("ix_projects_name", "projects", ["name"])
    op.create_index("ix_projects_path", "projects", ["path"])
    op.create_index("ix_projects_namespace_id", "projects", ["namespace_id"])
    op.create_index("ix_projects_visibility_level", "projects", ["visibility_level"])
    op.create_index(
        "ix_projects_forked_from_project_id", "projects", ["forked_from_project_id"]
    )

    op.create_table(
        "project_members",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "project_id",
            sa.Integer,
            sa.ForeignKey("projects.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            sa.Integer,
            sa.ForeignKey("users.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("access_level", sa.Integer, nullable=False, server_default="10"),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.UniqueConstraint(
            "project_id", "user_id", name="uq_project_members_project_user"
        ),
    )
    op.create_index("ix_project_members_user", "project_members", ["user_id"])

    op.create_table(
        "system_hooks",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("url", sa.String(2000), nullable=False),
        sa.Column("token", sa.String(255), nullable=True),
        sa.Column("enabled", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_system_hooks_enabled", "system_hooks", ["enabled"])

    op.create_table(
        "audit_log",
        sa.Column("id", sa.String(length=36), primary_key=True),
        sa.Column(
            "ts",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "actor_kind",
            sa.Enum("user", "system", name="audit_actor_kind", create_constraint=True),
            nullable=False,
        ),
        sa.Column("actor_id", sa.String(length=128), nullable=False),
        sa.Column(
            "action",
            sa.Enum(
                "updated",
                "visibility_denied",
                "visibility_cascaded",
                "renamed",
                "head_changed",
                name="audit_action",
                create_constraint=True,
            ),
            nullable=False,
        ),
        sa.Column("entity_kind", sa.String(length=50), nullable=False),
        sa.Column("entity_id", sa.String(length=128), nullable=False),
        sa.Column("before", sa.JSON, nullable=True),
        sa.Column("after", sa.JSON, nullable=True),
        sa.Column("note", sa.Text, nullable=True),
    )
    op.create_index("ix_audit_log_ts", "audit_log", ["ts"])
    op.create_index("ix_audit_log_actor_id", "audit_log", ["actor_id"])
    op.create_index("ix_audit_log_action", "audit_log", ["action"])
    op.create_index("ix_audit_log_entity_kind", "audit_log", ["entity_kind"])
    op.create_index("ix_audit_log_entity_id", "audit_log", ["entity_id"])
    op.create_index("ix_audit_log_entity", "audit_log", ["entity_kind", "entity_id"])
    op.create_index("ix_audit_log_actor", "audit_log", ["actor_kind", "actor_id"])
    op.create_index("ix_audit_log_ts_action", "audit_log", ["ts", "action"])

    op.create_table(
        "clusters_applications_runners",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("cluster_id", sa.Integer, nullable=False),
        sa.Column("runner_id", sa.Integer, nullable=True),
        sa.Column("status", sa.Integer, nullable=False, server_default="0"),
        sa.Column("version", sa.String(255), nullable=True),
        sa.Column("status_reason", sa.Text, nullable=True),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index(
        "ix_clusters_applications_runners_cluster_id",
        "clusters_applications_runners",
        ["cluster_id"],
    )


def downgrade() -> None:
    op.drop_table("clusters_applications_runners")
    op.drop_table("audit_log")
    op.drop_table("system_hooks")
    op.drop_table("project_members")
    op.drop_table("projects")
    op.drop_table("namespaces")
    op.drop_table("users")

    # Drop enum types (PostgreSQL)
    bind = op.get_bind()
    if bind.dialect.name == "postgresql":
        sa.Enum(name="audit_action").drop(bind, checkfirst=True)
        sa.Enum(name="audit_actor_kind").drop(bind, checkfirst=True)
