"""Null out clusters_applications_runners.version

Revision ID: b7d8e9f0a1c2
Revises: a1c2e3f4b5d6
Create Date: 2026-10-18

Clears every stored runner version, in batches of ids.
"""
from __future__ import annotations

from codehost.db.migration_helpers import update_column_in_batches

# revision identifiers, used by Alembic.
revision = "b7d8e9f0a1c2"
down_revision = "a1c2e3f4b5d6"
branch_labels = None
depends_on = None


def upgrade() -> None:
    update_column_in_batches("clusters_applications_runners", "version", None)


def downgrade() -> None:
    # Previous versions cannot be recovered
    pass
