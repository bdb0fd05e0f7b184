"""Helpers shared by data migrations."""

from __future__ import annotations

from typing import Any, Optional

import sqlalchemy as sa
import structlog
from alembic import op
from sqlalchemy.engine import Connection

logger = structlog.get_logger()

DEFAULT_BATCH_SIZE = 1000


def update_column_in_batches(
    table_name: str,
    column_name: str,
    value: Any,
    batch_size: int = DEFAULT_BATCH_SIZE,
    bind: Optional[Connection] = None,
) -> int:
    """Set ``column_name`` to ``value`` on every row, ``batch_size`` ids at a time.

    Rows are walked in primary key order so each UPDATE touches a bounded id
    range instead of locking the whole table.

    Args:
        table_name: Table with an integer ``id`` primary key
        column_name: Column to overwrite
        value: New value (None writes NULL)
        batch_size: Rows per UPDATE statement
        bind: Connection to use; defaults to the running migration's

    Returns:
        Number of rows updated
    """
    if batch_size < 1:
        raise ValueError("batch_size must be positive")
    if bind is None:
        bind = op.get_bind()

    table = sa.table(table_name, sa.column("id", sa.Integer), sa.column(column_name))

    start_id = bind.execute(
        sa.select(table.c.id).order_by(table.c.id).limit(1)
    ).scalar()

    updated = 0
    batches = 0
    while start_id is not None:
        stop_id = bind.execute(
            sa.select(table.c.id)
            .where(table.c.id >= start_id)
            .order_by(table.c.id)
            .offset(batch_size)
            .limit(1)
        ).scalar()

        stmt = (
            sa.update(table)
            .where(table.c.id >= start_id)
            .values({column_name: value})
        )
        if stop_id is not None:
            stmt = stmt.where(table.c.id < stop_id)

        updated += bind.execute(stmt).rowcount
        batches += 1
        start_id = stop_id

    logger.info(
        "column_updated_in_batches",
        table=table_name,
        column=column_name,
        rows=updated,
        batches=batches,
    )
    return updated
