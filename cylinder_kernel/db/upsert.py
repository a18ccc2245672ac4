"""
Module: cylinder_kernel.db.upsert
Responsibility: Transactional insert-or-update of ledger balance rows keyed by
    their unique composite key.  One statement, no read-then-write window.
Architecture position: Kernel > DB.  May import from db/base.py only.

Invariants enforced:
    - Exactly one row per key: the statement targets the table's unique
      constraint, so a concurrent or repeated recompute overwrites instead
      of duplicating.
    - Primary key and creation audit columns are never overwritten on
      conflict; only the value columns passed in ``values`` are updated.

Failure modes:
    - NotImplementedError for dialects without ON CONFLICT support.
    - IntegrityError if ``key_columns`` do not match a unique constraint.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy import Table
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

_DIALECT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def upsert(
    session: Session,
    table: Table,
    key_columns: Sequence[str],
    values: Mapping[str, Any],
) -> None:
    """
    Insert ``values`` or, if a row with the same key exists, update it.

    Preconditions:
        ``values`` contains every name in ``key_columns``.
        ``key_columns`` is exactly the column list of a unique constraint.
    Postconditions:
        One row exists for the key holding ``values``.  The row's ``id`` is
        stable across repeated upserts.
    """
    dialect_name = session.get_bind().dialect.name
    insert_fn = _DIALECT_INSERTS.get(dialect_name)
    if insert_fn is None:
        raise NotImplementedError(f"upsert not supported for dialect {dialect_name}")

    stmt = insert_fn(table).values(**values)
    update_cols = {
        name: stmt.excluded[name]
        for name in values
        if name not in key_columns and name != "id"
    }
    stmt = stmt.on_conflict_do_update(
        index_elements=list(key_columns),
        set_=update_cols,
    )
    session.execute(stmt)
