"""
INSERT .. ON CONFLICT DO UPDATE for PostgreSQL and SQLite.

The conflict target must be backed by a unique index. Columns in the
conflict target and the primary key are never overwritten.
"""

from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session


def _insert_for(session: Session, model):
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return postgresql.insert(model)
    if dialect == "sqlite":
        return sqlite.insert(model)
    raise NotImplementedError(f"upsert is not supported for dialect '{dialect}'")


def bulk_upsert(
    session: Session,
    model,
    rows: Sequence[Dict[str, Any]],
    conflict_columns: Iterable[str],
    update_columns: Optional[Iterable[str]] = None,
) -> None:
    """Upsert rows keyed on ``conflict_columns``. All rows must share the same keys."""
    if not rows:
        return

    conflict = list(conflict_columns)
    stmt = _insert_for(session, model).values(list(rows))

    columns: List[str] = list(update_columns) if update_columns is not None else list(rows[0].keys())
    set_ = {
        name: stmt.excluded[name]
        for name in columns
        if name not in conflict and name != "id"
    }
    stmt = stmt.on_conflict_do_update(index_elements=conflict, set_=set_)
    session.execute(stmt)


def upsert(
    session: Session,
    model,
    values: Dict[str, Any],
    conflict_columns: Iterable[str],
    update_columns: Optional[Iterable[str]] = None,
) -> None:
    bulk_upsert(session, model, [values], conflict_columns, update_columns)
