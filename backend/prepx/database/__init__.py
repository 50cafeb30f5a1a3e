"""Database engine, session and upsert helpers."""

from prepx.database.session import (
    create_db_engine,
    create_session_factory,
    get_db_session,
    init_schema,
)
from prepx.database.upsert import bulk_upsert, upsert

__all__ = [
    "create_db_engine",
    "create_session_factory",
    "get_db_session",
    "init_schema",
    "bulk_upsert",
    "upsert",
]
