# backend/mentorlink/database/session_utils.py
"""
Dialect-specific statement helpers.

Conversation find-or-create and deleter-set inserts rely on
``ON CONFLICT DO NOTHING``, which PostgreSQL and SQLite both implement
through their own ``insert`` constructs.
"""

from typing import Any, Callable, Dict

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

_UPSERT_INSERTS: Dict[str, Callable[[Any], Any]] = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def dialect_insert(session: Session, table: Any) -> Any:
    """Return an ``INSERT`` for ``table`` that supports ``on_conflict_do_nothing``."""
    dialect = session.get_bind().dialect.name
    insert = _UPSERT_INSERTS.get(dialect)
    if insert is None:
        raise NotImplementedError(f"ON CONFLICT upserts are not supported on {dialect}")
    return insert(table)
