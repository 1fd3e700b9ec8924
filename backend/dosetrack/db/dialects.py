"""Dialect-specific statement builders."""

from __future__ import annotations

from typing import Any

from sqlalchemy.dialects.postgresql import insert as postgresql_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

_INSERTS = {
    "postgresql": postgresql_insert,
    "sqlite": sqlite_insert,
}


def conflict_insert(session: AsyncSession, entity: Any):
    """Return an INSERT supporting ``ON CONFLICT`` for the session's dialect."""
    dialect_name = session.get_bind().dialect.name
    builder = _INSERTS.get(dialect_name)
    if builder is None:
        raise ValueError(f"ON CONFLICT inserts unsupported for dialect {dialect_name!r}")
    return builder(entity)
