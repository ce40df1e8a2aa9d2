"""
Dialect-aware database types and statements.
Provides PostgreSQL JSONB when available,
falls back to generic JSON for SQLite.
"""
from enum import Enum as PyEnum
from typing import List, Type

from sqlalchemy import JSON, Enum
from sqlalchemy.dialects.postgresql import JSONB, insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.engine import Dialect
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.types import TypeDecorator


class UniversalJSON(TypeDecorator):
    """
    Uses JSONB for PostgreSQL.
    Uses JSON for SQLite and others.
    """
    impl = JSON
    cache_ok = True

    def load_dialect_impl(self, dialect: Dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(JSONB())
        return dialect.type_descriptor(JSON())


def _enum_values(enum_cls: Type[PyEnum]) -> List[str]:
    return [member.value for member in enum_cls]


def ValueEnum(enum_cls: Type[PyEnum], name: str) -> Enum:
    """Enum column type persisting the member values ('judging'), not names."""
    return Enum(
        enum_cls,
        name=name,
        values_callable=_enum_values,
        create_constraint=True,
        validate_strings=True,
    )


def upsert_insert(db: AsyncSession, table):
    """
    INSERT statement supporting ON CONFLICT for the session's dialect.

    Uniqueness constraints resolve concurrent writers; callers chain
    .on_conflict_do_update(index_elements=[...], set_={...}).
    """
    dialect_name = db.get_bind().dialect.name
    if dialect_name == "postgresql":
        return pg_insert(table)
    if dialect_name == "sqlite":
        return sqlite_insert(table)
    raise NotImplementedError(f"Upsert is not supported on dialect '{dialect_name}'")
