"""
SQL construction with validated identifiers.

SQLite cannot bind table or column names as parameters, so every dynamic
identifier in the lake passes through _validate() before it is interpolated.
Values are always bound with ``?``.
"""

# ruff: noqa: S608 - all identifiers validated via _validate() before interpolation.

from __future__ import annotations

import re

_SAFE_IDENTIFIER_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def _validate(name: str) -> str:
    """Return *name* unchanged if it is a safe SQL identifier, else raise ValueError."""
    if not _SAFE_IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


# ────────────────────────────────────────────────────────────
# PRAGMA helpers
# ────────────────────────────────────────────────────────────


def pragma_table_info(table: str) -> str:
    return f"PRAGMA table_info([{_validate(table)}])"


def pragma_user_version_set(version: int) -> str:
    if not isinstance(version, int) or version < 0:
        raise ValueError(f"Invalid schema version: {version!r}")
    return f"PRAGMA user_version = {version}"


# ────────────────────────────────────────────────────────────
# DML
# ────────────────────────────────────────────────────────────


def select(
    table: str,
    columns: str = "*",
    where: str | None = None,
    order_by: str | None = None,
    suffix: str = "",
) -> str:
    """Build SELECT with validated table name.

    *columns* is a raw column expression (``"*"`` or ``"gid, name"``).
    *where* is a clause without the keyword and must use ``?`` for values.
    """
    sql = f"SELECT {columns} FROM {_validate(table)}"
    if where:
        sql += f" WHERE {where}"
    if order_by:
        sql += f" ORDER BY {order_by}"
    if suffix:
        sql += f" {suffix}"
    return sql


def select_count(table: str, where: str | None = None) -> str:
    sql = f"SELECT COUNT(*) as c FROM {_validate(table)}"
    if where:
        sql += f" WHERE {where}"
    return sql


def insert(table: str, columns: list[str]) -> str:
    """Plain INSERT; used for append-only raw tables."""
    _validate(table)
    for col in columns:
        _validate(col)
    cols = ",".join(columns)
    placeholders = ",".join("?" for _ in columns)
    return f"INSERT INTO {table} ({cols}) VALUES ({placeholders})"


def insert_or_replace(table: str, columns: list[str]) -> str:
    """INSERT OR REPLACE; rows with the same primary key are overwritten."""
    _validate(table)
    for col in columns:
        _validate(col)
    cols = ",".join(columns)
    placeholders = ",".join("?" for _ in columns)
    return f"INSERT OR REPLACE INTO {table} ({cols}) VALUES ({placeholders})"


def update(table: str, set_columns: list[str], where: str = "id = ?") -> str:
    _validate(table)
    for col in set_columns:
        _validate(col)
    sets = ",".join(f"{col} = ?" for col in set_columns)
    return f"UPDATE {table} SET {sets} WHERE {where}"


def delete(table: str, where: str = "id = ?") -> str:
    return f"DELETE FROM {_validate(table)} WHERE {where}"


# ────────────────────────────────────────────────────────────
# DDL
# ────────────────────────────────────────────────────────────


def alter_add_column(table: str, column: str, column_type: str) -> str:
    # column_type comes from the declarative schema, not user input
    return f"ALTER TABLE [{_validate(table)}] ADD COLUMN [{_validate(column)}] {column_type}"


def drop_table(name: str) -> str:
    return f"DROP TABLE IF EXISTS [{_validate(name)}]"


def drop_view(name: str) -> str:
    return f"DROP VIEW IF EXISTS [{_validate(name)}]"


def create_index(name: str, table: str, columns: str, where: str | None = None) -> str:
    where_clause = f" WHERE {where}" if where else ""
    return (
        f"CREATE INDEX IF NOT EXISTS [{_validate(name)}] "
        f"ON [{_validate(table)}]({columns}){where_clause}"
    )
