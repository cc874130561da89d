"""
Lake Store - SQLite persistence shared by every pipeline stage.

Raw tables are appended to during a collection and cleared per scope before
the next one. Tool and domain tables are rebuilt per raw origin, tool rows
upserted by primary key. Each operation opens its own
connection so fan-out workers can write concurrently.
"""

import json
import logging
import sqlite3
import threading
from collections.abc import Iterable
from contextlib import contextmanager
from pathlib import Path
from typing import Any

from lake import db as db_module
from lake import safe_sql
from lake.models import RawRecord

logger = logging.getLogger(__name__)


def _encode(value: Any) -> Any:
    if isinstance(value, dict | list):
        return json.dumps(value, sort_keys=True)
    if isinstance(value, bool):
        return int(value)
    return value


class LakeStore:
    """SQLite-backed store for raw, tool and domain rows."""

    def __init__(self, db_path: str | Path | None = None):
        self.db_path = str(db_path or db_module.get_db_path())
        db_module.ensure_migrations(self.db_path)
        logger.debug("LakeStore ready, DB path: %s", self.db_path)

    @contextmanager
    def _get_conn(self):
        with db_module.get_connection(self.db_path) as conn:
            yield conn

    # ==================== Raw layer ====================

    def append_raw(
        self,
        table: str,
        params: str,
        items: Iterable[Any],
        url: str = "",
        input_row: dict | None = None,
    ) -> int:
        """Append one raw record per element. Elements are stored as JSON bytes."""
        sql = safe_sql.insert(table, ["params", "data", "url", "input"])
        input_json = json.dumps(input_row, sort_keys=True) if input_row is not None else None
        count = 0
        with self._get_conn() as conn:
            for item in items:
                data = item if isinstance(item, bytes) else json.dumps(item).encode("utf-8")
                conn.execute(sql, [params, sqlite3.Binary(data), url, input_json])
                count += 1
        return count

    def iter_raw(self, table: str, params: str) -> list[RawRecord]:
        """Raw records for one scope in insertion order, so later collections win."""
        with self._get_conn() as conn:
            rows = conn.execute(
                safe_sql.select(table, where="params = ?", order_by="id"), [params]
            ).fetchall()
        return [RawRecord.from_row(row) for row in rows]

    def clear_raw(self, table: str, params: str) -> int:
        """Drop one scope's raw records ahead of a fresh collection."""
        with self._get_conn() as conn:
            return conn.execute(safe_sql.delete(table, "params = ?"), [params]).rowcount

    def count_raw(self, table: str, params: str) -> int:
        with self._get_conn() as conn:
            return conn.execute(safe_sql.select_count(table, "params = ?"), [params]).fetchone()[
                "c"
            ]

    # ==================== Tool / domain rows ====================

    def upsert_many(self, table: str, rows: list[dict]) -> int:
        """INSERT OR REPLACE each row. Returns count."""
        if not rows:
            return 0
        with self._get_conn() as conn:
            self._upsert(conn, table, rows)
        return len(rows)

    def _upsert(self, conn: sqlite3.Connection, table: str, rows: list[dict]) -> None:
        for row in rows:
            columns = list(row.keys())
            conn.execute(
                safe_sql.insert_or_replace(table, columns), [_encode(v) for v in row.values()]
            )

    def replace_by_origin(
        self,
        outputs: dict[str, list[dict]],
        raw_table: str,
        params: str,
    ) -> dict[str, int]:
        """
        Delete every row in each output table that came from (raw_table, params),
        then insert the new rows, in one transaction.

        Rows no longer produced by the source disappear instead of lingering.
        """
        counts: dict[str, int] = {}
        with self._get_conn() as conn:
            for table, rows in outputs.items():
                conn.execute(
                    safe_sql.delete(table, "raw_data_table = ? AND raw_data_params = ?"),
                    [raw_table, params],
                )
                self._upsert(conn, table, rows)
                counts[table] = len(rows)
        return counts

    def insert(self, table: str, data: dict) -> int:
        """Insert a row. Returns the rowid."""
        with self._get_conn() as conn:
            cursor = conn.execute(
                safe_sql.insert(table, list(data.keys())), [_encode(v) for v in data.values()]
            )
            return cursor.lastrowid

    def update_where(self, table: str, data: dict, where: str, params: list) -> int:
        if not data:
            return 0
        with self._get_conn() as conn:
            cursor = conn.execute(
                safe_sql.update(table, list(data.keys()), where),
                [_encode(v) for v in data.values()] + list(params),
            )
            return cursor.rowcount

    def delete_where(self, table: str, where: str, params: list) -> int:
        with self._get_conn() as conn:
            return conn.execute(safe_sql.delete(table, where), params).rowcount

    def find(
        self,
        table: str,
        where: str | None = None,
        params: list | None = None,
        order_by: str | None = None,
    ) -> list[dict]:
        with self._get_conn() as conn:
            rows = conn.execute(safe_sql.select(table, where=where, order_by=order_by), params or [])
            return [dict(row) for row in rows.fetchall()]

    def find_one(self, table: str, where: str, params: list) -> dict | None:
        with self._get_conn() as conn:
            row = conn.execute(
                safe_sql.select(table, where=where, suffix="LIMIT 1"), params
            ).fetchone()
            return dict(row) if row else None

    def count(self, table: str, where: str | None = None, params: list | None = None) -> int:
        with self._get_conn() as conn:
            return conn.execute(safe_sql.select_count(table, where), params or []).fetchone()["c"]

    def query(self, sql: str, params: list | None = None) -> list[dict]:
        """Execute a raw read query. Returns list of dicts."""
        with self._get_conn() as conn:
            return [dict(row) for row in conn.execute(sql, params or []).fetchall()]


_default_store: LakeStore | None = None
_default_lock = threading.Lock()


def get_store(db_path: str | Path | None = None) -> LakeStore:
    """Process-wide store for the configured DB; an explicit path gets its own store."""
    global _default_store  # noqa: PLW0603
    if db_path is not None:
        return LakeStore(db_path)
    with _default_lock:
        if _default_store is None or _default_store.db_path != str(db_module.get_db_path()):
            _default_store = LakeStore()
        return _default_store
