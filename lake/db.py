"""
Centralized Database Access for the lake.

Single source of truth for:
- DB path resolution
- Connection factory
- Schema convergence (delegated to schema_engine)

Schema is declared in lake/schema. Convergence logic lives in lake/schema_engine.
"""

import logging
import re
import sqlite3
import threading
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path

from lake import paths, safe_sql, schema, schema_engine

logger = logging.getLogger(__name__)

# Seconds a writer waits on a locked DB before failing
BUSY_TIMEOUT_SECONDS = 30.0

_SAFE_IDENTIFIER_RE = re.compile(r"^[a-zA-Z_][a-zA-Z0-9_]*$")


def validate_identifier(name: str) -> str:
    """Validate that *name* is a safe SQL identifier (table or column name).

    Returns the name unchanged if valid; raises ``ValueError`` otherwise.
    """
    if not _SAFE_IDENTIFIER_RE.match(name):
        raise ValueError(f"Invalid SQL identifier: {name!r}")
    return name


def get_db_path() -> Path:
    """
    Resolution order:
    1. ASANA_LAKE_DB env var (explicit override)
    2. ~/.asana_lake/data/asana_lake.db
    """
    return paths.db_path()


def connect(db_path: str | Path | None = None, row_factory: bool = True) -> sqlite3.Connection:
    """Open a connection with row factory, FK enforcement and busy timeout."""
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), timeout=BUSY_TIMEOUT_SECONDS, check_same_thread=False)
    if row_factory:
        conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA foreign_keys=ON")
    return conn


@contextmanager
def get_connection(
    db_path: str | Path | None = None,
    row_factory: bool = True,
) -> Generator[sqlite3.Connection, None, None]:
    """
    Get a database connection that commits on success.

    Usage:
        with get_connection() as conn:
            conn.execute(...)
    """
    conn = connect(db_path, row_factory=row_factory)
    try:
        yield conn
        conn.commit()
    finally:
        conn.close()


# ============================================================
# SCHEMA INTROSPECTION
# ============================================================


def get_table_columns(conn: sqlite3.Connection, table: str) -> set[str]:
    validate_identifier(table)
    try:
        cursor = conn.execute(safe_sql.pragma_table_info(table))
        return {row[1] for row in cursor.fetchall()}
    except sqlite3.OperationalError:
        return set()


def table_exists(conn: sqlite3.Connection, table: str) -> bool:
    cursor = conn.execute("SELECT name FROM sqlite_master WHERE type='table' AND name=?", (table,))
    return cursor.fetchone() is not None


def get_schema_version(conn: sqlite3.Connection) -> int:
    return conn.execute("PRAGMA user_version").fetchone()[0]


# ============================================================
# SCHEMA CONVERGENCE
# ============================================================

_converged: set[str] = set()
_converge_lock = threading.Lock()


def run_migrations(conn: sqlite3.Connection) -> dict:
    """Converge the schema of *conn* to lake/schema. Returns a results dict."""
    previous_version = get_schema_version(conn)
    results = schema_engine.converge(conn)
    results["previous_version"] = previous_version
    return results


def run_startup_migrations(db_path: str | Path | None = None) -> dict:
    """Run schema convergence for one database file and log what changed."""
    path = Path(db_path) if db_path else get_db_path()

    logger.info("Resolved DB path: %s (exists: %s)", path, path.exists())
    logger.info("Target SCHEMA_VERSION: %s", schema.SCHEMA_VERSION)

    with get_connection(path) as conn:
        results = run_migrations(conn)

    if results.get("tables_created"):
        logger.info("Tables created: %s", results["tables_created"])
    if results.get("columns_added"):
        logger.info("Columns added: %s", results["columns_added"])
    if results.get("indexes_created"):
        logger.info("Indexes created: %d", len(results["indexes_created"]))
    if results.get("errors"):
        logger.warning("Convergence errors: %s", results["errors"])
    if not (results.get("tables_created") or results.get("columns_added")):
        logger.info("No changes needed, schema up to date")

    return results


def ensure_migrations(db_path: str | Path | None = None) -> None:
    """Converge each database file once per process."""
    key = str(Path(db_path) if db_path else get_db_path())
    with _converge_lock:
        if key in _converged:
            return
        run_startup_migrations(key)
        _converged.add(key)


def get_db_info(db_path: str | Path | None = None) -> dict:
    """Path, size, schema version and per-table row counts for `cli check`/`/health`."""
    path = Path(db_path) if db_path else get_db_path()
    info = {
        "resolved_db_path": str(path),
        "exists": path.exists(),
        "file_size": None,
        "sqlite_version": sqlite3.sqlite_version,
        "user_version": None,
        "target_schema_version": schema.SCHEMA_VERSION,
        "tables": {},
    }
    if not path.exists():
        return info

    info["file_size"] = path.stat().st_size
    with get_connection(path) as conn:
        info["user_version"] = get_schema_version(conn)
        for table in schema.TABLES:
            if table_exists(conn, table):
                info["tables"][table] = conn.execute(safe_sql.select_count(table)).fetchone()["c"]
            else:
                info["tables"][table] = None
    return info
