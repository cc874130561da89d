"""
Centralized configuration for the Asana lake.

All values that vary by deployment belong here.
Override via environment variables where marked.
Connection credentials live in sources.yaml (see load_connections).
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import yaml

from lake import paths

logger = logging.getLogger(__name__)

# ============================================================
# Asana API
# ============================================================

ASANA_API_BASE: str = os.environ.get("ASANA_LAKE_API_BASE", "https://app.asana.com/api/1.0")
"""Base URL of the Asana REST API."""

DEFAULT_PAGE_SIZE: int = int(os.environ.get("ASANA_LAKE_PAGE_SIZE", "100"))
"""Page size sent as `limit` on every list request."""

HTTP_TIMEOUT_SECONDS: float = float(os.environ.get("ASANA_LAKE_HTTP_TIMEOUT", "30"))
"""Per-request timeout for Asana calls."""

MAX_RETRIES: int = int(os.environ.get("ASANA_LAKE_MAX_RETRIES", "3"))
"""Retries for transient failures (timeouts, 429, 5xx) before a stage fails."""

RETRY_BASE_DELAY: float = float(os.environ.get("ASANA_LAKE_RETRY_BASE_DELAY", "1.0"))
"""First backoff delay in seconds, doubled on each retry."""

REQUESTS_PER_MINUTE: int = int(os.environ.get("ASANA_LAKE_REQUESTS_PER_MINUTE", "150"))
"""Client-side token bucket size. Asana free plans allow 150/min."""

# ============================================================
# Pipeline
# ============================================================

FANOUT_WORKERS: int = int(os.environ.get("ASANA_LAKE_FANOUT_WORKERS", "4"))
"""Worker threads for per-task sub-collections (subtasks, tags, stories)."""

DEFAULT_TOKEN_ENV: str = "ASANA_PAT"
"""Env var holding the personal access token when sources.yaml names none."""


# ============================================================
# Connections (sources.yaml)
# ============================================================


class ConnectionNotFound(Exception):
    """Raised when a connection id is not defined in sources.yaml."""


@dataclass
class ConnectionConfig:
    """One Asana connection: where to call and which token to use."""

    connection_id: int
    name: str = ""
    endpoint: str = ASANA_API_BASE
    token_env: str = DEFAULT_TOKEN_ENV
    rate_limit_per_minute: int = REQUESTS_PER_MINUTE

    @property
    def token(self) -> str:
        token = os.environ.get(self.token_env, "")
        if not token:
            raise ValueError(
                f"No Asana token for connection {self.connection_id}. Set {self.token_env}."
            )
        return token


def load_sources(path: str | Path | None = None) -> dict:
    """Load sources.yaml from the config directory. Missing file means no connections."""
    config_file = Path(path) if path else paths.sources_path()
    if config_file.exists():
        with open(config_file) as f:
            return yaml.safe_load(f) or {}
    logger.debug("No sources file at %s", config_file)
    return {"connections": {}}


def load_connections(path: str | Path | None = None) -> dict[int, ConnectionConfig]:
    """Parse the `connections:` map of sources.yaml into ConnectionConfig objects."""
    raw = load_sources(path).get("connections") or {}
    connections: dict[int, ConnectionConfig] = {}
    for key, entry in raw.items():
        entry = entry or {}
        connection_id = int(key)
        connections[connection_id] = ConnectionConfig(
            connection_id=connection_id,
            name=entry.get("name", ""),
            endpoint=entry.get("endpoint", ASANA_API_BASE).rstrip("/"),
            token_env=entry.get("token_env", DEFAULT_TOKEN_ENV),
            rate_limit_per_minute=int(entry.get("rate_limit_per_minute", REQUESTS_PER_MINUTE)),
        )
    return connections


def get_connection_config(connection_id: int, path: str | Path | None = None) -> ConnectionConfig:
    connections = load_connections(path)
    if connection_id not in connections:
        raise ConnectionNotFound(f"Connection {connection_id} is not defined in sources.yaml")
    return connections[connection_id]
