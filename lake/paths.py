from __future__ import annotations

import os
from pathlib import Path

APP_ENV_HOME = "ASANA_LAKE_HOME"
APP_ENV_DB = "ASANA_LAKE_DB"


def project_root() -> Path:
    """
    Repository/project root directory.
    Contains lake/, engine/, api/, cli/, config/.
    """
    return Path(__file__).parent.parent.resolve()


def app_home() -> Path:
    """
    User-writable home for the lake.
    Override with ASANA_LAKE_HOME.
    """
    if os.environ.get(APP_ENV_HOME):
        return Path(os.environ[APP_ENV_HOME]).expanduser().resolve()
    return (Path.home() / ".asana_lake").resolve()


def config_dir() -> Path:
    d = app_home() / "config"
    d.mkdir(parents=True, exist_ok=True)
    return d


def data_dir() -> Path:
    d = app_home() / "data"
    d.mkdir(parents=True, exist_ok=True)
    return d


def db_path() -> Path:
    """
    Canonical DB path for the lake.

    Resolution order:
    1. ASANA_LAKE_DB env var (explicit override)
    2. ~/.asana_lake/data/asana_lake.db (default)
    """
    if os.environ.get(APP_ENV_DB):
        return Path(os.environ[APP_ENV_DB]).expanduser().resolve()
    return data_dir() / "asana_lake.db"


def sources_path() -> Path:
    """Connection definitions (sources.yaml) in the config directory."""
    return config_dir() / "sources.yaml"
