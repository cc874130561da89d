"""
Test fixtures for deterministic testing.

This module provides:
- fixture_db: temp SQLite databases with the lake schema
- fake_asana: FakeAsanaClient serving canned pages
"""

from .fake_asana import FakeAsanaClient
from .fixture_db import create_fixture_db, guard_no_live_db, seed_tasks

__all__ = ["FakeAsanaClient", "create_fixture_db", "guard_no_live_db", "seed_tasks"]
