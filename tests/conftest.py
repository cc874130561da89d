"""
Test configuration: ensures repo root is in sys.path and isolates the lake.

Every test runs with ASANA_LAKE_HOME / ASANA_LAKE_DB pointing into its own
tmp_path, so nothing reads or writes ~/.asana_lake.
"""

import sys
from pathlib import Path

import pytest

# Add repo root to sys.path so tests can import lake.*, engine.*, api.*, cli.*
REPO_ROOT = Path(__file__).parent.parent
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from lake.context import PipelineContext  # noqa: E402
from lake.models import PipelineOptions  # noqa: E402
from lake.store import LakeStore  # noqa: E402
from tests.fixtures import FakeAsanaClient, create_fixture_db  # noqa: E402

CONNECTION_ID = 1
PROJECT_GID = "P1"


@pytest.fixture(autouse=True)
def isolated_lake_home(tmp_path, monkeypatch):
    """Point the lake home and DB at tmp_path for every test."""
    home = tmp_path / "lake_home"
    monkeypatch.setenv("ASANA_LAKE_HOME", str(home))
    monkeypatch.setenv("ASANA_LAKE_DB", str(home / "data" / "asana_lake.db"))
    return home


@pytest.fixture
def store(tmp_path) -> LakeStore:
    return LakeStore(create_fixture_db(tmp_path / "fixture.db"))


@pytest.fixture
def fake_client() -> FakeAsanaClient:
    return FakeAsanaClient()


@pytest.fixture
def make_ctx(store):
    """Build a PipelineContext over the fixture store."""

    def _make(client=None, scope_config_id=None, **kwargs) -> PipelineContext:
        options = PipelineOptions(CONNECTION_ID, PROJECT_GID, scope_config_id)
        return PipelineContext(options=options, store=store, client=client, **kwargs)

    return _make


@pytest.fixture
def ctx(make_ctx, fake_client) -> PipelineContext:
    return make_ctx(client=fake_client)
