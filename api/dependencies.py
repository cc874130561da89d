"""
FastAPI dependencies shared by the Asana plugin routers.

Usage:
    @router.get("/...")
    def endpoint(store: LakeStore = Depends(get_lake_store)): ...

Tests swap these through app.dependency_overrides.
"""

import logging
from collections.abc import Callable

from fastapi import HTTPException

from engine.asana_client import AsanaClient
from lake.config import ConnectionNotFound
from lake.store import LakeStore, get_store

logger = logging.getLogger(__name__)


def get_lake_store() -> LakeStore:
    return get_store()


def get_client_factory() -> Callable[[int], AsanaClient]:
    """Connection id -> AsanaClient."""
    return AsanaClient.for_connection


def client_for(factory: Callable[[int], AsanaClient], connection_id: int) -> AsanaClient:
    """Build the connection's client, turning config problems into HTTP errors."""
    try:
        return factory(connection_id)
    except ConnectionNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except ValueError as e:
        # token env var unset
        raise HTTPException(status_code=400, detail=str(e)) from e
