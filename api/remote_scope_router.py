"""
Remote Scope Router - browse an Asana connection for projects to collect.

Endpoints:
- POST /plugins/asana/connections/{connection_id}/test
- GET  /plugins/asana/connections/{connection_id}/remote-scopes?groupId=&pageToken=

groupId is a remote scope path ("" for the root); pageToken is the opaque
token returned as nextPageToken by the previous call.
"""

import logging
from collections.abc import Callable

from fastapi import APIRouter, Depends, HTTPException, Query

from api.dependencies import client_for, get_client_factory
from api.response_models import ConnectionTestResponse, RemoteScopeEntry, RemoteScopesResponse
from engine.asana_client import AsanaApiError, AsanaClient, MalformedResponseError
from lake.remote_scopes import (
    InvalidPageToken,
    InvalidScopePath,
    browse,
    decode_page_token,
    encode_page_token,
)

logger = logging.getLogger(__name__)

remote_scope_router = APIRouter(tags=["Remote Scopes"])


@remote_scope_router.post(
    "/connections/{connection_id}/test", response_model=ConnectionTestResponse
)
def check_connection(
    connection_id: int,
    factory: Callable[[int], AsanaClient] = Depends(get_client_factory),
):
    """Check the connection's token against users/me."""
    client = client_for(factory, connection_id)
    try:
        user = client.me()
    except (AsanaApiError, MalformedResponseError) as e:
        logger.warning(f"Connection {connection_id} test failed: {e}")
        raise HTTPException(status_code=400, detail=f"Connection test failed: {e}") from e
    return ConnectionTestResponse(success=True, message="success", user=user)


@remote_scope_router.get(
    "/connections/{connection_id}/remote-scopes", response_model=RemoteScopesResponse
)
def get_remote_scopes(
    connection_id: int,
    group_id: str = Query("", alias="groupId"),
    page_token: str = Query("", alias="pageToken"),
    factory: Callable[[int], AsanaClient] = Depends(get_client_factory),
):
    try:
        page = decode_page_token(page_token)
    except InvalidPageToken as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    client = client_for(factory, connection_id)
    try:
        listing = browse(client, group_id, page)
    except InvalidScopePath as e:
        raise HTTPException(status_code=400, detail=str(e)) from e
    except AsanaApiError as e:
        logger.error(f"Remote scope listing failed for {group_id!r}: {e}")
        raise HTTPException(status_code=502, detail=f"Asana API error: {e}") from e
    except MalformedResponseError as e:
        logger.error(f"Malformed remote scope response for {group_id!r}: {e}")
        raise HTTPException(status_code=502, detail=str(e)) from e

    return RemoteScopesResponse(
        children=[
            RemoteScopeEntry(
                type=child.type,
                id=child.id,
                name=child.name,
                fullName=child.full_name,
                parentId=child.parent_id,
                data=child.data,
            )
            for child in listing.children
        ],
        nextPageToken=encode_page_token(listing.next_page),
    )
