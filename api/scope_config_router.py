"""
Scope Config Router - classification rules and chosen projects per connection.

Endpoints:
- GET    /plugins/asana/connections/{cid}/scope-configs
- POST   /plugins/asana/connections/{cid}/scope-configs
- GET    /plugins/asana/connections/{cid}/scope-configs/{id}
- PATCH  /plugins/asana/connections/{cid}/scope-configs/{id}
- DELETE /plugins/asana/connections/{cid}/scope-configs/{id}
- GET    /plugins/asana/connections/{cid}/scope-configs/{id}/projects
- GET    /plugins/asana/connections/{cid}/scopes
- PUT    /plugins/asana/connections/{cid}/scopes
- GET    /plugins/asana/connections/{cid}/scopes/{gid}
- PATCH  /plugins/asana/connections/{cid}/scopes/{gid}
- DELETE /plugins/asana/connections/{cid}/scopes/{gid}
"""

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_lake_store
from api.response_models import (
    MutationResponse,
    PatchScopeBody,
    PutScopesBody,
    ScopeConfigBody,
    ScopeConfigResponse,
    ScopeResponse,
)
from lake import scope_configs
from lake.models import ScopeConfig, parse_type_mappings
from lake.scope_configs import ScopeConfigConflict, ScopeConfigNotFound, ScopeNotFound
from lake.store import LakeStore

logger = logging.getLogger(__name__)

scope_config_router = APIRouter(tags=["Scope Configs"])

# request field -> column
_BODY_FIELDS = {
    "name": "name",
    "issueTypeRequirement": "issue_type_requirement",
    "issueTypeBug": "issue_type_bug",
    "issueTypeIncident": "issue_type_incident",
    "applicationType": "application_type",
    "storyPointField": "story_point_field",
    "priorityField": "priority_field",
    "epicField": "epic_field",
    "severityField": "severity_field",
    "dueDateField": "due_date_field",
}


def _changes(body: ScopeConfigBody) -> dict:
    changes = {
        column: getattr(body, attr)
        for attr, column in _BODY_FIELDS.items()
        if getattr(body, attr) is not None
    }
    if body.typeMappings is not None:
        changes["type_mappings"] = {
            subtype: mapping.model_dump() for subtype, mapping in body.typeMappings.items()
        }
    return changes


def _config_response(scope_config: ScopeConfig) -> ScopeConfigResponse:
    return ScopeConfigResponse(
        id=scope_config.id,
        connectionId=scope_config.connection_id,
        name=scope_config.name,
        issueTypeRequirement=scope_config.issue_type_requirement,
        issueTypeBug=scope_config.issue_type_bug,
        issueTypeIncident=scope_config.issue_type_incident,
        typeMappings={k: v.to_json() for k, v in scope_config.type_mappings.items()},
        applicationType=scope_config.application_type,
        storyPointField=scope_config.story_point_field,
        priorityField=scope_config.priority_field,
        epicField=scope_config.epic_field,
        severityField=scope_config.severity_field,
        dueDateField=scope_config.due_date_field,
    )


def _scope_response(row: dict) -> ScopeResponse:
    return ScopeResponse(
        connectionId=row["connection_id"],
        gid=row["gid"],
        name=row["name"] or "",
        resourceType=row["resource_type"] or "",
        archived=bool(row["archived"]),
        workspaceGid=row["workspace_gid"] or "",
        permalinkUrl=row["permalink_url"] or "",
        scopeConfigId=row["scope_config_id"],
    )


def _http_error(e: Exception) -> HTTPException:
    if isinstance(e, ScopeConfigNotFound | ScopeNotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, ScopeConfigConflict):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


_HANDLED = (ScopeConfigNotFound, ScopeNotFound, ScopeConfigConflict, ValueError)


# ==== Scope configs ====


@scope_config_router.get(
    "/connections/{connection_id}/scope-configs", response_model=list[ScopeConfigResponse]
)
def list_scope_configs(connection_id: int, store: LakeStore = Depends(get_lake_store)):
    return [_config_response(c) for c in scope_configs.list_scope_configs(store, connection_id)]


@scope_config_router.post(
    "/connections/{connection_id}/scope-configs",
    response_model=ScopeConfigResponse,
    status_code=201,
)
def create_scope_config(
    connection_id: int, body: ScopeConfigBody, store: LakeStore = Depends(get_lake_store)
):
    changes = _changes(body)
    try:
        type_mappings = parse_type_mappings(changes.pop("type_mappings", None))
        created = scope_configs.create_scope_config(
            store, ScopeConfig(connection_id=connection_id, type_mappings=type_mappings, **changes)
        )
    except _HANDLED as e:
        raise _http_error(e) from e
    return _config_response(created)


@scope_config_router.get(
    "/connections/{connection_id}/scope-configs/{scope_config_id}",
    response_model=ScopeConfigResponse,
)
def get_scope_config(
    connection_id: int, scope_config_id: int, store: LakeStore = Depends(get_lake_store)
):
    try:
        return _config_response(scope_configs.get_scope_config(store, connection_id, scope_config_id))
    except _HANDLED as e:
        raise _http_error(e) from e


@scope_config_router.patch(
    "/connections/{connection_id}/scope-configs/{scope_config_id}",
    response_model=ScopeConfigResponse,
)
def patch_scope_config(
    connection_id: int,
    scope_config_id: int,
    body: ScopeConfigBody,
    store: LakeStore = Depends(get_lake_store),
):
    try:
        updated = scope_configs.update_scope_config(
            store, connection_id, scope_config_id, _changes(body)
        )
    except _HANDLED as e:
        raise _http_error(e) from e
    return _config_response(updated)


@scope_config_router.delete(
    "/connections/{connection_id}/scope-configs/{scope_config_id}",
    response_model=MutationResponse,
)
def delete_scope_config(
    connection_id: int, scope_config_id: int, store: LakeStore = Depends(get_lake_store)
):
    try:
        scope_configs.delete_scope_config(store, connection_id, scope_config_id)
    except _HANDLED as e:
        raise _http_error(e) from e
    return MutationResponse(success=True, id=scope_config_id)


@scope_config_router.get(
    "/connections/{connection_id}/scope-configs/{scope_config_id}/projects",
    response_model=list[ScopeResponse],
)
def get_scope_config_projects(
    connection_id: int, scope_config_id: int, store: LakeStore = Depends(get_lake_store)
):
    try:
        scope_configs.get_scope_config(store, connection_id, scope_config_id)
    except _HANDLED as e:
        raise _http_error(e) from e
    rows = scope_configs.projects_using(store, connection_id, scope_config_id)
    return [_scope_response(row) for row in rows]


# ==== Scopes ====


@scope_config_router.get(
    "/connections/{connection_id}/scopes", response_model=list[ScopeResponse]
)
def list_scopes(connection_id: int, store: LakeStore = Depends(get_lake_store)):
    return [_scope_response(row) for row in scope_configs.list_scopes(store, connection_id)]


@scope_config_router.put(
    "/connections/{connection_id}/scopes", response_model=list[ScopeResponse]
)
def put_scopes(connection_id: int, body: PutScopesBody, store: LakeStore = Depends(get_lake_store)):
    projects = [
        {
            "gid": scope.gid,
            "name": scope.name,
            "resource_type": scope.resourceType,
            "archived": scope.archived,
            "workspace_gid": scope.workspaceGid,
            "permalink_url": scope.permalinkUrl,
            "scope_config_id": scope.scopeConfigId,
        }
        for scope in body.data
    ]
    try:
        saved = scope_configs.put_scopes(store, connection_id, projects)
    except _HANDLED as e:
        raise _http_error(e) from e
    return [_scope_response(row) for row in saved]


@scope_config_router.get(
    "/connections/{connection_id}/scopes/{gid}", response_model=ScopeResponse
)
def get_scope(connection_id: int, gid: str, store: LakeStore = Depends(get_lake_store)):
    try:
        return _scope_response(scope_configs.get_scope(store, connection_id, gid))
    except _HANDLED as e:
        raise _http_error(e) from e


@scope_config_router.patch(
    "/connections/{connection_id}/scopes/{gid}", response_model=ScopeResponse
)
def patch_scope(
    connection_id: int,
    gid: str,
    body: PatchScopeBody,
    store: LakeStore = Depends(get_lake_store),
):
    try:
        row = scope_configs.assign_scope_config(store, connection_id, gid, body.scopeConfigId)
    except _HANDLED as e:
        raise _http_error(e) from e
    return _scope_response(row)


@scope_config_router.delete(
    "/connections/{connection_id}/scopes/{gid}", response_model=MutationResponse
)
def delete_scope(connection_id: int, gid: str, store: LakeStore = Depends(get_lake_store)):
    try:
        scope_configs.delete_scope(store, connection_id, gid)
    except _HANDLED as e:
        raise _http_error(e) from e
    return MutationResponse(success=True, gid=gid)
