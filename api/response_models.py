"""
Shared Pydantic request/response models for the Asana plugin API.

These models give FastAPI the type information it needs to generate
accurate OpenAPI schemas instead of empty `schema: {}`.
"""

from typing import Any

from pydantic import BaseModel, Field

# ==== Health Check ====


class HealthResponse(BaseModel):
    """Health check result."""

    status: str = Field(description="healthy or error")
    schema_version: int = Field(description="Schema version (user_version) of the lake DB")
    timestamp: str = Field(description="ISO timestamp")


# ==== Mutation Result ====
# Used by DELETE endpoints that return {success: bool, ...}.


class MutationResponse(BaseModel):
    """Standard mutation result."""

    success: bool = Field(description="Whether the operation succeeded")

    model_config = {"extra": "allow"}


# ==== Connection ====


class ConnectionTestResponse(BaseModel):
    success: bool
    message: str = ""
    user: dict[str, Any] | None = Field(default=None, description="users/me payload")


# ==== Remote Scopes ====
# Shape: {children: [...], nextPageToken}


class RemoteScopeEntry(BaseModel):
    """One child of a remote scope group: a group to descend into or a project scope."""

    type: str = Field(description="group or scope")
    id: str
    name: str
    fullName: str
    parentId: str | None = None
    data: dict[str, Any] | None = Field(default=None, description="AsanaProject for scopes")


class RemoteScopesResponse(BaseModel):
    children: list[RemoteScopeEntry] = Field(default_factory=list)
    nextPageToken: str = Field(default="", description="Opaque token; empty on the last page")


# ==== Scope Configs ====


class StatusMapping(BaseModel):
    standardStatus: str


class TypeMappingModel(BaseModel):
    standardType: str = ""
    statusMappings: dict[str, StatusMapping] = Field(default_factory=dict)


class ScopeConfigBody(BaseModel):
    """Create (all optional but name) or partial update of a scope config."""

    name: str | None = None
    issueTypeRequirement: str | None = None
    issueTypeBug: str | None = None
    issueTypeIncident: str | None = None
    typeMappings: dict[str, TypeMappingModel] | None = None
    applicationType: str | None = None
    storyPointField: str | None = None
    priorityField: str | None = None
    epicField: str | None = None
    severityField: str | None = None
    dueDateField: str | None = None


class ScopeConfigResponse(BaseModel):
    id: int
    connectionId: int
    name: str
    issueTypeRequirement: str = ""
    issueTypeBug: str = ""
    issueTypeIncident: str = ""
    typeMappings: dict[str, TypeMappingModel] = Field(default_factory=dict)
    applicationType: str = ""
    storyPointField: str = ""
    priorityField: str = ""
    epicField: str = ""
    severityField: str = ""
    dueDateField: str = ""


# ==== Scopes ====


class ScopeBody(BaseModel):
    gid: str
    name: str | None = None
    resourceType: str | None = None
    archived: bool | None = None
    workspaceGid: str | None = None
    permalinkUrl: str | None = None
    scopeConfigId: int | None = None


class PutScopesBody(BaseModel):
    data: list[ScopeBody]


class PatchScopeBody(BaseModel):
    scopeConfigId: int | None = Field(default=None, description="null clears the assignment")


class ScopeResponse(BaseModel):
    connectionId: int
    gid: str
    name: str = ""
    resourceType: str = ""
    archived: bool = False
    workspaceGid: str = ""
    permalinkUrl: str = ""
    scopeConfigId: int | None = None


# ==== Pipelines ====


class PipelineRequest(BaseModel):
    connectionId: int
    projectId: str
    scopeConfigId: int | None = None
    stages: list[str] | None = Field(default=None, description="Subset of stage names; all when omitted")


class StageResultModel(BaseModel):
    name: str
    status: str
    rows: int = 0
    duration_ms: float = 0.0
    error: str | None = None


class PipelineResponse(BaseModel):
    connection_id: int
    project_id: str
    run_id: str = ""
    success: bool
    stages: list[StageResultModel] = Field(default_factory=list)
