"""
Pipeline Router - run the Asana stages for one project.

Endpoints:
- GET  /plugins/asana/pipelines/stages
- POST /plugins/asana/pipelines

The run is synchronous: the response carries every stage result. A failed
or cancelled run answers 500 with the partial result in `detail`.
"""

import logging
from collections.abc import Callable

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import client_for, get_client_factory, get_lake_store
from api.response_models import PipelineRequest, PipelineResponse
from engine.asana_client import AsanaClient
from lake.models import PipelineOptions
from lake.pipeline import SUBTASK_METAS, PipelineError, run_pipeline, select_stages
from lake.store import LakeStore

logger = logging.getLogger(__name__)

pipeline_router = APIRouter(tags=["Pipelines"])


@pipeline_router.get("/pipelines/stages")
def list_stages():
    return [
        {
            "name": stage.name,
            "enabled_by_default": stage.enabled_by_default,
            "description": stage.description,
            "domain_types": list(stage.domain_types),
        }
        for stage in SUBTASK_METAS
    ]


@pipeline_router.post("/pipelines", response_model=PipelineResponse)
def run(
    body: PipelineRequest,
    store: LakeStore = Depends(get_lake_store),
    factory: Callable[[int], AsanaClient] = Depends(get_client_factory),
):
    options = PipelineOptions(
        connection_id=body.connectionId,
        project_id=body.projectId,
        scope_config_id=body.scopeConfigId,
    )
    try:
        options.validate()
        selected = select_stages(body.stages)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e)) from e

    client = None
    if any(stage.needs_client for stage in selected):
        client = client_for(factory, options.connection_id)

    try:
        result = run_pipeline(options, store=store, client=client, stages=body.stages)
    except PipelineError as e:
        raise HTTPException(
            status_code=500,
            detail={"error": str(e), "cause": str(e.__cause__), **e.result.to_dict()},
        ) from e
    return result.to_dict()
