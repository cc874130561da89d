"""
Asana Lake API Server - REST API for scope discovery, scope configs and runs.

Run with:
    uvicorn api.server:app --port 8420
"""
# ruff: noqa: S104
# S104: Development server binding (guarded by __name__ check)

import logging
import os
from datetime import UTC, datetime

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.pipeline_router import pipeline_router
from api.remote_scope_router import remote_scope_router
from api.response_models import HealthResponse
from api.scope_config_router import scope_config_router
from lake import db as db_module
from lake.observability import configure_logging
from lake.observability.logging import CorrelationIdMiddleware

logger = logging.getLogger(__name__)

PLUGIN_PREFIX = "/plugins/asana"

# FastAPI app initialization
app = FastAPI(
    title="Asana Lake API",
    description="Asana ingestion: remote scope browsing, scope configs and pipeline runs",
    version="1.0.0",
)

# CORS middleware - configurable via CORS_ORIGINS env var
# Dev default: allow all origins; Production: set CORS_ORIGINS to comma-separated list
cors_origins_env = os.getenv("CORS_ORIGINS", "*")
cors_origins = (
    ["*"] if cors_origins_env == "*" else [o.strip() for o in cors_origins_env.split(",")]
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)
app.add_middleware(CorrelationIdMiddleware)

app.include_router(remote_scope_router, prefix=PLUGIN_PREFIX)
app.include_router(scope_config_router, prefix=PLUGIN_PREFIX)
app.include_router(pipeline_router, prefix=PLUGIN_PREFIX)


# ==== DB Startup & Migrations ====
@app.on_event("startup")
async def run_db_migrations_on_startup():
    """Converge the lake schema before serving."""
    logger.info("=== Asana Lake Startup ===")
    db_module.run_startup_migrations()


@app.get("/health", response_model=HealthResponse)
def health():
    with db_module.get_connection() as conn:
        version = db_module.get_schema_version(conn)
    return HealthResponse(
        status="healthy",
        schema_version=version,
        timestamp=datetime.now(UTC).isoformat(),
    )


if __name__ == "__main__":
    configure_logging()
    port = int(os.getenv("PORT", "8420"))
    uvicorn.run(app, host="0.0.0.0", port=port)
