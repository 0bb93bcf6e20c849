"""FastAPI surface for the ERP query engine.

Callers post a skill input plus the request context (tenant, user and
resolved Odoo credentials); the response is the skill's result envelope.
The engine, and with it the query cache, is built once at startup.
"""

import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI, HTTPException, Request, Response
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, Field

from erp_engine.config import get_settings
from erp_engine.engine import QueryEngine
from erp_engine.observability.metrics import APP_INFO, REQUEST_DURATION, REQUESTS_IN_PROGRESS, REQUESTS_TOTAL
from erp_engine.skills.base import SkillContext

logger = logging.getLogger(__name__)

VERSION = "0.1.0"


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class InvokeRequest(BaseModel):
    """Request body for POST /skills/{name}."""

    input: dict[str, Any] = Field(default_factory=dict)
    context: SkillContext


class SkillSummary(BaseModel):
    """One entry of GET /skills."""

    name: str
    description: str
    tags: list[str]
    parameters: dict[str, Any]


class CacheHealth(BaseModel):
    hits: int
    misses: int
    size: int
    max_entries: int


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str
    version: str
    skills: int
    cache: CacheHealth
    erp_clients: int


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Build the engine once at startup."""
    settings = get_settings()
    logging.getLogger("erp_engine").setLevel(settings.log_level.upper())
    APP_INFO.info({"version": VERSION, "timezone": settings.timezone})

    logger.info("Building ERP query engine...")
    try:
        app.state.engine = QueryEngine(settings=settings)
    except Exception:
        logger.exception("Failed to build query engine at startup")
        raise
    logger.info("Query engine ready with %d skills", len(app.state.engine.registry))
    yield
    logger.info("Shutting down ERP query engine")


app = FastAPI(title="ERP Query Engine", lifespan=lifespan)


def _engine(request: Request) -> QueryEngine:
    engine: QueryEngine = request.app.state.engine
    return engine


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------


@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus metrics in exposition format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/skills", response_model=list[SkillSummary])
async def list_skills(request: Request) -> list[SkillSummary]:
    """Catalog of available skills with their parameter schemas."""
    return [
        SkillSummary(
            name=s.name,
            description=s.description,
            tags=list(s.tags),
            parameters=s.parameters_schema(),
        )
        for s in _engine(request).registry.skills
    ]


@app.post("/skills/{name}")
async def invoke_skill(name: str, body: InvokeRequest, request: Request) -> JSONResponse:
    """Run one skill and return its result envelope.

    Skill failures are part of the envelope and come back with HTTP 200;
    only an unknown skill name is a 404.
    """
    engine = _engine(request)
    if name not in engine.registry:
        REQUESTS_TOTAL.labels(endpoint="/skills", status="not_found").inc()
        raise HTTPException(status_code=404, detail=f"Unknown skill '{name}'")

    REQUESTS_IN_PROGRESS.labels(endpoint="/skills").inc()
    start = time.monotonic()
    try:
        result = await engine.invoke(name, body.input, body.context)
    except Exception as exc:
        REQUESTS_TOTAL.labels(endpoint="/skills", status="error").inc()
        logger.exception("Skill invocation failed: %s", name)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    finally:
        REQUESTS_IN_PROGRESS.labels(endpoint="/skills").dec()
        REQUEST_DURATION.labels(endpoint="/skills").observe(time.monotonic() - start)

    REQUESTS_TOTAL.labels(endpoint="/skills", status="success" if result.success else "failure").inc()
    return JSONResponse(content=result.to_json())


@app.get("/health", response_model=HealthResponse)
async def health(request: Request) -> HealthResponse:
    """Liveness plus registry size and cache counters."""
    engine = _engine(request)
    stats = engine.cache.stats()
    return HealthResponse(
        status="healthy",
        version=VERSION,
        skills=len(engine.registry),
        cache=CacheHealth(hits=stats.hits, misses=stats.misses, size=stats.size, max_entries=stats.max_entries),
        erp_clients=engine.client_count,
    )
