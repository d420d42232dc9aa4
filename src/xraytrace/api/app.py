# src/xraytrace/api/app.py — v1
"""X-Ray persistence API: FastAPI application over a BaseStore.

Usage:
    app = create_app(MemoryStore())
    uvicorn.run(app, host="127.0.0.1", port=3000)

Create endpoints answer 201. Unknown ids answer 404, a second terminal
status change answers 409 and malformed bodies answer 422. Error bodies are
``{"error": "<message>"}``.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse

from xraytrace.analytics.queries import DEFAULT_ELIMINATION_THRESHOLD, ELIMINATION_STEP_TYPE
from xraytrace.core.models import (
    Candidate,
    CandidateBatch,
    CandidateStatus,
    Filter,
    FilterCreate,
    Run,
    RunCreate,
    RunDetail,
    RunStatus,
    RunUpdate,
    Step,
    StepCreate,
    StepDetail,
    StepUpdate,
)
from xraytrace.store.base_store import BaseStore
from xraytrace.store.errors import (
    DuplicateRecordError,
    InvalidTransitionError,
    RecordNotFoundError,
)
from xraytrace.version import __version__

logger = logging.getLogger(__name__)

SERVICE_NAME = "xray-api"


def get_store(request: Request) -> BaseStore:
    return request.app.state.store


# === HEALTH ===

health_router = APIRouter(tags=["health"])


@health_router.get("/health")
async def health() -> dict[str, str]:
    return {
        "status": "ok",
        "service": SERVICE_NAME,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# === RUNS ===

runs_router = APIRouter(prefix="/api/runs", tags=["runs"])


@runs_router.post("", status_code=201, response_model=Run)
async def create_run(data: RunCreate, store: BaseStore = Depends(get_store)) -> Run:
    return await store.create_run(data)


@runs_router.get("", response_model=list[Run])
async def list_runs(
    pipeline_id: str | None = None,
    status: RunStatus | None = None,
    limit: int | None = Query(default=None, ge=0),
    offset: int = Query(default=0, ge=0),
    store: BaseStore = Depends(get_store),
) -> list[Run]:
    return await store.list_runs(pipeline_id=pipeline_id, status=status, limit=limit, offset=offset)


@runs_router.get("/{run_id}", response_model=RunDetail)
async def get_run(run_id: str, store: BaseStore = Depends(get_store)) -> RunDetail:
    run = await store.get_run(run_id)
    if run is None:
        raise RecordNotFoundError("Run", run_id)
    return run


@runs_router.patch("/{run_id}", response_model=Run)
async def update_run(
    run_id: str, update: RunUpdate, store: BaseStore = Depends(get_store)
) -> Run:
    return await store.update_run(run_id, update)


# === STEPS ===

steps_router = APIRouter(prefix="/api/steps", tags=["steps"])


@steps_router.post("", status_code=201, response_model=Step)
async def create_step(data: StepCreate, store: BaseStore = Depends(get_store)) -> Step:
    return await store.create_step(data)


# Query routes are declared before /{step_id} so they are not shadowed by it.
@steps_router.get("/query/high-elimination", response_model=list[Step])
async def query_high_elimination(
    threshold: float = DEFAULT_ELIMINATION_THRESHOLD,
    step_type: str = ELIMINATION_STEP_TYPE,
    store: BaseStore = Depends(get_store),
) -> list[Step]:
    return await store.query_high_elimination(threshold=threshold, step_type=step_type)


@steps_router.get("/query/by-type/{step_type:path}", response_model=list[Step])
async def query_by_type(
    step_type: str,
    limit: int | None = Query(default=None, ge=0),
    offset: int = Query(default=0, ge=0),
    store: BaseStore = Depends(get_store),
) -> list[Step]:
    return await store.query_by_type(step_type, limit=limit, offset=offset)


@steps_router.get("/{step_id}", response_model=StepDetail)
async def get_step(step_id: str, store: BaseStore = Depends(get_store)) -> StepDetail:
    step = await store.get_step(step_id)
    if step is None:
        raise RecordNotFoundError("Step", step_id)
    return step


@steps_router.patch("/{step_id}", response_model=Step)
async def update_step(
    step_id: str, update: StepUpdate, store: BaseStore = Depends(get_store)
) -> Step:
    return await store.update_step(step_id, update)


@steps_router.post("/{step_id}/candidates", status_code=201, response_model=list[Candidate])
async def create_candidates(
    step_id: str, batch: CandidateBatch, store: BaseStore = Depends(get_store)
) -> list[Candidate]:
    return await store.create_candidates_bulk(step_id, batch.candidates)


@steps_router.get("/{step_id}/candidates", response_model=list[Candidate])
async def list_candidates(
    step_id: str,
    status: CandidateStatus | None = None,
    limit: int | None = Query(default=None, ge=0),
    store: BaseStore = Depends(get_store),
) -> list[Candidate]:
    return await store.list_candidates(step_id, status=status, limit=limit)


@steps_router.post("/{step_id}/filters", status_code=201, response_model=Filter)
async def create_filter(
    step_id: str, data: FilterCreate, store: BaseStore = Depends(get_store)
) -> Filter:
    return await store.create_filter(step_id, data)


# === APPLICATION ===


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


def create_app(store: BaseStore, close_store: bool = True) -> FastAPI:
    """Build the API application.

    Args:
        store: Backend every route reads and writes.
        close_store: Close the store when the application shuts down.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("X-Ray API starting with %s", type(store).__name__)
        yield
        if close_store:
            await store.close()
        logger.info("X-Ray API stopped")

    app = FastAPI(title="X-Ray API", version=__version__, lifespan=lifespan)
    app.state.store = store

    app.include_router(health_router)
    app.include_router(runs_router)
    app.include_router(steps_router)

    @app.exception_handler(RecordNotFoundError)
    async def handle_not_found(_: Request, exc: RecordNotFoundError) -> JSONResponse:
        return _error(404, str(exc))

    @app.exception_handler(InvalidTransitionError)
    async def handle_transition(_: Request, exc: InvalidTransitionError) -> JSONResponse:
        logger.warning("Rejected status change: %s", exc)
        return _error(409, str(exc))

    @app.exception_handler(DuplicateRecordError)
    async def handle_duplicate(_: Request, exc: DuplicateRecordError) -> JSONResponse:
        logger.warning("Rejected duplicate write: %s", exc)
        return _error(409, str(exc))

    @app.exception_handler(ValueError)
    async def handle_invalid(_: Request, exc: ValueError) -> JSONResponse:
        return _error(422, str(exc))

    return app
