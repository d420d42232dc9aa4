# tests/conftest.py — v1
"""Shared test fixtures for all unit and integration tests.

Provides in-process stores, a deterministic capture strategy, a manual clock
and candidate batches. No external services; the HTTP layer runs in-process.
"""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

import httpx
import pytest
import pytest_asyncio

from xraytrace.api.app import create_app
from xraytrace.capture.strategy import CaptureStrategy
from xraytrace.client.http_store import HttpStore
from xraytrace.core.models import CandidateInput
from xraytrace.logging.context import clear_context
from xraytrace.sdk.xray import XRay
from xraytrace.store.memory_store import MemoryStore
from xraytrace.store.sqlite_store import SqliteStore


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime.now(timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += timedelta(milliseconds=ms)


def make_candidates(count: int, scored: bool = True, prefix: str = "item") -> list[CandidateInput]:
    """`count` candidates keyed <prefix>-0..N-1 with score == index when scored."""
    return [
        CandidateInput(
            candidate_id=f"{prefix}-{i}",
            data={"title": f"Item {i}", "price": 10 + i},
            score=float(i) if scored else None,
        )
        for i in range(count)
    ]


# === FIXTURES: Stores ===


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest_asyncio.fixture
async def sqlite_store(tmp_path):
    store = SqliteStore(db_path=tmp_path / "xray.db")
    yield store
    await store.close()


@pytest_asyncio.fixture(params=["memory", "sqlite"])
async def local_store(request, tmp_path):
    """Each in-process backend in turn."""
    if request.param == "memory":
        store = MemoryStore()
    else:
        store = SqliteStore(db_path=tmp_path / "xray.db")
    yield store
    await store.close()


@pytest_asyncio.fixture
async def http_store(memory_store):
    """HttpStore wired to the FastAPI app in-process."""
    app = create_app(memory_store)
    client = httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://xray.test"
    )
    store = HttpStore(client=client)
    yield store
    await client.aclose()


# === FIXTURES: Engine ===


@pytest.fixture
def strategy() -> CaptureStrategy:
    return CaptureStrategy(rng=random.Random(42))


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def xray(memory_store, strategy) -> XRay:
    return XRay(memory_store, strategy=strategy)


@pytest.fixture(autouse=True)
def _reset_log_context():
    clear_context()
    yield
    clear_context()


@pytest.fixture
def candidate_batch():
    """Factory for scored candidate batches (see make_candidates)."""
    return make_candidates
