# tests/integration/conftest.py — v1
"""Shared fixtures for integration tests.

The API server runs in-process through httpx.ASGITransport, so the full
SDK -> HTTP -> store path is exercised without sockets or containers.
"""

from __future__ import annotations

import random

import httpx
import pytest_asyncio

from xraytrace.api.app import create_app
from xraytrace.capture.strategy import CaptureStrategy
from xraytrace.client.http_store import HttpStore
from xraytrace.sdk.xray import XRay
from xraytrace.store.memory_store import MemoryStore


@pytest_asyncio.fixture
async def backing_store():
    store = MemoryStore()
    yield store
    await store.close()


@pytest_asyncio.fixture
async def api_client(backing_store):
    """Raw HTTP client against the API app."""
    app = create_app(backing_store, close_store=False)
    async with httpx.AsyncClient(
        transport=httpx.ASGITransport(app=app), base_url="http://xray.test"
    ) as client:
        yield client


@pytest_asyncio.fixture
async def remote_xray(api_client):
    """Engine whose evidence travels over HTTP to the in-process API."""
    store = HttpStore(client=api_client)
    yield XRay(store, strategy=CaptureStrategy(rng=random.Random(7)))
    await store.close()
