# tests/integration/test_int_hybrid_capture.py — v1
"""Integration: large batches over HTTP keep bounded evidence and exact counts."""

from __future__ import annotations

import httpx
import pytest

from xraytrace.api.app import create_app
from xraytrace.client.errors import TransportError
from xraytrace.client.http_store import HttpStore
from xraytrace.client.retry import RetryConfig
from xraytrace.core.models import CandidateInput, RunCreate
from xraytrace.sdk.xray import XRay


class LostResponseTransport(httpx.AsyncBaseTransport):
    """Delivers requests to the app but drops the first response for one method and path."""

    def __init__(self, app, method: str, path: str) -> None:
        self._inner = httpx.ASGITransport(app=app)
        self._target = (method, path)
        self.deliveries: list[tuple[str, str]] = []

    async def handle_async_request(self, request: httpx.Request) -> httpx.Response:
        key = (request.method, request.url.path)
        self.deliveries.append(key)
        response = await self._inner.handle_async_request(request)
        if key == self._target and self.deliveries.count(key) == 1:
            await response.aread()
            raise httpx.ReadTimeout("response lost", request=request)
        return response


def _batch(count: int) -> list[CandidateInput]:
    return [
        CandidateInput(candidate_id=f"doc-{i}", data={"rank": i}, score=i / count)
        for i in range(count)
    ]


class TestHybridOverHttp:
    @pytest.mark.asyncio
    async def test_1500_candidates_keep_70(self, remote_xray, backing_store):
        await remote_xray.begin("retrieval")
        step = await remote_xray.open_step("filtering")
        accepted = {f"doc-{i}" for i in range(300, 1500)}

        created = await remote_xray.record_candidates(step.id, _batch(1500), accepted)
        await remote_xray.close_step(step.id)
        await remote_xray.end()

        assert len(created) == 70
        stored = await backing_store.get_step(step.id)
        kept_accepted = [c for c in stored.candidates if c.status == "accepted"]
        kept_rejected = [c for c in stored.candidates if c.status == "rejected"]
        assert len(kept_accepted) == 50
        assert len(kept_rejected) == 20
        assert {c.candidate_id for c in kept_accepted} == {f"doc-{i}" for i in range(1450, 1500)}
        assert all(c.candidate_id not in accepted for c in kept_rejected)
        assert (stored.input_count, stored.output_count) == (1500, 1200)

    @pytest.mark.asyncio
    async def test_forced_full_capture(self, remote_xray, backing_store):
        await remote_xray.begin("retrieval")
        step = await remote_xray.open_step("llm-evaluation", capture_all_candidates=True)
        await remote_xray.record_candidates(step.id, _batch(400), {"doc-1"})
        await remote_xray.end()

        assert len(await backing_store.list_candidates(step.id)) == 400
        detail = await backing_store.get_run(step.run_id)
        assert len(detail.steps[0].candidates) == 100
        assert detail.steps[0].reasoning.startswith("abandoned-at-run-end")


class TestTransportFailures:
    @pytest.mark.asyncio
    async def test_unreachable_api_fails_fast(self):
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(refuse), base_url="http://xray.test")
        xray = XRay(HttpStore(client=client))
        with pytest.raises(TransportError):
            await xray.begin("p")
        assert xray.active_run() is None
        await client.aclose()

    @pytest.mark.asyncio
    async def test_server_side_conflict_surfaces(self, remote_xray, api_client):
        run = await remote_xray.begin("p")
        await api_client.patch(f"/api/runs/{run.id}", json={"status": "failed", "error": "killed"})
        with pytest.raises(TransportError) as exc_info:
            await remote_xray.end()
        assert exc_info.value.status_code == 409
        assert remote_xray.active_run() is not None


class TestRetrySafety:
    @pytest.mark.asyncio
    async def test_committed_step_create_not_resent(self, backing_store):
        transport = LostResponseTransport(
            create_app(backing_store, close_store=False), "POST", "/api/steps"
        )
        client = httpx.AsyncClient(transport=transport, base_url="http://xray.test")
        xray = XRay(HttpStore(client=client, retry=RetryConfig(max_attempts=3, base_delay_s=0.0)))

        run = await xray.begin("p")
        with pytest.raises(TransportError, match="timed out"):
            await xray.open_step("search")
        await client.aclose()

        assert transport.deliveries.count(("POST", "/api/steps")) == 1
        detail = await backing_store.get_run(run.id)
        assert [s.step_index for s in detail.steps] == [0]

    @pytest.mark.asyncio
    async def test_reads_still_retried(self, backing_store):
        transport = LostResponseTransport(
            create_app(backing_store, close_store=False), "GET", "/api/runs"
        )
        client = httpx.AsyncClient(transport=transport, base_url="http://xray.test")
        store = HttpStore(client=client, retry=RetryConfig(max_attempts=3, base_delay_s=0.0))

        await backing_store.create_run(RunCreate(pipeline_id="p"))
        runs = await store.list_runs()
        await client.aclose()

        assert [r.pipeline_id for r in runs] == ["p"]
        assert transport.deliveries.count(("GET", "/api/runs")) == 2
