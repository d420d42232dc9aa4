# src/xraytrace/client/http_store.py — v1
"""HTTP transport client for the X-Ray API (STORE_BACKEND=http).

Implements BaseStore over httpx, so the lifecycle engine does not know
whether evidence goes to a local database or a remote service. Every network
failure, timeout and non-2xx response surfaces as TransportError.
"""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from xraytrace.analytics.queries import DEFAULT_ELIMINATION_THRESHOLD, ELIMINATION_STEP_TYPE
from xraytrace.client.errors import TransportError
from xraytrace.client.retry import RetryConfig, with_retry
from xraytrace.config.settings import Settings
from xraytrace.core.models import (
    Candidate,
    CandidateBatch,
    CandidateCreate,
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

logger = logging.getLogger(__name__)

# Writes are resent only when the server cannot have seen them.
_IDEMPOTENT_METHODS = frozenset({"GET"})


def _not_sent(error: TransportError) -> bool:
    return not error.request_sent


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    if isinstance(body, dict):
        return str(body.get("error") or body.get("detail") or body)
    return str(body)


class HttpStore(BaseStore):
    """BaseStore backed by the X-Ray HTTP API.

    Args:
        api_url: Base URL of the API service. A trailing slash is ignored.
        timeout_s: Per-request timeout in seconds.
        retry: Retry policy. None disables retries. GET requests are retried on
            any retryable failure; writes only when the connection could not
            be opened.
        client: Pre-built httpx client (tests inject one with an ASGI
            transport). The store closes only clients it created itself.
    """

    def __init__(
        self,
        api_url: str = "http://localhost:3000",
        timeout_s: float = 5.0,
        retry: RetryConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=api_url.rstrip("/"),
            timeout=timeout_s,
            headers={"Content-Type": "application/json"},
        )
        self._retry = retry

    @classmethod
    def from_settings(cls, settings: Settings) -> HttpStore:
        retry = None
        if settings.retry_on_failure:
            retry = RetryConfig(
                max_attempts=settings.retry_max_attempts,
                base_delay_s=settings.retry_base_delay_s,
            )
        return cls(api_url=settings.api_url, timeout_s=settings.api_timeout_s, retry=retry)

    # --- Runs ---

    async def create_run(self, data: RunCreate) -> Run:
        body = await self._request("POST", "/api/runs", json=data.model_dump(mode="json"))
        return Run.model_validate(body)

    async def update_run(self, run_id: str, update: RunUpdate) -> Run:
        body = await self._request(
            "PATCH", f"/api/runs/{run_id}",
            json=update.model_dump(mode="json", exclude_unset=True),
        )
        return Run.model_validate(body)

    async def get_run(self, run_id: str) -> RunDetail | None:
        body = await self._request("GET", f"/api/runs/{run_id}", allow_404=True)
        return None if body is None else RunDetail.model_validate(body)

    async def list_runs(
        self,
        pipeline_id: str | None = None,
        status: RunStatus | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Run]:
        params = {"pipeline_id": pipeline_id, "status": status, "limit": limit, "offset": offset}
        body = await self._request("GET", "/api/runs", params=params)
        return [Run.model_validate(r) for r in body]

    # --- Steps ---

    async def create_step(self, data: StepCreate) -> Step:
        body = await self._request("POST", "/api/steps", json=data.model_dump(mode="json"))
        return Step.model_validate(body)

    async def update_step(self, step_id: str, update: StepUpdate) -> Step:
        body = await self._request(
            "PATCH", f"/api/steps/{step_id}",
            json=update.model_dump(mode="json", exclude_unset=True),
        )
        return Step.model_validate(body)

    async def get_step(self, step_id: str) -> StepDetail | None:
        body = await self._request("GET", f"/api/steps/{step_id}", allow_404=True)
        return None if body is None else StepDetail.model_validate(body)

    # --- Evidence ---

    async def create_candidates_bulk(
        self, step_id: str, candidates: list[CandidateCreate]
    ) -> list[Candidate]:
        payload = CandidateBatch(candidates=candidates).model_dump(mode="json")
        body = await self._request("POST", f"/api/steps/{step_id}/candidates", json=payload)
        return [Candidate.model_validate(c) for c in body]

    async def list_candidates(
        self,
        step_id: str,
        status: CandidateStatus | None = None,
        limit: int | None = None,
    ) -> list[Candidate]:
        body = await self._request(
            "GET", f"/api/steps/{step_id}/candidates",
            params={"status": status, "limit": limit},
        )
        return [Candidate.model_validate(c) for c in body]

    async def create_filter(self, step_id: str, data: FilterCreate) -> Filter:
        body = await self._request(
            "POST", f"/api/steps/{step_id}/filters", json=data.model_dump(mode="json")
        )
        return Filter.model_validate(body)

    # --- Analytics ---

    async def query_high_elimination(
        self,
        threshold: float = DEFAULT_ELIMINATION_THRESHOLD,
        step_type: str = ELIMINATION_STEP_TYPE,
    ) -> list[Step]:
        body = await self._request(
            "GET", "/api/steps/query/high-elimination",
            params={"threshold": threshold, "step_type": step_type},
        )
        return [Step.model_validate(s) for s in body]

    async def query_by_type(
        self,
        step_type: str,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Step]:
        body = await self._request(
            "GET", f"/api/steps/query/by-type/{quote(step_type, safe='')}",
            params={"limit": limit, "offset": offset},
        )
        return [Step.model_validate(s) for s in body]

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    # --- Transport ---

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
        allow_404: bool = False,
    ) -> Any:
        if params is not None:
            params = {k: v for k, v in params.items() if v is not None}

        async def send() -> Any:
            try:
                response = await self._client.request(method, path, json=json, params=params)
            except (httpx.ConnectError, httpx.ConnectTimeout) as e:
                raise TransportError(
                    method, path, f"connection failed: {e}", request_sent=False
                ) from e
            except httpx.TimeoutException as e:
                raise TransportError(method, path, f"timed out: {e}") from e
            except httpx.HTTPError as e:
                raise TransportError(method, path, str(e) or type(e).__name__) from e

            if allow_404 and response.status_code == 404:
                return None
            if response.is_error:
                raise TransportError(
                    method, path, _error_detail(response), status_code=response.status_code
                )
            return response.json()

        if self._retry is None:
            return await send()
        return await with_retry(
            send,
            config=self._retry,
            operation=f"{method} {path}",
            retry_if=None if method in _IDEMPOTENT_METHODS else _not_sent,
        )
