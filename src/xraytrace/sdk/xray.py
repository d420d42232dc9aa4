# src/xraytrace/sdk/xray.py — v1
"""Run/step lifecycle engine for instrumenting multi-step pipelines.

Usage:
    xray = XRay(store)
    run = await xray.begin("competitor-selection", input=product)
    step = await xray.open_step(StepTypes.FILTERING, config=filters)
    await xray.record_candidates(step.id, candidates, accepted_ids)
    await xray.close_step(step.id, output={"kept": len(accepted_ids)})
    await xray.end(output=selection)

One engine tracks at most one open run. Concurrent pipeline executions each
need their own instance. State (active run, step counter, open steps) is only
mutated between awaits, and every store failure propagates to the caller
unchanged: nothing is buffered or retried here.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Collection, Sequence
from datetime import datetime, timezone
from typing import Any

from xraytrace.capture.strategy import CaptureStrategy
from xraytrace.config.settings import Settings
from xraytrace.core.models import (
    Candidate,
    CandidateCreate,
    CandidateInput,
    Filter,
    FilterCreate,
    Run,
    RunCreate,
    RunUpdate,
    Step,
    StepCreate,
    StepUpdate,
)
from xraytrace.logging.context import (
    clear_context,
    get_context,
    set_run_context,
    set_step_context,
)
from xraytrace.sdk.errors import NoActiveRunError, RunAlreadyActiveError, UnknownStepError
from xraytrace.store.base_store import BaseStore

logger = logging.getLogger(__name__)

ABANDONED_STEP_REASONING = "abandoned-at-run-end: run ended while step was open"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class XRay:
    """Lifecycle engine: one open run, its open steps and their evidence.

    Args:
        store: Persistence collaborator (local store or HttpStore).
        strategy: Candidate capture policy. Defaults to CaptureStrategy().
        clock: Returns the current UTC time; injectable for tests.
    """

    def __init__(
        self,
        store: BaseStore,
        strategy: CaptureStrategy | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._strategy = strategy or CaptureStrategy()
        self._clock = clock or _utcnow
        self._run: Run | None = None
        self._step_index = 0
        self._open_steps: dict[str, Step] = {}

    @property
    def store(self) -> BaseStore:
        return self._store

    @property
    def open_step_ids(self) -> list[str]:
        """Ids of steps opened on this engine and not yet closed."""
        return list(self._open_steps)

    def active_run(self) -> Run | None:
        """Local copy of the open run, or None."""
        return self._run

    # --- Run lifecycle ---

    async def begin(
        self,
        pipeline_id: str,
        input: Any = None,
        pipeline_version: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Run:
        """Start a run and reset step tracking.

        Raises:
            RunAlreadyActiveError: If this engine already has an open run.
        """
        if self._run is not None:
            raise RunAlreadyActiveError(self._run.id)

        run = await self._store.create_run(
            RunCreate(
                pipeline_id=pipeline_id,
                pipeline_version=pipeline_version,
                input=input,
                metadata=metadata or {},
            )
        )
        self._run = run
        self._step_index = 0
        self._open_steps.clear()

        set_run_context(pipeline_id, run.id)
        logger.info("Run started: pipeline=%s, run_id=%s", pipeline_id, run.id)
        return run

    async def end(self, output: Any = None, error: str | None = None) -> None:
        """Finish the run, force-closing any step still open.

        Abandoned steps are closed as completed with ABANDONED_STEP_REASONING
        so they never stay 'running'. The run fails iff `error` is non-empty.

        Local state is cleared only once the store accepts the run update. If
        that update cannot succeed (the run was finished or deleted elsewhere),
        call abandon() before reusing the engine.

        Raises:
            NoActiveRunError: If no run is open.
        """
        if self._run is None:
            raise NoActiveRunError("end")

        for step_id in list(self._open_steps):
            logger.warning(
                "Step %s (%s) still open at run end; closing it",
                step_id, self._open_steps[step_id].step_type,
            )
            await self._finish_step(step_id, reasoning=ABANDONED_STEP_REASONING)

        status = "failed" if error else "completed"
        run = await self._store.update_run(
            self._run.id,
            RunUpdate(
                status=status, completed_at=self._clock(), output=output, error=error or None
            ),
        )
        logger.info("Run %s: run_id=%s", status, run.id)
        self._reset()

    def abandon(self) -> None:
        """Drop local tracking of the open run without writing to the store.

        Steps still open stay as they are server-side. No-op without a run.
        """
        if self._run is None:
            return
        logger.warning(
            "Abandoning run %s locally with %d open step(s)",
            self._run.id, len(self._open_steps),
        )
        self._reset()

    def _reset(self) -> None:
        self._run = None
        self._step_index = 0
        self._open_steps.clear()
        clear_context()

    # --- Step lifecycle ---

    async def open_step(
        self,
        step_type: str,
        input: Any = None,
        config: dict[str, Any] | None = None,
        reasoning: str | None = None,
        capture_all_candidates: bool | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Step:
        """Open the next step of the active run (indices 0, 1, 2, ... in call order).

        Raises:
            NoActiveRunError: If no run is open.
        """
        if self._run is None:
            raise NoActiveRunError("open_step")

        index = self._step_index
        self._step_index += 1
        try:
            step = await self._store.create_step(
                StepCreate(
                    run_id=self._run.id,
                    step_type=step_type,
                    step_index=index,
                    input=input,
                    config=config,
                    reasoning=reasoning,
                    capture_all_candidates=capture_all_candidates,
                    metadata=metadata or {},
                )
            )
        except Exception:
            # Hand the index back unless a later step already took the next one.
            if self._step_index == index + 1:
                self._step_index = index
            raise

        self._open_steps[step.id] = step
        set_step_context(step_type, step.id)
        logger.debug("Step opened: type=%s, index=%d, step_id=%s", step_type, index, step.id)
        return step

    async def close_step(
        self,
        step_id: str,
        output: Any = None,
        error: str | None = None,
        reasoning: str | None = None,
    ) -> None:
        """Close an open step. It fails iff `error` is non-empty.

        Raises:
            UnknownStepError: If the step is not open on this engine
                (never opened here, or already closed).
        """
        if step_id not in self._open_steps:
            raise UnknownStepError(step_id)
        await self._finish_step(step_id, output=output, error=error, reasoning=reasoning)

    async def _finish_step(
        self,
        step_id: str,
        output: Any = None,
        error: str | None = None,
        reasoning: str | None = None,
    ) -> Step:
        step = self._open_steps[step_id]
        completed_at = max(self._clock(), step.started_at)
        duration_ms = int((completed_at - step.started_at).total_seconds() * 1000)

        fields: dict[str, Any] = {
            "status": "failed" if error else "completed",
            "completed_at": completed_at,
            "duration_ms": duration_ms,
        }
        if output is not None:
            fields["output"] = output
        if error:
            fields["error"] = error
        if reasoning:
            fields["reasoning"] = reasoning
        if step.input_count is not None:
            fields["input_count"] = step.input_count
            fields["output_count"] = step.output_count

        updated = await self._store.update_step(step_id, StepUpdate(**fields))
        del self._open_steps[step_id]
        if get_context().step_id == step_id:
            set_step_context(None)
        logger.debug(
            "Step %s: step_id=%s, duration_ms=%d", updated.status, step_id, duration_ms
        )
        return updated

    # --- Evidence ---

    async def record_candidates(
        self,
        step_id: str,
        candidates: Sequence[CandidateInput],
        accepted_ids: Collection[str] = (),
    ) -> list[Candidate]:
        """Persist the evidence the capture strategy selects for an open step.

        Also records input_count (items evaluated) and output_count (items
        accepted) on the step; they are persisted when the step closes.

        Raises:
            UnknownStepError: If the step is not open on this engine.
        """
        step = self._open_steps.get(step_id)
        if step is None:
            raise UnknownStepError(step_id)

        accepted_set = set(accepted_ids)
        output_count = sum(1 for c in candidates if c.candidate_id in accepted_set)
        self._open_steps[step_id] = step.model_copy(
            update={"input_count": len(candidates), "output_count": output_count}
        )

        selected = self._strategy.reduce(
            candidates, accepted_set, step_id, capture_all=step.capture_all_candidates
        )
        if not selected:
            return []

        payload = [CandidateCreate(**c.model_dump(exclude={"step_id"})) for c in selected]
        created = await self._store.create_candidates_bulk(step_id, payload)
        logger.debug(
            "Recorded %d of %d candidates for step %s",
            len(created), len(candidates), step_id,
        )
        return created

    async def record_filter(
        self,
        step_id: str,
        filter_type: str,
        candidates_affected: int,
        candidates_rejected: int,
        config: dict[str, Any] | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Filter:
        """Record a constraint applied at an open step and its impact.

        Raises:
            UnknownStepError: If the step is not open on this engine.
            pydantic.ValidationError: If candidates_rejected > candidates_affected.
        """
        if step_id not in self._open_steps:
            raise UnknownStepError(step_id)
        data = FilterCreate(
            filter_type=filter_type,
            config=config or {},
            candidates_affected=candidates_affected,
            candidates_rejected=candidates_rejected,
            metadata=metadata or {},
        )
        return await self._store.create_filter(step_id, data)


def create_xray(settings: Settings | None = None, store: BaseStore | None = None) -> XRay:
    """Build an engine from settings (store backend and capture thresholds)."""
    from xraytrace.store.store_factory import create_store

    settings = settings or Settings()
    return XRay(
        store=store or create_store(settings),
        strategy=CaptureStrategy.from_settings(settings),
    )
