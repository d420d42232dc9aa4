# src/xraytrace/store/memory_store.py — v1
"""In-memory evidence store (STORE_BACKEND=memory).

Holds everything in dicts for the lifetime of the process. Used for embedded
runs, the API server's default backend and tests.
"""

from __future__ import annotations

import logging

from xraytrace.analytics.queries import (
    DEFAULT_ELIMINATION_THRESHOLD,
    ELIMINATION_STEP_TYPE,
    is_high_elimination,
    most_recent_first,
    paginate,
    rank_by_score,
)
from xraytrace.core.models import (
    Candidate,
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
from xraytrace.store import records
from xraytrace.store.base_store import BaseStore
from xraytrace.store.errors import DuplicateRecordError, RecordNotFoundError

logger = logging.getLogger(__name__)


class MemoryStore(BaseStore):
    """Dict-backed store. Insertion order doubles as the recency tie-break."""

    def __init__(self, run_detail_candidate_limit: int = 100) -> None:
        self._runs: dict[str, Run] = {}
        self._steps: dict[str, Step] = {}
        self._candidates: dict[str, list[Candidate]] = {}
        self._filters: dict[str, list[Filter]] = {}
        self._run_detail_candidate_limit = run_detail_candidate_limit

    # --- Runs ---

    async def create_run(self, data: RunCreate) -> Run:
        run = records.build_run(data)
        self._runs[run.id] = run
        return run

    async def update_run(self, run_id: str, update: RunUpdate) -> Run:
        run = self._runs.get(run_id)
        if run is None:
            raise RecordNotFoundError("Run", run_id)
        updated = records.apply_run_update(run, update)
        self._runs[run_id] = updated
        return updated

    async def get_run(self, run_id: str) -> RunDetail | None:
        run = self._runs.get(run_id)
        if run is None:
            return None
        steps = sorted(
            (s for s in self._steps.values() if s.run_id == run_id),
            key=lambda s: s.step_index,
        )
        details = [
            self._detail(s, candidate_limit=self._run_detail_candidate_limit)
            for s in steps
        ]
        return RunDetail(**run.model_dump(), steps=details)

    async def list_runs(
        self,
        pipeline_id: str | None = None,
        status: RunStatus | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Run]:
        runs = [
            r for r in reversed(self._runs.values())
            if (pipeline_id is None or r.pipeline_id == pipeline_id)
            and (status is None or r.status == status)
        ]
        runs.sort(key=lambda r: r.started_at, reverse=True)
        return paginate(runs, limit, offset)

    async def delete_run(self, run_id: str) -> None:
        """Remove a run and, by cascade, its steps and their evidence."""
        self._runs.pop(run_id, None)
        for step_id in [s.id for s in self._steps.values() if s.run_id == run_id]:
            del self._steps[step_id]
            self._candidates.pop(step_id, None)
            self._filters.pop(step_id, None)
        logger.info("Deleted run %s", run_id)

    # --- Steps ---

    async def create_step(self, data: StepCreate) -> Step:
        if data.run_id not in self._runs:
            raise RecordNotFoundError("Run", data.run_id)
        if any(
            s.run_id == data.run_id and s.step_index == data.step_index
            for s in self._steps.values()
        ):
            raise DuplicateRecordError("Step", f"{data.run_id}#{data.step_index}")
        step = records.build_step(data)
        self._steps[step.id] = step
        return step

    async def update_step(self, step_id: str, update: StepUpdate) -> Step:
        step = self._steps.get(step_id)
        if step is None:
            raise RecordNotFoundError("Step", step_id)
        updated = records.apply_step_update(step, update)
        self._steps[step_id] = updated
        return updated

    async def get_step(self, step_id: str) -> StepDetail | None:
        step = self._steps.get(step_id)
        if step is None:
            return None
        return self._detail(step)

    # --- Evidence ---

    async def create_candidates_bulk(
        self, step_id: str, candidates: list[CandidateCreate]
    ) -> list[Candidate]:
        if step_id not in self._steps:
            raise RecordNotFoundError("Step", step_id)
        created = [records.build_candidate(step_id, c) for c in candidates]
        taken = {c.id for batch in self._candidates.values() for c in batch}
        for candidate in created:
            if candidate.id in taken:
                raise DuplicateRecordError("Candidate", candidate.id)
            taken.add(candidate.id)
        self._candidates.setdefault(step_id, []).extend(created)
        return created

    async def list_candidates(
        self,
        step_id: str,
        status: CandidateStatus | None = None,
        limit: int | None = None,
    ) -> list[Candidate]:
        found = [
            c for c in self._candidates.get(step_id, [])
            if status is None or c.status == status
        ]
        return paginate(rank_by_score(found), limit)

    async def create_filter(self, step_id: str, data: FilterCreate) -> Filter:
        if step_id not in self._steps:
            raise RecordNotFoundError("Step", step_id)
        created = records.build_filter(step_id, data)
        self._filters.setdefault(step_id, []).append(created)
        return created

    # --- Analytics ---

    async def query_high_elimination(
        self,
        threshold: float = DEFAULT_ELIMINATION_THRESHOLD,
        step_type: str = ELIMINATION_STEP_TYPE,
    ) -> list[Step]:
        newest_first = reversed(list(self._steps.values()))
        return most_recent_first(
            s for s in newest_first if is_high_elimination(s, threshold, step_type)
        )

    async def query_by_type(
        self,
        step_type: str,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Step]:
        newest_first = reversed(list(self._steps.values()))
        matches = most_recent_first(s for s in newest_first if s.step_type == step_type)
        return paginate(matches, limit, offset)

    def _detail(self, step: Step, candidate_limit: int | None = None) -> StepDetail:
        candidates = rank_by_score(self._candidates.get(step.id, []))
        return StepDetail(
            **step.model_dump(),
            candidates=paginate(candidates, candidate_limit),
            filters=list(self._filters.get(step.id, [])),
        )
