# src/xraytrace/store/base_store.py — v1
"""Abstract persistence service interface.

Implemented in-process (memory, sqlite) and over HTTP (client.http_store).
Ids, started_at and the initial 'running' status are assigned by the store.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from xraytrace.analytics.queries import DEFAULT_ELIMINATION_THRESHOLD, ELIMINATION_STEP_TYPE
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


class BaseStore(ABC):
    """Unified interface for evidence storage backends."""

    # --- Runs ---

    @abstractmethod
    async def create_run(self, data: RunCreate) -> Run:
        """Create a run in status 'running'."""

    @abstractmethod
    async def update_run(self, run_id: str, update: RunUpdate) -> Run:
        """Apply the fields set on `update`. Raises RecordNotFoundError."""

    @abstractmethod
    async def get_run(self, run_id: str) -> RunDetail | None:
        """Run with its steps (by step_index) and their candidates/filters."""

    @abstractmethod
    async def list_runs(
        self,
        pipeline_id: str | None = None,
        status: RunStatus | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Run]:
        """Runs, most recent first."""

    # --- Steps ---

    @abstractmethod
    async def create_step(self, data: StepCreate) -> Step:
        """Create a step under an existing run. Raises RecordNotFoundError."""

    @abstractmethod
    async def update_step(self, step_id: str, update: StepUpdate) -> Step:
        """Apply the fields set on `update`. Raises RecordNotFoundError."""

    @abstractmethod
    async def get_step(self, step_id: str) -> StepDetail | None:
        """Step with all of its candidates and filters."""

    # --- Evidence ---

    @abstractmethod
    async def create_candidates_bulk(
        self, step_id: str, candidates: list[CandidateCreate]
    ) -> list[Candidate]:
        """Insert a batch of candidates for one step in a single write."""

    @abstractmethod
    async def list_candidates(
        self,
        step_id: str,
        status: CandidateStatus | None = None,
        limit: int | None = None,
    ) -> list[Candidate]:
        """Candidates by score descending, unscored last."""

    @abstractmethod
    async def create_filter(self, step_id: str, data: FilterCreate) -> Filter:
        """Record one filter application."""

    # --- Analytics ---

    @abstractmethod
    async def query_high_elimination(
        self,
        threshold: float = DEFAULT_ELIMINATION_THRESHOLD,
        step_type: str = ELIMINATION_STEP_TYPE,
    ) -> list[Step]:
        """Steps with input_count > 0 and output_count/input_count < threshold."""

    @abstractmethod
    async def query_by_type(
        self,
        step_type: str,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Step]:
        """Steps with exactly this step_type across all runs, most recent first."""

    async def close(self) -> None:
        """Release backend resources."""
