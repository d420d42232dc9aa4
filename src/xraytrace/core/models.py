# src/xraytrace/core/models.py — v1
"""Evidence domain models: Run, Step, Candidate, Filter and their write payloads.

Records are transient copies of what the persistence service owns. Invariants
that can be checked on a single record are enforced by model validators.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, Field, model_validator

RunStatus = Literal["running", "completed", "failed"]
StepStatus = Literal["running", "completed", "failed"]
CandidateStatus = Literal["accepted", "rejected", "pending"]

REJECTED_REASON = "Filtered out"


class StepTypes:
    """Well-known step labels shared across pipelines.

    Convenience only: step_type is a free-form string and any label is valid.
    """

    KEYWORD_GENERATION = "keyword-generation"
    SEARCH = "search"
    FILTERING = "filtering"
    RANKING = "ranking"
    SELECTION = "selection"
    LLM_EVALUATION = "llm-evaluation"
    TRANSFORMATION = "transformation"
    CATEGORIZATION = "categorization"


# === RECORDS ===


class Run(BaseModel):
    """One pipeline execution."""

    id: str
    pipeline_id: str
    pipeline_version: str | None = None
    status: RunStatus = "running"
    started_at: datetime
    completed_at: datetime | None = None
    input: Any = None
    output: Any = None
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_completion(self) -> Run:
        if (self.status == "running") != (self.completed_at is None):
            raise ValueError("completed_at must be set iff status is not running")
        return self


class Step(BaseModel):
    """One decision point inside a run."""

    id: str
    run_id: str
    step_type: str
    step_index: int = Field(ge=0)
    status: StepStatus = "running"
    started_at: datetime
    completed_at: datetime | None = None
    input: Any = None
    output: Any = None
    reasoning: str | None = None
    config: dict[str, Any] | None = None
    input_count: int | None = Field(default=None, ge=0)
    output_count: int | None = Field(default=None, ge=0)
    duration_ms: int | None = Field(default=None, ge=0)
    error: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    capture_all_candidates: bool | None = None

    @model_validator(mode="after")
    def validate_counts(self) -> Step:
        if (
            self.input_count is not None
            and self.output_count is not None
            and self.output_count > self.input_count
        ):
            raise ValueError("output_count must be <= input_count")
        if self.completed_at is not None and self.completed_at < self.started_at:
            raise ValueError("completed_at must not precede started_at")
        return self


class Candidate(BaseModel):
    """Evidence that one item was evaluated at one step."""

    id: str
    step_id: str
    candidate_id: str
    status: CandidateStatus
    score: float | None = None
    reason: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)


class Filter(BaseModel):
    """A named constraint applied at a step, with its measured impact."""

    id: str
    step_id: str
    filter_type: str
    config: dict[str, Any] = Field(default_factory=dict)
    candidates_affected: int = Field(ge=0)
    candidates_rejected: int = Field(ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_impact(self) -> Filter:
        if self.candidates_rejected > self.candidates_affected:
            raise ValueError("candidates_rejected must be <= candidates_affected")
        return self


class StepDetail(Step):
    """Step with its nested evidence."""

    candidates: list[Candidate] = []
    filters: list[Filter] = []


class RunDetail(Run):
    """Run with its steps in execution order."""

    steps: list[StepDetail] = []


# === CALLER INPUT ===


class CandidateInput(BaseModel):
    """Raw evaluated item handed to the capture strategy."""

    candidate_id: str
    data: dict[str, Any] = Field(default_factory=dict)
    score: float | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


# === WRITE PAYLOADS ===


class RunCreate(BaseModel):
    """Fields a caller supplies when a run starts; the store assigns the rest."""

    pipeline_id: str
    pipeline_version: str | None = None
    input: Any = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class RunUpdate(BaseModel):
    status: RunStatus | None = None
    completed_at: datetime | None = None
    output: Any = None
    error: str | None = None


class StepCreate(BaseModel):
    run_id: str
    step_type: str
    step_index: int = Field(ge=0)
    input: Any = None
    config: dict[str, Any] | None = None
    reasoning: str | None = None
    capture_all_candidates: bool | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)


class StepUpdate(BaseModel):
    status: StepStatus | None = None
    completed_at: datetime | None = None
    duration_ms: int | None = Field(default=None, ge=0)
    output: Any = None
    error: str | None = None
    reasoning: str | None = None
    input_count: int | None = Field(default=None, ge=0)
    output_count: int | None = Field(default=None, ge=0)


class CandidateCreate(BaseModel):
    """Candidate payload for bulk creation; id is generated when absent."""

    id: str | None = None
    candidate_id: str
    status: CandidateStatus
    score: float | None = None
    reason: str | None = None
    data: dict[str, Any] = Field(default_factory=dict)
    metadata: dict[str, Any] = Field(default_factory=dict)


class CandidateBatch(BaseModel):
    candidates: list[CandidateCreate]


class FilterCreate(BaseModel):
    filter_type: str
    config: dict[str, Any] = Field(default_factory=dict)
    candidates_affected: int = Field(ge=0)
    candidates_rejected: int = Field(ge=0)
    metadata: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="after")
    def validate_impact(self) -> FilterCreate:
        if self.candidates_rejected > self.candidates_affected:
            raise ValueError("candidates_rejected must be <= candidates_affected")
        return self
