# src/xraytrace/store/records.py — v1
"""Record construction and update rules shared by the in-process stores.

Runs and steps leave 'running' exactly once. Terminal updates without a
completion timestamp get one, and step durations are derived when missing.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any

from xraytrace.core.models import (
    Candidate,
    CandidateCreate,
    Filter,
    FilterCreate,
    Run,
    RunCreate,
    RunUpdate,
    Step,
    StepCreate,
    StepUpdate,
)
from xraytrace.store.errors import InvalidTransitionError


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_id() -> str:
    return str(uuid.uuid4())


def as_utc(value: datetime | None) -> datetime | None:
    """Treat naive timestamps as UTC so they compare with stored ones."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def build_run(data: RunCreate) -> Run:
    return Run(id=new_id(), started_at=utcnow(), status="running", **data.model_dump())


def build_step(data: StepCreate) -> Step:
    return Step(id=new_id(), started_at=utcnow(), status="running", **data.model_dump())


def build_candidate(step_id: str, data: CandidateCreate) -> Candidate:
    fields = data.model_dump(exclude={"id"})
    return Candidate(id=data.id or new_id(), step_id=step_id, **fields)


def build_filter(step_id: str, data: FilterCreate) -> Filter:
    return Filter(id=new_id(), step_id=step_id, **data.model_dump())


def _check_transition(kind: str, record_id: str, current: str, changes: dict[str, Any]) -> None:
    target = changes.get("status")
    if target is None or current == "running":
        return
    raise InvalidTransitionError(kind, record_id, current, target)


def apply_run_update(run: Run, update: RunUpdate) -> Run:
    """Return a new Run with the update applied. Raises InvalidTransitionError."""
    changes = update.model_dump(exclude_unset=True)
    _check_transition("Run", run.id, run.status, changes)
    if "completed_at" in changes:
        changes["completed_at"] = as_utc(changes["completed_at"])
    if changes.get("status") in ("completed", "failed") and not changes.get("completed_at"):
        changes["completed_at"] = utcnow()
    return Run.model_validate({**run.model_dump(), **changes})


def apply_step_update(step: Step, update: StepUpdate) -> Step:
    """Return a new Step with the update applied. Raises InvalidTransitionError."""
    changes = update.model_dump(exclude_unset=True)
    _check_transition("Step", step.id, step.status, changes)
    if "completed_at" in changes:
        changes["completed_at"] = as_utc(changes["completed_at"])
    if changes.get("status") in ("completed", "failed"):
        if not changes.get("completed_at"):
            changes["completed_at"] = max(utcnow(), step.started_at)
        if changes.get("duration_ms") is None:
            delta = changes["completed_at"] - step.started_at
            changes["duration_ms"] = max(0, int(delta.total_seconds() * 1000))
    return Step.model_validate({**step.model_dump(), **changes})
