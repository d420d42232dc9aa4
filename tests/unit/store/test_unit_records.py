# tests/unit/store/test_unit_records.py — v1
"""Tests for store/records.py: record construction and update rules."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from xraytrace.core.models import (
    CandidateCreate,
    FilterCreate,
    RunCreate,
    RunUpdate,
    StepCreate,
    StepUpdate,
)
from xraytrace.store import records
from xraytrace.store.errors import InvalidTransitionError


class TestBuild:
    def test_build_run(self):
        run = records.build_run(RunCreate(pipeline_id="p", input={"q": 1}))
        assert run.status == "running"
        assert run.started_at.tzinfo is not None
        assert run.input == {"q": 1}
        assert len(run.id) == 36

    def test_build_step_keeps_capture_flag_unset(self):
        step = records.build_step(StepCreate(run_id="r", step_type="search", step_index=2))
        assert step.capture_all_candidates is None
        assert step.step_index == 2

    def test_build_candidate_uses_supplied_id(self):
        c = records.build_candidate("s", CandidateCreate(id="fixed", candidate_id="x", status="accepted"))
        assert c.id == "fixed"
        assert c.step_id == "s"

    def test_build_candidate_generates_id(self):
        c = records.build_candidate("s", CandidateCreate(candidate_id="x", status="pending"))
        assert c.id

    def test_build_filter(self):
        f = records.build_filter("s", FilterCreate(filter_type="t", candidates_affected=2, candidates_rejected=1))
        assert f.step_id == "s"


class TestRunUpdate:
    def test_terminal_status_sets_completed_at(self):
        run = records.build_run(RunCreate(pipeline_id="p"))
        updated = records.apply_run_update(run, RunUpdate(status="completed"))
        assert updated.completed_at is not None

    def test_unset_fields_untouched(self):
        run = records.build_run(RunCreate(pipeline_id="p", input="in"))
        updated = records.apply_run_update(run, RunUpdate(output="out"))
        assert updated.input == "in"
        assert updated.output == "out"
        assert updated.status == "running"

    def test_naive_timestamp_treated_as_utc(self):
        run = records.build_run(RunCreate(pipeline_id="p"))
        naive = (run.started_at + timedelta(seconds=1)).replace(tzinfo=None)
        updated = records.apply_run_update(run, RunUpdate(status="failed", completed_at=naive, error="x"))
        assert updated.completed_at.tzinfo == timezone.utc

    def test_second_terminal_transition_rejected(self):
        run = records.build_run(RunCreate(pipeline_id="p"))
        done = records.apply_run_update(run, RunUpdate(status="completed"))
        with pytest.raises(InvalidTransitionError):
            records.apply_run_update(done, RunUpdate(status="failed"))

    def test_non_status_update_after_completion_allowed(self):
        run = records.build_run(RunCreate(pipeline_id="p"))
        done = records.apply_run_update(run, RunUpdate(status="completed"))
        assert records.apply_run_update(done, RunUpdate(output=1)).output == 1


class TestStepUpdate:
    def test_duration_derived(self):
        step = records.build_step(StepCreate(run_id="r", step_type="t", step_index=0))
        completed = step.started_at + timedelta(milliseconds=1500)
        updated = records.apply_step_update(step, StepUpdate(status="completed", completed_at=completed))
        assert updated.duration_ms == 1500

    def test_explicit_duration_kept(self):
        step = records.build_step(StepCreate(run_id="r", step_type="t", step_index=0))
        updated = records.apply_step_update(
            step, StepUpdate(status="completed", completed_at=step.started_at, duration_ms=7)
        )
        assert updated.duration_ms == 7

    def test_completed_at_never_before_started(self):
        step = records.build_step(StepCreate(run_id="r", step_type="t", step_index=0))
        updated = records.apply_step_update(step, StepUpdate(status="failed", error="e"))
        assert updated.completed_at >= step.started_at
        assert updated.duration_ms >= 0

    def test_counts_persisted(self):
        step = records.build_step(StepCreate(run_id="r", step_type="t", step_index=0))
        updated = records.apply_step_update(
            step, StepUpdate(status="completed", input_count=10, output_count=3)
        )
        assert (updated.input_count, updated.output_count) == (10, 3)

    def test_invalid_counts_rejected(self):
        step = records.build_step(StepCreate(run_id="r", step_type="t", step_index=0))
        with pytest.raises(ValueError):
            records.apply_step_update(step, StepUpdate(input_count=1, output_count=2))

    def test_completed_before_start_rejected(self):
        step = records.build_step(StepCreate(run_id="r", step_type="t", step_index=0))
        early = datetime(2000, 1, 1, tzinfo=timezone.utc)
        with pytest.raises(ValueError):
            records.apply_step_update(step, StepUpdate(status="completed", completed_at=early))
