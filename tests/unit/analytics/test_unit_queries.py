# tests/unit/analytics/test_unit_queries.py — v1
"""Tests for analytics/queries.py: elimination ratio, ordering, pagination."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

from xraytrace.analytics.queries import (
    elimination_ratio,
    is_high_elimination,
    most_recent_first,
    paginate,
    rank_by_score,
)
from xraytrace.core.models import Candidate, Step

T0 = datetime(2026, 3, 1, tzinfo=timezone.utc)


def _step(step_id: str = "s1", step_type: str = "filtering", input_count=None, output_count=None, offset_s: int = 0) -> Step:
    return Step(
        id=step_id, run_id="r1", step_type=step_type, step_index=0,
        started_at=T0 + timedelta(seconds=offset_s),
        input_count=input_count, output_count=output_count,
    )


class TestEliminationRatio:
    def test_ratio(self):
        assert elimination_ratio(_step(input_count=100, output_count=5)) == 0.05

    def test_missing_counts(self):
        assert elimination_ratio(_step()) is None
        assert elimination_ratio(_step(input_count=10)) is None

    def test_zero_input_excluded(self):
        assert elimination_ratio(_step(input_count=0, output_count=0)) is None


class TestIsHighElimination:
    def test_below_threshold(self):
        assert is_high_elimination(_step(input_count=100, output_count=5), 0.9) is True

    def test_above_threshold(self):
        assert is_high_elimination(_step(input_count=100, output_count=5), 0.01) is False

    def test_ratio_equal_to_threshold_not_matched(self):
        assert is_high_elimination(_step(input_count=10, output_count=9), 0.9) is False

    def test_other_step_type_ignored(self):
        step = _step(step_type="ranking", input_count=100, output_count=1)
        assert is_high_elimination(step) is False
        assert is_high_elimination(step, step_type="ranking") is True

    def test_missing_counts_never_match(self):
        assert is_high_elimination(_step(), 1.0) is False


class TestOrdering:
    def test_most_recent_first(self):
        steps = [_step("old", offset_s=0), _step("new", offset_s=10), _step("mid", offset_s=5)]
        assert [s.id for s in most_recent_first(steps)] == ["new", "mid", "old"]

    def test_ties_keep_given_order(self):
        steps = [_step("b"), _step("a")]
        assert [s.id for s in most_recent_first(steps)] == ["b", "a"]

    def test_rank_by_score_unscored_last(self):
        items = [
            Candidate(id="1", step_id="s", candidate_id="none", status="accepted"),
            Candidate(id="2", step_id="s", candidate_id="lo", status="accepted", score=-1.0),
            Candidate(id="3", step_id="s", candidate_id="hi", status="accepted", score=3.0),
        ]
        assert [c.candidate_id for c in rank_by_score(items)] == ["hi", "lo", "none"]


class TestPaginate:
    def test_no_limit(self):
        assert paginate([1, 2, 3]) == [1, 2, 3]

    def test_limit_and_offset(self):
        assert paginate([1, 2, 3, 4, 5], limit=2, offset=1) == [2, 3]

    def test_offset_past_end(self):
        assert paginate([1, 2], limit=5, offset=10) == []
