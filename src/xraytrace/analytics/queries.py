# src/xraytrace/analytics/queries.py — v1
"""Cross-pipeline step queries: elimination ratio and lookup by step type.

Both queries read Step attributes only. input_count/output_count are
denormalized onto Step because hybrid capture persists a sample of the
candidates, so counting Candidate rows would misstate the ratio.

step_type is a free-form label. Comparing steps across pipelines works by
convention (see core.models.StepTypes), not by a closed vocabulary.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from xraytrace.core.models import Step, StepTypes

DEFAULT_ELIMINATION_THRESHOLD = 0.9
ELIMINATION_STEP_TYPE = StepTypes.FILTERING


def elimination_ratio(step: Step) -> float | None:
    """output_count / input_count, or None when it cannot be computed."""
    if step.input_count is None or step.output_count is None or step.input_count <= 0:
        return None
    return step.output_count / step.input_count


def is_high_elimination(
    step: Step,
    threshold: float = DEFAULT_ELIMINATION_THRESHOLD,
    step_type: str = ELIMINATION_STEP_TYPE,
) -> bool:
    """True when a step of the given type kept less than `threshold` of its input."""
    if step.step_type != step_type:
        return False
    ratio = elimination_ratio(step)
    return ratio is not None and ratio < threshold


def most_recent_first(steps: Iterable[Step]) -> list[Step]:
    """Order by started_at descending.

    The sort is stable: pass steps newest-inserted first to break timestamp ties.
    """
    return sorted(steps, key=lambda s: s.started_at, reverse=True)


def paginate(items: list, limit: int | None = None, offset: int = 0) -> list:
    """Slice a result list the way the SQL backends apply LIMIT/OFFSET."""
    end = None if limit is None else offset + limit
    return items[offset:end]


def rank_by_score(items: Iterable[Any]) -> list[Any]:
    """Score descending; items without a score rank below every scored item."""
    return sorted(
        items,
        key=lambda c: (c.score is not None, c.score if c.score is not None else 0.0),
        reverse=True,
    )
