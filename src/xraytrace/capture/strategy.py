# src/xraytrace/capture/strategy.py — v1
"""Adaptive candidate capture: decide which evaluated items become evidence.

Small batches (or steps flagged capture_all_candidates) are persisted in full.
Large batches switch to hybrid mode: the top-scoring accepted items plus a
uniform random sample of rejected ones. Hybrid output size is bounded by
top_accepted_count + sample_rejected_count whatever the batch size, so the
items left out are not persisted anywhere.
"""

from __future__ import annotations

import logging
import random
import uuid
from collections.abc import Collection, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

from xraytrace.analytics.queries import rank_by_score
from xraytrace.config.settings import ConfigurationError
from xraytrace.core.models import REJECTED_REASON, Candidate, CandidateInput

if TYPE_CHECKING:
    from xraytrace.config.settings import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CaptureThresholds:
    """Volume limits for candidate capture."""

    full_capture_threshold: int = 100
    top_accepted_count: int = 50
    sample_rejected_count: int = 20


class CaptureStrategy:
    """Reduce a raw evaluated set to the Candidate records worth persisting.

    Args:
        thresholds: Volume limits. Defaults to 100 / 50 / 20.
        rng: Random source for rejected sampling. Pass a seeded
            ``random.Random`` for reproducible samples.

    Raises:
        ConfigurationError: If any threshold is negative.
    """

    def __init__(
        self,
        thresholds: CaptureThresholds | None = None,
        rng: random.Random | None = None,
    ) -> None:
        self._thresholds = thresholds or CaptureThresholds()
        negative = [
            name
            for name, value in vars(self._thresholds).items()
            if value < 0
        ]
        if negative:
            raise ConfigurationError(
                f"Capture thresholds must be >= 0: {', '.join(sorted(negative))}"
            )
        self._rng = rng or random.Random()  # noqa: S311

    @classmethod
    def from_settings(cls, settings: Settings) -> CaptureStrategy:
        """Build a strategy from application settings."""
        thresholds = CaptureThresholds(
            full_capture_threshold=settings.full_capture_threshold,
            top_accepted_count=settings.top_accepted_count,
            sample_rejected_count=settings.sample_rejected_count,
        )
        return cls(thresholds, rng=random.Random(settings.capture_random_seed))  # noqa: S311

    @property
    def thresholds(self) -> CaptureThresholds:
        return self._thresholds

    def should_capture_all(self, total: int, capture_all: bool | None = None) -> bool:
        """An explicit per-step override wins over the size heuristic."""
        if capture_all is not None:
            return capture_all
        return total < self._thresholds.full_capture_threshold

    def reduce(
        self,
        candidates: Sequence[CandidateInput],
        accepted_ids: Collection[str],
        step_id: str,
        capture_all: bool | None = None,
    ) -> list[Candidate]:
        """Select the candidates to persist for one step.

        Args:
            candidates: Every item evaluated at the step.
            accepted_ids: Keys of the items the step kept.
            step_id: Owning step identifier stamped on each record.
            capture_all: Per-step override; None defers to the size threshold.

        Returns:
            Candidate records with fresh ids. In full mode, one per input in
            input order. In hybrid mode, top accepted (score descending) then
            sampled rejected.
        """
        accepted_set = set(accepted_ids)
        accepted: list[CandidateInput] = []
        rejected: list[CandidateInput] = []
        for item in candidates:
            (accepted if item.candidate_id in accepted_set else rejected).append(item)

        if self.should_capture_all(len(candidates), capture_all):
            return [
                _accepted(item, step_id) if item.candidate_id in accepted_set
                else _rejected(item, step_id)
                for item in candidates
            ]

        top = self.top_accepted(accepted)
        sample = self.sample_rejected(rejected)
        logger.debug(
            "Hybrid capture for step %s: %d/%d accepted, %d/%d rejected kept",
            step_id, len(top), len(accepted), len(sample), len(rejected),
        )
        return [_accepted(item, step_id) for item in top] + [
            _rejected(item, step_id) for item in sample
        ]

    def top_accepted(self, accepted: Sequence[CandidateInput]) -> list[CandidateInput]:
        """Highest-scoring accepted items; unscored items rank below any score."""
        return rank_by_score(accepted)[: self._thresholds.top_accepted_count]

    def sample_rejected(self, rejected: Sequence[CandidateInput]) -> list[CandidateInput]:
        """Uniform sample of rejected items (Fisher-Yates shuffle, then take k)."""
        pool = list(rejected)
        self._rng.shuffle(pool)
        return pool[: min(self._thresholds.sample_rejected_count, len(pool))]


def _accepted(item: CandidateInput, step_id: str) -> Candidate:
    return Candidate(
        id=str(uuid.uuid4()),
        step_id=step_id,
        candidate_id=item.candidate_id,
        status="accepted",
        score=item.score,
        data=item.data,
        metadata=item.metadata,
    )


def _rejected(item: CandidateInput, step_id: str) -> Candidate:
    return Candidate(
        id=str(uuid.uuid4()),
        step_id=step_id,
        candidate_id=item.candidate_id,
        status="rejected",
        reason=REJECTED_REASON,
        data=item.data,
        metadata=item.metadata,
    )
