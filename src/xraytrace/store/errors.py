# src/xraytrace/store/errors.py — v1
"""Errors raised by persistence backends."""

from __future__ import annotations

from xraytrace.core.errors import XRayError


class RecordNotFoundError(XRayError):
    """Referenced record does not exist."""

    def __init__(self, kind: str, record_id: str) -> None:
        self.kind = kind
        self.record_id = record_id
        super().__init__(f"{kind} with id {record_id} not found")


class InvalidTransitionError(XRayError):
    """Status change not allowed (records leave 'running' exactly once)."""

    def __init__(self, kind: str, record_id: str, current: str, target: str) -> None:
        self.kind = kind
        self.record_id = record_id
        self.current = current
        self.target = target
        super().__init__(
            f"{kind} {record_id} cannot transition from {current!r} to {target!r}"
        )


class DuplicateRecordError(XRayError):
    """Write collides with an existing record (step index within a run, candidate id)."""

    def __init__(self, kind: str, key: str) -> None:
        self.kind = kind
        self.key = key
        super().__init__(f"{kind} {key} conflicts with an existing record")
