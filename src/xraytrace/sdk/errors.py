# src/xraytrace/sdk/errors.py — v1
"""Lifecycle errors raised by the XRay engine."""

from __future__ import annotations

from xraytrace.core.errors import XRayError


class NoActiveRunError(XRayError):
    """A lifecycle call needs an open run and there is none."""

    def __init__(self, operation: str) -> None:
        self.operation = operation
        super().__init__(f"No active run for {operation}(). Call begin() first.")


class RunAlreadyActiveError(XRayError):
    """begin() was called while another run is still open on this engine."""

    def __init__(self, run_id: str) -> None:
        self.run_id = run_id
        super().__init__(
            f"Run {run_id} is still open. Call end() before starting another run."
        )


class UnknownStepError(XRayError):
    """The step id is not tracked as open by this engine instance."""

    def __init__(self, step_id: str) -> None:
        self.step_id = step_id
        super().__init__(f"Step {step_id} is not open on this engine")
