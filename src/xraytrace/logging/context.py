# src/xraytrace/logging/context.py — v1
"""Contextual logging support: attach pipeline_id, run_id and step to log records.

Context variables are per asyncio task, so two engines driven from separate
tasks keep separate contexts.
"""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

_pipeline_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "pipeline_id", default=None
)
_run_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "run_id", default=None
)
_step_type: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "step_type", default=None
)
_step_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "step_id", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    pipeline_id: str | None = None
    run_id: str | None = None
    step_type: str | None = None
    step_id: str | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        pipeline_id=_pipeline_id.get(),
        run_id=_run_id.get(),
        step_type=_step_type.get(),
        step_id=_step_id.get(),
    )


def set_run_context(pipeline_id: str, run_id: str) -> None:
    """Set run-level context (called when a run begins)."""
    _pipeline_id.set(pipeline_id)
    _run_id.set(run_id)
    _step_type.set(None)
    _step_id.set(None)


def set_step_context(step_type: str | None, step_id: str | None = None) -> None:
    """Set step-level context (called when a step opens)."""
    _step_type.set(step_type)
    _step_id.set(step_id)


def clear_context() -> None:
    """Reset all context variables."""
    _pipeline_id.set(None)
    _run_id.set(None)
    _step_type.set(None)
    _step_id.set(None)
