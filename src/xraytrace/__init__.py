# src/xraytrace/__init__.py — v1
"""xraytrace: decision evidence for multi-step pipelines.

Usage:
    from xraytrace import XRay, CandidateInput, StepTypes
    from xraytrace.store.memory_store import MemoryStore

    xray = XRay(MemoryStore())
"""

from xraytrace.capture.strategy import CaptureStrategy, CaptureThresholds
from xraytrace.core.errors import XRayError
from xraytrace.core.models import (
    Candidate,
    CandidateInput,
    Filter,
    Run,
    RunDetail,
    Step,
    StepDetail,
    StepTypes,
)
from xraytrace.sdk.errors import NoActiveRunError, RunAlreadyActiveError, UnknownStepError
from xraytrace.sdk.xray import XRay, create_xray
from xraytrace.version import __version__

__all__ = [
    "Candidate",
    "CandidateInput",
    "CaptureStrategy",
    "CaptureThresholds",
    "Filter",
    "NoActiveRunError",
    "Run",
    "RunAlreadyActiveError",
    "RunDetail",
    "Step",
    "StepDetail",
    "StepTypes",
    "UnknownStepError",
    "XRay",
    "XRayError",
    "__version__",
    "create_xray",
]
