# src/xraytrace/core/errors.py — v1
"""Root of the xraytrace exception hierarchy."""

from __future__ import annotations


class XRayError(Exception):
    """Base class for all errors raised by xraytrace."""
