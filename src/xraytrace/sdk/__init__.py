# src/xraytrace/sdk/__init__.py — v1
"""Lifecycle engine."""
