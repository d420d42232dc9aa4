# src/xraytrace/store/__init__.py — v1
"""Evidence persistence backends."""
