# src/xraytrace/analytics/__init__.py — v1
