# src/xraytrace/capture/__init__.py — v1
