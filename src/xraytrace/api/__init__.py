# src/xraytrace/api/__init__.py — v1
