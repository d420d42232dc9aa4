# src/xraytrace/client/__init__.py — v1
