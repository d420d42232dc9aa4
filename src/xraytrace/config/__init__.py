# src/xraytrace/config/__init__.py — v1
