# src/xraytrace/core/__init__.py — v1
