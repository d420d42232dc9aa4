# src/xraytrace/logging/__init__.py — v1
