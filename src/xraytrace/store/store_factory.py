# src/xraytrace/store/store_factory.py — v1
"""Factory for evidence store instantiation selected by XRAY_STORE_BACKEND."""

from __future__ import annotations

from xraytrace.config.settings import ConfigurationError, Settings
from xraytrace.store.base_store import BaseStore


def create_store(settings: Settings | None = None) -> BaseStore:
    """Instantiate the configured store backend.

    Args:
        settings: Application settings. Defaults to an in-memory store.

    Returns:
        Configured BaseStore implementation.
    """
    backend = "memory" if settings is None else settings.store_backend
    candidate_limit = 100 if settings is None else settings.run_detail_candidate_limit

    if backend == "memory":
        from xraytrace.store.memory_store import MemoryStore
        return MemoryStore(run_detail_candidate_limit=candidate_limit)

    if backend == "sqlite":
        from xraytrace.store.sqlite_store import SqliteStore
        return SqliteStore(
            db_path=settings.sqlite_path,  # type: ignore[union-attr]
            run_detail_candidate_limit=candidate_limit,
        )

    if backend == "http":
        from xraytrace.client.http_store import HttpStore
        return HttpStore.from_settings(settings)  # type: ignore[arg-type]

    raise ConfigurationError(f"Unsupported store backend: {backend!r}")
