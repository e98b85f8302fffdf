"""
Storage factory – switch storage backend from config
====================================================

This module centralizes selection of the storage backend (in-memory vs DB)
so the rest of the app can stay ignorant of where data lives.

- `get_storage()` builds a fresh backend. Environment is read **at call
  time** to avoid stale values in tests, and the DB backend is imported only
  when selected.
- `get_shared_storage()` is the process-wide handle: created lazily, exactly
  once, under a lock. `close_shared_storage()` is its teardown hook and is
  called from the application lifespan on shutdown.

Environment variables
---------------------
- VLINK_STORAGE_BACKEND: "memory" (default) or "postgres"
- VLINK_DB_DSN:          DSN string if backend == "postgres"
"""

import logging
import os
import threading
from typing import Optional

from vlink.config import settings
from vlink.storage.base import BaseStorage
from vlink.storage.storage import Storage

log = logging.getLogger(__name__)

_shared: Optional[BaseStorage] = None
_shared_lock = threading.Lock()


def get_storage(backend: Optional[str] = None, **kwargs) -> BaseStorage:
    """
    Return a new storage backend based on configuration.

    Parameters
    ----------
    backend : str, optional
        "memory" (default) or "postgres". If omitted, reads VLINK_STORAGE_BACKEND.
    kwargs : dict
        Extra args for the backend constructor. For postgres: dsn, min_size,
        max_size, ensure_schema (bool).
    """
    be = (backend or os.getenv("VLINK_STORAGE_BACKEND", "memory")).strip().lower()
    log.info("Selected storage backend: %r", be)

    if be == "memory":
        return Storage()

    if be == "postgres":
        dsn = kwargs.get("dsn") or os.getenv("VLINK_DB_DSN", "")
        if not dsn:
            raise ValueError("DB DSN is required for postgres backend (env VLINK_DB_DSN)")
        # Local import to avoid hard dependency when not using postgres
        from vlink.storage.db_storage import DBStorage

        storage = DBStorage(
            dsn=dsn,
            min_size=kwargs.get("min_size", settings.DB_POOL_MIN),
            max_size=kwargs.get("max_size", settings.DB_POOL_MAX),
        )
        if kwargs.get("ensure_schema", True):
            storage.ensure_schema()
        return storage

    raise ValueError(f"Unknown storage backend: {be!r}")


def get_shared_storage() -> BaseStorage:
    """Return the process-wide storage handle, creating it on first call."""
    global _shared
    with _shared_lock:
        if _shared is None:
            _shared = get_storage()
        return _shared


def close_shared_storage() -> None:
    """Close and forget the process-wide handle; safe to call repeatedly."""
    global _shared
    with _shared_lock:
        if _shared is not None:
            log.info("Closing shared storage handle")
            _shared.close()
            _shared = None
