"""
Session store module.

Public exports:
    - SessionStore: Abstract store interface (register/lookup/alias/clear)
    - InMemorySessionStore: Process-local backend (default)
    - RedisSessionStore: Shared backend for multi-instance deployments
    - get_session_store: Cached store for the configured backend
"""

import logging
from functools import lru_cache

from agent.session.redis_store import RedisSessionStore
from agent.session.store import InMemorySessionStore, SessionStore
from shared.config import get_settings

logger = logging.getLogger(__name__)


@lru_cache
def get_session_store() -> SessionStore:
    """
    Get the process-wide session store.

    Backend is chosen by SESSION_STORE_BACKEND ("memory" or "redis").
    The caller owns the lifecycle (init() at startup, shutdown() at exit).

    Raises:
        ValueError: If the configured backend is unknown
    """
    backend = get_settings().SESSION_STORE_BACKEND.strip().lower()

    if backend == "memory":
        store: SessionStore = InMemorySessionStore()
    elif backend == "redis":
        store = RedisSessionStore()
    else:
        raise ValueError(f"Unknown SESSION_STORE_BACKEND: {backend!r}")

    logger.info(f"Session store backend: {backend}")
    return store


__all__ = [
    "InMemorySessionStore",
    "RedisSessionStore",
    "SessionStore",
    "get_session_store",
]
