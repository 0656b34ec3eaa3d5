"""
Redis-backed session store for multi-instance deployments.

Redis Key Patterns:
    - flow:session:{session_id} - Flow graph JSON (camelCase wire format)
    - flow:alias:{session_id} - Alias partners (list, link order)

Semantics are the same as the in-memory store (see SessionStore); only the
storage primitives differ. Bindings do not expire.
"""

import logging

from pydantic import ValidationError
from redis import Redis

from agent.flow.models import FlowGraph
from agent.session.store import SessionStore
from shared.redis_client import close_redis_client, get_redis_client

logger = logging.getLogger(__name__)

SESSION_KEY_PREFIX = "flow:session:"
ALIAS_KEY_PREFIX = "flow:alias:"


def session_key(session_id: str) -> str:
    return f"{SESSION_KEY_PREFIX}{session_id}"


def alias_key(session_id: str) -> str:
    return f"{ALIAS_KEY_PREFIX}{session_id}"


class RedisSessionStore(SessionStore):
    """Session store shared through Redis."""

    def __init__(self, client: Redis | None = None, placeholder_ids: list[str] | None = None):
        super().__init__(placeholder_ids)
        self._client = client
        self._owns_client = client is None

    @property
    def client(self) -> Redis:
        if self._client is None:
            self._client = get_redis_client()
        return self._client

    def init(self) -> None:
        """Verify connectivity (raises redis.ConnectionError if unreachable)."""
        self.client.ping()
        logger.info("Redis session store ready")

    def shutdown(self) -> None:
        if self._owns_client and self._client is not None:
            close_redis_client()
            self._client = None

    def _get(self, session_id: str) -> FlowGraph | None:
        raw = self.client.get(session_key(session_id))
        if raw is None:
            return None
        try:
            return FlowGraph.model_validate_json(raw)
        except ValidationError as e:
            logger.error(f"Corrupt flow graph stored for session {session_id}: {e}")
            return None

    def _set(self, session_id: str, graph: FlowGraph) -> None:
        self.client.set(session_key(session_id), graph.model_dump_json(by_alias=True))

    def _delete(self, session_id: str) -> None:
        self.client.delete(session_key(session_id))

    def _link(self, a: str, b: str) -> None:
        if b not in self._partners(a):
            self.client.rpush(alias_key(a), b)

    def _partners(self, session_id: str) -> list[str]:
        return list(self.client.lrange(alias_key(session_id), 0, -1))

    def _unlink_all(self, session_id: str) -> None:
        partners = self._partners(session_id)
        pipe = self.client.pipeline()
        for partner in partners:
            pipe.lrem(alias_key(partner), 0, session_id)
        pipe.delete(alias_key(session_id))
        pipe.execute()
