"""
Session store: binds voice sessions to flow graphs.

The voice runtime's session id is unreliable. Stage-change calls can arrive
with the real call id, or with one of a few placeholder ids the model makes
up when it does not know the real one. The store therefore binds a graph to
the real id AND to every configured placeholder, and keeps alias links so
ids registered later resolve to the same graph.

Lookup order for an id:
1. Direct binding
2. Alias partners, in link order
3. Configured placeholder ids, in configured order

Bindings on shared placeholder ids are last-write-wins. No locking, no expiry.
"""

import logging
from abc import ABC, abstractmethod

from agent.flow.models import FlowGraph
from shared.config import get_settings

logger = logging.getLogger(__name__)


class SessionStore(ABC):
    """
    Abstract session store.

    Backends implement the primitive operations (_get/_set/_delete/_link/
    _partners/_unlink); lookup and registration semantics live here so every
    backend behaves the same.
    """

    def __init__(self, placeholder_ids: list[str] | None = None):
        if placeholder_ids is None:
            placeholder_ids = get_settings().placeholder_session_ids
        self.placeholder_ids = list(placeholder_ids)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def init(self) -> None:
        """Prepare the backend. Default: nothing to do."""

    def shutdown(self) -> None:
        """Release backend resources. Default: nothing to do."""

    # ------------------------------------------------------------------
    # Backend primitives
    # ------------------------------------------------------------------

    @abstractmethod
    def _get(self, session_id: str) -> FlowGraph | None:
        ...

    @abstractmethod
    def _set(self, session_id: str, graph: FlowGraph) -> None:
        ...

    @abstractmethod
    def _delete(self, session_id: str) -> None:
        ...

    @abstractmethod
    def _link(self, a: str, b: str) -> None:
        """Record b as an alias partner of a (one direction)."""

    @abstractmethod
    def _partners(self, session_id: str) -> list[str]:
        """Alias partners of session_id in link order."""

    @abstractmethod
    def _unlink_all(self, session_id: str) -> None:
        """Drop every alias link of session_id (in both directions)."""

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def register(self, primary_id: str, graph: FlowGraph) -> None:
        """
        Bind ``graph`` to ``primary_id`` and to every placeholder id.

        Args:
            primary_id: Real call id
            graph: Flow graph snapshot
        """
        self._set(primary_id, graph)
        for placeholder in self.placeholder_ids:
            if placeholder == primary_id:
                continue
            self._set(placeholder, graph)
            self._link_both(primary_id, placeholder)

        logger.info(
            f"Registered flow for session {primary_id} "
            f"({len(graph.nodes)} nodes, {len(self.placeholder_ids)} placeholders)",
            extra={"session_id": primary_id},
        )

    def register_alias(self, real_id: str, placeholder_id: str) -> None:
        """
        Link two ids so both resolve to the same graph.

        If only one id is bound, its graph is copied to the other. If both
        are bound, ``real_id``'s graph wins.
        """
        if real_id == placeholder_id:
            return

        self._link_both(real_id, placeholder_id)

        real_graph = self._get(real_id)
        alias_graph = self._get(placeholder_id)

        if real_graph is not None:
            self._set(placeholder_id, real_graph)
        elif alias_graph is not None:
            self._set(real_id, alias_graph)

        logger.info(
            f"Aliased session {placeholder_id} to {real_id}",
            extra={"session_id": real_id},
        )

    def lookup(self, session_id: str | None) -> FlowGraph | None:
        """
        Find the graph for a session id.

        A missing or blank id goes straight to placeholder probing.

        Returns:
            FlowGraph or None if nothing is bound anywhere
        """
        if session_id and session_id.strip():
            graph = self._get(session_id)
            if graph is not None:
                return graph

            for partner in self._partners(session_id):
                graph = self._get(partner)
                if graph is not None:
                    logger.debug(f"Session {session_id} resolved via alias {partner}")
                    return graph

        for placeholder in self.placeholder_ids:
            graph = self._get(placeholder)
            if graph is not None:
                logger.debug(f"Session {session_id!r} resolved via placeholder {placeholder}")
                return graph

        return None

    def clear(self, session_id: str) -> None:
        """
        Remove the binding of ``session_id`` and its alias partners.

        Clearing a placeholder id only drops the placeholder's own binding
        and links; the registered calls linked to it are kept.
        """
        if session_id in self.placeholder_ids:
            partners = []
        else:
            partners = self._partners(session_id)
        for partner in partners:
            self._delete(partner)
            self._unlink_all(partner)
        self._delete(session_id)
        self._unlink_all(session_id)

        logger.info(
            f"Cleared session {session_id} and {len(partners)} alias(es)",
            extra={"session_id": session_id},
        )

    def _link_both(self, a: str, b: str) -> None:
        self._link(a, b)
        self._link(b, a)


class InMemorySessionStore(SessionStore):
    """Process-local store. Default backend for single-instance deployments."""

    def __init__(self, placeholder_ids: list[str] | None = None):
        super().__init__(placeholder_ids)
        self._graphs: dict[str, FlowGraph] = {}
        self._aliases: dict[str, list[str]] = {}

    def shutdown(self) -> None:
        self._graphs.clear()
        self._aliases.clear()

    def _get(self, session_id: str) -> FlowGraph | None:
        return self._graphs.get(session_id)

    def _set(self, session_id: str, graph: FlowGraph) -> None:
        self._graphs[session_id] = graph

    def _delete(self, session_id: str) -> None:
        self._graphs.pop(session_id, None)

    def _link(self, a: str, b: str) -> None:
        partners = self._aliases.setdefault(a, [])
        if b not in partners:
            partners.append(b)

    def _partners(self, session_id: str) -> list[str]:
        return list(self._aliases.get(session_id, []))

    def _unlink_all(self, session_id: str) -> None:
        for partner in self._aliases.pop(session_id, []):
            partners = self._aliases.get(partner)
            if partners and session_id in partners:
                partners.remove(session_id)
