"""
Structured flow errors.

Flow operations never let these escape to the host process: resolvers and the
orchestrator return them inside result objects, and the HTTP layer maps each
kind to a status code and a spoken fallback.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class FlowErrorKind(str, Enum):
    """Error taxonomy for flow navigation."""

    MISSING_SESSION_CONTEXT = "missing_session_context"
    """No graph bound to the session id, any alias or any placeholder."""

    NODE_NOT_FOUND = "node_not_found"
    """Current node id does not exist in the graph."""

    TARGET_NODE_MISSING = "target_node_missing"
    """Chosen edge points at a node that does not exist."""

    UNSUPPORTED_OPERATOR = "unsupported_operator"
    """Condition node uses an operator other than equals/contains."""

    INVALID_GRAPH_STRUCTURE = "invalid_graph_structure"
    """Graph failed structural validation."""


@dataclass
class FlowError(Exception):
    """
    Flow navigation failure with kind and human-readable detail.

    Attributes:
        kind: Error category
        detail: Human-readable description
        node_id: Node involved, if any
        session_id: Session involved, if any
    """

    kind: FlowErrorKind
    detail: str
    node_id: str | None = None
    session_id: str | None = None

    def __str__(self) -> str:
        return f"{self.kind.value}: {self.detail}"

    @property
    def retryable(self) -> bool:
        """Only a missing session can be fixed by re-fetching and re-registering."""
        return self.kind == FlowErrorKind.MISSING_SESSION_CONTEXT

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "detail": self.detail,
            "node_id": self.node_id,
            "session_id": self.session_id,
            "retryable": self.retryable,
        }
