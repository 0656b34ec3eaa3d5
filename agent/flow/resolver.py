"""
Transition resolver.

Given a graph, the node the conversation is currently on and the user's
utterance, decide which outgoing edge to follow. Resolution is deterministic:
candidates are tried in declaration order and the first match wins.

Dispatch by node type:
- workflow / cal_check_availability / cal_book_appointment: keyword-cluster
  match of the utterance against transition labels, else the first edge
- question: exact option match, then substring match, else the first option
- condition: equals/contains check, following the "true"/"false" handle
- anything else: the first edge

Resolution never raises. Failures come back as a Resolution with outcome
ERROR and a FlowError attached.
"""

import logging
from dataclasses import dataclass
from enum import Enum

from agent.flow.errors import FlowError, FlowErrorKind
from agent.flow.graph import get_node, get_outgoing_edges
from agent.flow.keywords import match_cluster
from agent.flow.models import (
    BranchingNodeData,
    ConditionNodeData,
    ConditionOperator,
    Edge,
    FlowGraph,
    FlowNode,
    NodeType,
    QuestionNodeData,
)

logger = logging.getLogger(__name__)

TRUE_HANDLE = "true"
FALSE_HANDLE = "false"


class ResolutionOutcome(str, Enum):
    NEXT_NODE = "next_node"
    TERMINAL = "terminal"
    ERROR = "error"


@dataclass(frozen=True)
class Resolution:
    """
    Result of resolving one turn.

    Exactly one of these holds:
    - NEXT_NODE: ``next_node_id``, ``next_node`` and ``edge`` are set
    - TERMINAL: the current node has no outgoing edges (end of flow)
    - ERROR: ``error`` is set
    """

    outcome: ResolutionOutcome
    next_node_id: str | None = None
    next_node: FlowNode | None = None
    edge: Edge | None = None
    reason: str = ""
    error: FlowError | None = None

    @property
    def is_terminal(self) -> bool:
        return self.outcome == ResolutionOutcome.TERMINAL

    @property
    def is_error(self) -> bool:
        return self.outcome == ResolutionOutcome.ERROR

    @classmethod
    def terminal(cls, reason: str = "no outgoing edges") -> "Resolution":
        return cls(outcome=ResolutionOutcome.TERMINAL, reason=reason)

    @classmethod
    def failed(cls, error: FlowError) -> "Resolution":
        return cls(outcome=ResolutionOutcome.ERROR, reason=error.detail, error=error)


def normalize(text: str | None) -> str:
    return (text or "").strip().lower()


def evaluate_condition(operator: str, value: str, response: str | None) -> bool:
    """
    Evaluate a condition against an utterance.

    Both sides are trimmed and lowercased before comparison. A missing
    utterance evaluates to False.

    Args:
        operator: "equals" or "contains"
        value: Expected value
        response: User utterance

    Returns:
        True if the condition holds

    Raises:
        FlowError: UNSUPPORTED_OPERATOR for any other operator
    """
    try:
        op = ConditionOperator(normalize(operator))
    except ValueError:
        raise FlowError(
            kind=FlowErrorKind.UNSUPPORTED_OPERATOR,
            detail=f"Unsupported condition operator: {operator!r}",
        ) from None

    if response is None:
        return False

    expected = normalize(value)
    actual = normalize(response)

    if op == ConditionOperator.EQUALS:
        return actual == expected
    return expected in actual


class TransitionResolver:
    """Resolves turns against one graph snapshot."""

    def __init__(self, graph: FlowGraph):
        self.graph = graph

    def resolve(self, current_node_id: str, user_response: str | None = None) -> Resolution:
        """
        Pick the next node for a turn.

        Args:
            current_node_id: Node the conversation is on
            user_response: Free-text utterance (may be None)

        Returns:
            Resolution (next node, terminal or error)
        """
        node = get_node(self.graph, current_node_id)
        if node is None:
            return Resolution.failed(FlowError(
                kind=FlowErrorKind.NODE_NOT_FOUND,
                detail=f"Node '{current_node_id}' not found in flow",
                node_id=current_node_id,
            ))

        edges = get_outgoing_edges(self.graph, node.id)
        if not edges:
            logger.debug(f"Node {node.id} has no outgoing edges, flow ends here")
            return Resolution.terminal()

        try:
            edge, reason = self._select_edge(node, edges, user_response)
        except FlowError as e:
            e.node_id = e.node_id or node.id
            logger.warning(f"Could not resolve transition from {node.id}: {e}")
            return Resolution.failed(e)

        next_node = get_node(self.graph, edge.target)
        if next_node is None:
            return Resolution.failed(FlowError(
                kind=FlowErrorKind.TARGET_NODE_MISSING,
                detail=f"Edge '{edge.id}' points to missing node '{edge.target}'",
                node_id=edge.target,
            ))

        logger.info(
            f"Resolved {node.id} -> {next_node.id} via edge {edge.id or '?'} ({reason})",
            extra={"node_id": node.id, "node_type": node.type},
        )
        return Resolution(
            outcome=ResolutionOutcome.NEXT_NODE,
            next_node_id=next_node.id,
            next_node=next_node,
            edge=edge,
            reason=reason,
        )

    def _select_edge(
        self,
        node: FlowNode,
        edges: list[Edge],
        user_response: str | None,
    ) -> tuple[Edge, str]:
        if node.is_branching and isinstance(node.data, BranchingNodeData):
            return self._select_branching_edge(node, edges, user_response)
        if node.node_type == NodeType.QUESTION and isinstance(node.data, QuestionNodeData):
            return self._select_question_edge(node.data, edges, user_response)
        if node.node_type == NodeType.CONDITION and isinstance(node.data, ConditionNodeData):
            return self._select_condition_edge(node.data, edges, user_response)
        return edges[0], "default edge"

    def _select_branching_edge(
        self,
        node: FlowNode,
        edges: list[Edge],
        user_response: str | None,
    ) -> tuple[Edge, str]:
        transitions = node.data.transitions
        if not transitions or not normalize(user_response):
            return edges[0], "default edge"

        edges_by_id = {edge.id: edge for edge in edges if edge.id}

        # Excess transitions or edges on the longer side are ignored
        for index, transition in enumerate(transitions[:len(edges)]):
            cluster = match_cluster(user_response, transition.label, node.node_type)
            if cluster is None:
                continue

            if transition.edge_id and transition.edge_id in edges_by_id:
                edge = edges_by_id[transition.edge_id]
            else:
                edge = edges[index]
            return edge, f"transition '{transition.label}' matched {cluster.name}"

        return edges[0], "no transition matched"

    def _select_question_edge(
        self,
        data: QuestionNodeData,
        edges: list[Edge],
        user_response: str | None,
    ) -> tuple[Edge, str]:
        if not data.options:
            return edges[0], "question without options"

        response = normalize(user_response)
        if response:
            for index, option in enumerate(data.options):
                if normalize(option.text) == response:
                    return self._option_edge(option.id, index, edges), f"option '{option.text}' exact"

            for index, option in enumerate(data.options):
                text = normalize(option.text)
                if text and (text in response or response in text):
                    return self._option_edge(option.id, index, edges), f"option '{option.text}' partial"

        first = data.options[0]
        return self._option_edge(first.id, 0, edges), "no option matched"

    def _option_edge(self, option_id: str, index: int, edges: list[Edge]) -> Edge:
        if option_id:
            for edge in edges:
                if edge.source_handle == option_id:
                    return edge
        if index < len(edges):
            return edges[index]
        return edges[0]

    def _select_condition_edge(
        self,
        data: ConditionNodeData,
        edges: list[Edge],
        user_response: str | None,
    ) -> tuple[Edge, str]:
        if data.condition is None:
            return edges[0], "condition without data"

        result = evaluate_condition(data.condition.operator, data.condition.value, user_response)
        handle = TRUE_HANDLE if result else FALSE_HANDLE

        for edge in edges:
            if edge.source_handle == handle:
                return edge, f"condition {handle}"

        if result:
            return edges[0], "condition true (positional)"
        return (edges[1] if len(edges) > 1 else edges[0]), "condition false (positional)"


def resolve(
    graph: FlowGraph,
    current_node_id: str,
    user_response: str | None = None,
) -> Resolution:
    """Resolve a turn against ``graph``. See TransitionResolver.resolve."""
    return TransitionResolver(graph).resolve(current_node_id, user_response)
