"""
Flow graph queries and structural validation.

All functions are pure: they read a FlowGraph snapshot and never modify it.
Validation reports issues instead of raising, so a caller can decide which
severities block a call from starting.
"""

import logging
from collections import Counter, deque
from dataclasses import dataclass
from enum import Enum
from typing import Any

from agent.flow.models import BranchingNodeData, Edge, FlowGraph, FlowNode, NodeType

logger = logging.getLogger(__name__)


class IssueSeverity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class IssueCode(str, Enum):
    """Validation issue codes."""

    DUPLICATE_NODE_ID = "duplicate_node_id"
    DANGLING_EDGE_SOURCE = "dangling_edge_source"
    DANGLING_EDGE_TARGET = "dangling_edge_target"
    MULTIPLE_START_NODES = "multiple_start_nodes"
    MISSING_START_NODE = "missing_start_node"
    UNREACHABLE_NODE = "unreachable_node"
    TRANSITION_EDGE_COUNT_MISMATCH = "transition_edge_count_mismatch"
    UNKNOWN_TRANSITION_EDGE = "unknown_transition_edge"


@dataclass(frozen=True)
class ValidationIssue:
    severity: IssueSeverity
    code: IssueCode
    message: str
    node_id: str | None = None
    edge_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "severity": self.severity.value,
            "code": self.code.value,
            "message": self.message,
            "node_id": self.node_id,
            "edge_id": self.edge_id,
        }


def get_node(graph: FlowGraph, node_id: str | None) -> FlowNode | None:
    """Return the node with ``node_id``, or None if absent."""
    if not node_id:
        return None
    for node in graph.nodes:
        if node.id == node_id:
            return node
    return None


def get_outgoing_edges(graph: FlowGraph, node_id: str) -> list[Edge]:
    """Outgoing edges of ``node_id`` in declaration order."""
    return [edge for edge in graph.edges if edge.source == node_id]


def find_start_node(graph: FlowGraph) -> FlowNode | None:
    """First node of type ``start``, if any."""
    for node in graph.nodes:
        if node.node_type == NodeType.START:
            return node
    return None


def reachable_node_ids(graph: FlowGraph, from_node_id: str | None = None) -> set[str]:
    """
    Breadth-first set of node ids reachable from ``from_node_id``.

    Args:
        graph: Flow graph
        from_node_id: Origin node (default: the start node)

    Returns:
        Reachable ids including the origin; empty if the origin is unknown
    """
    if from_node_id is None:
        start = find_start_node(graph)
        from_node_id = start.id if start else None

    if from_node_id is None or get_node(graph, from_node_id) is None:
        return set()

    seen = {from_node_id}
    queue = deque([from_node_id])
    while queue:
        current = queue.popleft()
        for edge in get_outgoing_edges(graph, current):
            if edge.target not in seen:
                seen.add(edge.target)
                queue.append(edge.target)
    return seen


def validate(graph: FlowGraph) -> list[ValidationIssue]:
    """
    Check the structural invariants of a flow graph.

    Errors: duplicate node ids, edges with unknown source/target, more than
    one start node. Warnings: no start node, nodes unreachable from start,
    branching nodes whose transition and edge counts differ, transitions
    whose ``edge_id`` is not one of the node's outgoing edges.

    Args:
        graph: Flow graph to check

    Returns:
        List of issues, empty when the graph is clean
    """
    issues: list[ValidationIssue] = []
    node_ids = {node.id for node in graph.nodes}

    for node_id, count in Counter(node.id for node in graph.nodes).items():
        if count > 1:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                code=IssueCode.DUPLICATE_NODE_ID,
                message=f"Node id '{node_id}' is used by {count} nodes",
                node_id=node_id,
            ))

    for edge in graph.edges:
        if edge.source not in node_ids:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                code=IssueCode.DANGLING_EDGE_SOURCE,
                message=f"Edge '{edge.id}' starts at unknown node '{edge.source}'",
                node_id=edge.source,
                edge_id=edge.id,
            ))
        if edge.target not in node_ids:
            issues.append(ValidationIssue(
                severity=IssueSeverity.ERROR,
                code=IssueCode.DANGLING_EDGE_TARGET,
                message=f"Edge '{edge.id}' points to unknown node '{edge.target}'",
                node_id=edge.target,
                edge_id=edge.id,
            ))

    start_nodes = [node for node in graph.nodes if node.node_type == NodeType.START]
    if len(start_nodes) > 1:
        issues.append(ValidationIssue(
            severity=IssueSeverity.ERROR,
            code=IssueCode.MULTIPLE_START_NODES,
            message=f"Graph has {len(start_nodes)} start nodes: "
                    f"{', '.join(node.id for node in start_nodes)}",
        ))
    elif not start_nodes:
        issues.append(ValidationIssue(
            severity=IssueSeverity.WARNING,
            code=IssueCode.MISSING_START_NODE,
            message="Graph has no start node",
        ))

    if start_nodes:
        reachable = reachable_node_ids(graph, start_nodes[0].id)
        for node in graph.nodes:
            if node.id not in reachable:
                issues.append(ValidationIssue(
                    severity=IssueSeverity.WARNING,
                    code=IssueCode.UNREACHABLE_NODE,
                    message=f"Node '{node.id}' is not reachable from start",
                    node_id=node.id,
                ))

    for node in graph.nodes:
        if not node.is_branching or not isinstance(node.data, BranchingNodeData):
            continue
        issues.extend(_validate_transitions(graph, node))

    if issues:
        logger.debug(f"Graph validation found {len(issues)} issue(s)")

    return issues


def _validate_transitions(graph: FlowGraph, node: FlowNode) -> list[ValidationIssue]:
    issues: list[ValidationIssue] = []
    transitions = node.data.transitions
    edges = get_outgoing_edges(graph, node.id)

    if transitions and len(transitions) != len(edges):
        issues.append(ValidationIssue(
            severity=IssueSeverity.WARNING,
            code=IssueCode.TRANSITION_EDGE_COUNT_MISMATCH,
            message=(
                f"Node '{node.id}' declares {len(transitions)} transition(s) "
                f"but has {len(edges)} outgoing edge(s); extras are ignored"
            ),
            node_id=node.id,
        ))

    edge_ids = {edge.id for edge in edges}
    for transition in transitions:
        if transition.edge_id and transition.edge_id not in edge_ids:
            issues.append(ValidationIssue(
                severity=IssueSeverity.WARNING,
                code=IssueCode.UNKNOWN_TRANSITION_EDGE,
                message=(
                    f"Transition '{transition.label}' on node '{node.id}' names "
                    f"edge '{transition.edge_id}', which does not leave this node"
                ),
                node_id=node.id,
                edge_id=transition.edge_id,
            ))

    return issues


def has_errors(issues: list[ValidationIssue]) -> bool:
    return any(issue.severity == IssueSeverity.ERROR for issue in issues)
