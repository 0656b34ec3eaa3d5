"""
Flow navigation module.

Drives a voice call through an authored conversation graph: resolves which
node comes next for each user turn and compiles that node into the stage
payload the voice runtime consumes.

Public exports:
    - FlowGraph, FlowNode, Edge, GlobalSettings, NodeType: Graph models
    - validate, get_node, get_outgoing_edges: Graph queries
    - resolve, Resolution, ResolutionOutcome: Transition resolution
    - compile_stage, compile_end_of_flow, StageConfig: Stage compilation
    - FlowOrchestrator: Per-turn entry point
    - FlowError, FlowErrorKind: Structured errors
"""

from agent.flow.errors import FlowError, FlowErrorKind
from agent.flow.graph import (
    IssueCode,
    IssueSeverity,
    ValidationIssue,
    get_node,
    get_outgoing_edges,
    validate,
)
from agent.flow.models import (
    Edge,
    FlowGraph,
    FlowNode,
    GlobalSettings,
    NodeType,
)
from agent.flow.orchestrator import FlowOrchestrator, TurnOutcome
from agent.flow.resolver import Resolution, ResolutionOutcome, resolve
from agent.flow.stage_generator import (
    StageConfig,
    build_call_request,
    compile_end_of_flow,
    compile_stage,
)

__all__ = [
    # Models
    "Edge",
    "FlowGraph",
    "FlowNode",
    "GlobalSettings",
    "NodeType",
    # Graph
    "IssueCode",
    "IssueSeverity",
    "ValidationIssue",
    "get_node",
    "get_outgoing_edges",
    "validate",
    # Resolution
    "Resolution",
    "ResolutionOutcome",
    "resolve",
    # Stages
    "StageConfig",
    "build_call_request",
    "compile_end_of_flow",
    "compile_stage",
    # Orchestration
    "FlowOrchestrator",
    "TurnOutcome",
    # Errors
    "FlowError",
    "FlowErrorKind",
]
