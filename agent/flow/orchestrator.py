"""
Turn orchestration.

FlowOrchestrator is the entry point the HTTP layer talks to. Per turn it:
1. Looks up the session's graph in the session store
2. Resolves the next node from the current node and the utterance
3. Compiles the next node into a StageConfig

Results are returned as outcome objects; FlowError never escapes.
"""

import logging
from dataclasses import dataclass, field

from agent.flow.errors import FlowError, FlowErrorKind
from agent.flow.graph import IssueSeverity, ValidationIssue, has_errors, validate
from agent.flow.models import FlowGraph
from agent.flow.resolver import evaluate_condition as evaluate, resolve
from agent.flow.stage_generator import (
    StageConfig,
    compile_end_of_flow,
    compile_stage,
    select_initial_node,
)
from agent.session.store import SessionStore

logger = logging.getLogger(__name__)


@dataclass
class SessionStart:
    """Result of registering a new call's flow."""

    session_id: str
    issues: list[ValidationIssue] = field(default_factory=list)
    initial_node_id: str | None = None
    stage: StageConfig | None = None
    error: FlowError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class TurnOutcome:
    """
    Result of one stage change.

    Either ``stage`` is set (next stage or, with end_of_flow, the closing
    stage) or ``error`` is.
    """

    session_id: str | None
    current_node_id: str
    next_node_id: str | None = None
    stage: StageConfig | None = None
    end_of_flow: bool = False
    error: FlowError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass
class ConditionEvaluation:
    user_input: str
    condition_value: str
    operator: str
    result: bool = False
    error: FlowError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


class FlowOrchestrator:
    """Drives a call through its flow graph, one turn at a time."""

    def __init__(self, store: SessionStore, base_url: str | None = None):
        self.store = store
        self.base_url = base_url

    def check_graph(
        self,
        graph: FlowGraph,
        session_id: str | None = None,
    ) -> tuple[list[ValidationIssue], FlowError | None]:
        """
        Validate a graph before it is bound to a call.

        Returns:
            All issues, plus an INVALID_GRAPH_STRUCTURE error if any issue is
            error-severity
        """
        issues = validate(graph)
        if not has_errors(issues):
            return issues, None

        errors = [issue.message for issue in issues if issue.severity == IssueSeverity.ERROR]
        logger.warning(
            f"Rejected flow for session {session_id}: {'; '.join(errors)}",
            extra={"session_id": session_id},
        )
        return issues, FlowError(
            kind=FlowErrorKind.INVALID_GRAPH_STRUCTURE,
            detail="; ".join(errors),
            session_id=session_id,
        )

    def start_session(self, session_id: str, graph: FlowGraph) -> SessionStart:
        """
        Validate and register a call's flow graph.

        Graphs with error-severity issues are rejected; warnings are
        returned alongside the initial stage.

        Args:
            session_id: Real call id
            graph: Flow graph for the call

        Returns:
            SessionStart with issues, initial node and its compiled stage
        """
        issues, error = self.check_graph(graph, session_id)
        if error is not None:
            return SessionStart(session_id=session_id, issues=issues, error=error)

        for issue in issues:
            logger.warning(
                f"Flow warning for session {session_id}: {issue.message}",
                extra={"session_id": session_id, "node_id": issue.node_id},
            )

        self.store.register(session_id, graph)

        initial_node = select_initial_node(graph)
        stage = None
        if initial_node is not None:
            stage = compile_stage(
                initial_node,
                graph.global_settings,
                session_id=session_id,
                global_prompt=graph.global_prompt,
                base_url=self.base_url,
            )

        return SessionStart(
            session_id=session_id,
            issues=issues,
            initial_node_id=initial_node.id if initial_node else None,
            stage=stage,
        )

    def change_stage(
        self,
        session_id: str | None,
        current_node_id: str,
        user_response: str | None = None,
    ) -> TurnOutcome:
        """
        Advance the call by one turn.

        Args:
            session_id: Call id as sent by the voice runtime (may be a placeholder)
            current_node_id: Node the call is on
            user_response: What the user said

        Returns:
            TurnOutcome with the next stage, the closing stage, or an error
        """
        log_extra = {"session_id": session_id, "node_id": current_node_id}

        graph = self.store.lookup(session_id)
        if graph is None:
            logger.warning(f"No flow bound to session {session_id!r}", extra=log_extra)
            return TurnOutcome(
                session_id=session_id,
                current_node_id=current_node_id,
                error=FlowError(
                    kind=FlowErrorKind.MISSING_SESSION_CONTEXT,
                    detail=f"No flow data found for session {session_id!r}",
                    node_id=current_node_id,
                    session_id=session_id,
                ),
            )

        resolution = resolve(graph, current_node_id, user_response)

        if resolution.is_error:
            error = resolution.error
            error.session_id = session_id
            logger.warning(f"Stage change failed: {error}", extra=log_extra)
            return TurnOutcome(
                session_id=session_id,
                current_node_id=current_node_id,
                error=error,
            )

        if resolution.is_terminal:
            logger.info(f"Flow ended at node {current_node_id}", extra=log_extra)
            return TurnOutcome(
                session_id=session_id,
                current_node_id=current_node_id,
                stage=compile_end_of_flow(graph.global_settings),
                end_of_flow=True,
            )

        stage = compile_stage(
            resolution.next_node,
            graph.global_settings,
            session_id=session_id,
            user_response=user_response,
            global_prompt=graph.global_prompt,
            base_url=self.base_url,
        )

        logger.info(
            f"Stage change {current_node_id} -> {resolution.next_node_id}",
            extra={**log_extra, "node_type": resolution.next_node.type},
        )
        return TurnOutcome(
            session_id=session_id,
            current_node_id=current_node_id,
            next_node_id=resolution.next_node_id,
            stage=stage,
        )

    def evaluate_condition(
        self,
        user_input: str,
        condition_value: str,
        operator: str,
    ) -> ConditionEvaluation:
        """Evaluate a condition on behalf of the evaluateCondition tool."""
        evaluation = ConditionEvaluation(
            user_input=user_input,
            condition_value=condition_value,
            operator=operator,
        )
        try:
            evaluation.result = evaluate(operator, condition_value, user_input)
        except FlowError as e:
            logger.warning(f"Condition evaluation failed: {e}")
            evaluation.error = e
        return evaluation
