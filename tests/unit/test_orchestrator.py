"""Unit tests for FlowOrchestrator."""

from agent.flow.errors import FlowErrorKind
from agent.flow.graph import IssueCode
from agent.flow.models import FlowGraph
from agent.flow.orchestrator import FlowOrchestrator
from agent.flow.tool_descriptors import CHANGE_STAGE_TOOL

BASE_URL = "https://flows.example.com"


class TestStartSession:
    """Test start_session()."""

    def test_registers_and_compiles_initial_stage(self, store, workflow_graph):
        orchestrator = FlowOrchestrator(store, base_url=BASE_URL)

        start = orchestrator.start_session("real-call-42", workflow_graph)

        assert start.ok
        assert start.issues == []
        assert start.initial_node_id == "W"
        assert "Include the call ID 'real-call-42'" in start.stage.system_prompt
        assert store.lookup("real-call-42") == workflow_graph
        assert store.lookup("call-1234567890") == workflow_graph

    def test_rejects_invalid_graph(self, store):
        """Test graphs with structural errors are not registered."""
        graph = FlowGraph.model_validate({
            "nodes": [{"id": "start", "type": "start"}],
            "edges": [{"id": "e1", "source": "start", "target": "ghost"}],
        })
        orchestrator = FlowOrchestrator(store)

        start = orchestrator.start_session("real-call-42", graph)

        assert not start.ok
        assert start.error.kind == FlowErrorKind.INVALID_GRAPH_STRUCTURE
        assert "ghost" in start.error.detail
        assert start.stage is None
        assert store.lookup("real-call-42") is None

    def test_warnings_do_not_block(self, store, question_graph):
        orchestrator = FlowOrchestrator(store)

        start = orchestrator.start_session("real-call-42", question_graph)

        assert start.ok
        assert [issue.code for issue in start.issues] == [IssueCode.MISSING_START_NODE]
        assert start.initial_node_id == "Q"


class TestCheckGraph:
    """Test check_graph()."""

    def test_valid_graph(self, store, workflow_graph):
        issues, error = FlowOrchestrator(store).check_graph(workflow_graph)

        assert issues == []
        assert error is None

    def test_does_not_register(self, store):
        """Test checking a graph leaves the store untouched."""
        graph = FlowGraph.model_validate({
            "nodes": [{"id": "start", "type": "start"}, {"id": "start", "type": "start"}],
            "edges": [],
        })

        issues, error = FlowOrchestrator(store).check_graph(graph, "real-call-42")

        assert error.kind == FlowErrorKind.INVALID_GRAPH_STRUCTURE
        assert error.session_id == "real-call-42"
        assert IssueCode.DUPLICATE_NODE_ID in [issue.code for issue in issues]
        assert store.lookup("real-call-42") is None


class TestChangeStage:
    """Test change_stage()."""

    def test_next_stage(self, store, workflow_graph):
        store.register("real-call-42", workflow_graph)
        orchestrator = FlowOrchestrator(store, base_url=BASE_URL)

        outcome = orchestrator.change_stage("real-call-42", "W", "I need to reschedule my appointment")

        assert outcome.ok
        assert not outcome.end_of_flow
        assert outcome.next_node_id == "A"
        assert "Let's find you a new time." in outcome.stage.system_prompt
        assert outcome.stage.tool_names == [CHANGE_STAGE_TOOL]
        assert outcome.stage.initial_messages[0].text == "I need to reschedule my appointment"

    def test_placeholder_session_id(self, store, workflow_graph):
        """Test a placeholder call id reaches the registered graph."""
        store.register("real-call-42", workflow_graph)
        orchestrator = FlowOrchestrator(store)

        outcome = orchestrator.change_stage("call-1234567890", "start")

        assert outcome.next_node_id == "W"

    def test_end_of_flow(self, store, workflow_graph):
        """Test a leaf node produces the closing stage, not an error."""
        store.register("real-call-42", workflow_graph)
        orchestrator = FlowOrchestrator(store)

        outcome = orchestrator.change_stage("real-call-42", "B", "bye")

        assert outcome.ok
        assert outcome.end_of_flow
        assert outcome.next_node_id is None
        assert outcome.stage.selected_tools == []

    def test_missing_session_context(self, store):
        orchestrator = FlowOrchestrator(store)

        outcome = orchestrator.change_stage("unknown-call", "W", "yes")

        assert not outcome.ok
        assert outcome.error.kind == FlowErrorKind.MISSING_SESSION_CONTEXT
        assert outcome.error.retryable
        assert outcome.error.session_id == "unknown-call"

    def test_node_not_found(self, store, workflow_graph):
        store.register("real-call-42", workflow_graph)
        orchestrator = FlowOrchestrator(store)

        outcome = orchestrator.change_stage("real-call-42", "deleted-node", "yes")

        assert outcome.error.kind == FlowErrorKind.NODE_NOT_FOUND
        assert outcome.error.session_id == "real-call-42"
        assert not outcome.error.retryable


class TestEvaluateCondition:
    """Test evaluate_condition()."""

    def test_result(self, store):
        evaluation = FlowOrchestrator(store).evaluate_condition(" Yes ", "yes", "equals")

        assert evaluation.ok
        assert evaluation.result is True

    def test_unsupported_operator(self, store):
        evaluation = FlowOrchestrator(store).evaluate_condition("5", "3", "greater_than")

        assert not evaluation.ok
        assert evaluation.result is False
        assert evaluation.error.kind == FlowErrorKind.UNSUPPORTED_OPERATOR
