"""Unit tests for flow graph queries and validation."""

from agent.flow.graph import (
    IssueCode,
    IssueSeverity,
    find_start_node,
    get_node,
    get_outgoing_edges,
    has_errors,
    reachable_node_ids,
    validate,
)
from agent.flow.models import FlowGraph


def _codes(issues):
    return [issue.code for issue in issues]


class TestQueries:
    """Test pure graph queries."""

    def test_get_node(self, workflow_graph):
        assert get_node(workflow_graph, "W").type == "workflow"
        assert get_node(workflow_graph, "missing") is None
        assert get_node(workflow_graph, None) is None

    def test_outgoing_edges_in_declaration_order(self, workflow_graph):
        """Test outgoing edges keep declaration order."""
        edges = get_outgoing_edges(workflow_graph, "W")
        assert [edge.id for edge in edges] == ["e1", "e2"]

    def test_outgoing_edges_of_leaf(self, workflow_graph):
        assert get_outgoing_edges(workflow_graph, "A") == []

    def test_find_start_node(self, workflow_graph, question_graph):
        assert find_start_node(workflow_graph).id == "start"
        assert find_start_node(question_graph) is None

    def test_reachable_node_ids(self, workflow_graph):
        assert reachable_node_ids(workflow_graph) == {"start", "W", "A", "B"}
        assert reachable_node_ids(workflow_graph, "W") == {"W", "A", "B"}
        assert reachable_node_ids(workflow_graph, "nope") == set()


class TestValidate:
    """Test structural validation."""

    def test_clean_graph(self, workflow_graph):
        """Test a well-formed graph has no issues."""
        assert validate(workflow_graph) == []

    def test_duplicate_node_ids(self):
        graph = FlowGraph.model_validate({
            "nodes": [
                {"id": "start", "type": "start"},
                {"id": "a", "type": "message"},
                {"id": "a", "type": "ending"},
            ],
            "edges": [{"id": "e", "source": "start", "target": "a"}],
        })

        issues = validate(graph)

        assert IssueCode.DUPLICATE_NODE_ID in _codes(issues)
        assert has_errors(issues)

    def test_dangling_edges(self):
        """Test edges with unknown endpoints are errors."""
        graph = FlowGraph.model_validate({
            "nodes": [{"id": "start", "type": "start"}],
            "edges": [
                {"id": "e1", "source": "start", "target": "ghost"},
                {"id": "e2", "source": "phantom", "target": "start"},
            ],
        })

        issues = validate(graph)
        codes = _codes(issues)

        assert IssueCode.DANGLING_EDGE_TARGET in codes
        assert IssueCode.DANGLING_EDGE_SOURCE in codes
        dangling = next(i for i in issues if i.code == IssueCode.DANGLING_EDGE_TARGET)
        assert dangling.edge_id == "e1"
        assert dangling.severity == IssueSeverity.ERROR

    def test_multiple_start_nodes(self):
        graph = FlowGraph.model_validate({
            "nodes": [{"id": "s1", "type": "start"}, {"id": "s2", "type": "start"}],
            "edges": [],
        })

        assert IssueCode.MULTIPLE_START_NODES in _codes(validate(graph))

    def test_missing_start_is_warning(self, question_graph):
        """Test a graph without start only warns."""
        issues = validate(question_graph)

        assert _codes(issues) == [IssueCode.MISSING_START_NODE]
        assert not has_errors(issues)

    def test_unreachable_node_warning(self):
        graph = FlowGraph.model_validate({
            "nodes": [
                {"id": "start", "type": "start"},
                {"id": "a", "type": "message"},
                {"id": "orphan", "type": "message"},
            ],
            "edges": [{"id": "e1", "source": "start", "target": "a"}],
        })

        issues = validate(graph)

        assert len(issues) == 1
        assert issues[0].code == IssueCode.UNREACHABLE_NODE
        assert issues[0].node_id == "orphan"
        assert issues[0].severity == IssueSeverity.WARNING

    def test_transition_edge_count_mismatch(self, workflow_graph_data):
        """Test more transitions than edges is reported as a warning."""
        workflow_graph_data["nodes"][1]["data"]["transitions"].append(
            {"id": "t3", "label": "user wants a human agent"}
        )
        graph = FlowGraph.model_validate(workflow_graph_data)

        issues = validate(graph)

        assert _codes(issues) == [IssueCode.TRANSITION_EDGE_COUNT_MISMATCH]
        assert issues[0].node_id == "W"
        assert not has_errors(issues)

    def test_unknown_transition_edge_id(self, workflow_graph_data):
        """Test an edgeId that does not leave the node is reported."""
        workflow_graph_data["nodes"][1]["data"]["transitions"][0]["edgeId"] = "e0"
        graph = FlowGraph.model_validate(workflow_graph_data)

        issues = validate(graph)

        assert _codes(issues) == [IssueCode.UNKNOWN_TRANSITION_EDGE]
        assert issues[0].edge_id == "e0"

    def test_issue_to_dict(self, question_graph):
        issue = validate(question_graph)[0]

        assert issue.to_dict() == {
            "severity": "warning",
            "code": "missing_start_node",
            "message": "Graph has no start node",
            "node_id": None,
            "edge_id": None,
        }
