"""Unit tests for JSON logging and flow errors."""

import json
import logging
import sys

from agent.flow.errors import FlowError, FlowErrorKind
from shared.logging_config import JSONFormatter, configure_logging


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="agent.flow.resolver",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Resolved %s -> %s",
        args=("W", "A"),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Test structured log output."""

    def test_base_fields(self):
        payload = json.loads(JSONFormatter().format(_record()))

        assert payload["level"] == "INFO"
        assert payload["logger"] == "agent.flow.resolver"
        assert payload["message"] == "Resolved W -> A"
        assert "timestamp" in payload
        assert "session_id" not in payload

    def test_context_fields(self):
        """Test session/node context from extra= is included."""
        record = _record(session_id="call-42", node_id="W", node_type="workflow")

        payload = json.loads(JSONFormatter().format(record))

        assert payload["session_id"] == "call-42"
        assert payload["node_id"] == "W"
        assert payload["node_type"] == "workflow"

    def test_exception_included(self):
        try:
            raise FlowError(kind=FlowErrorKind.NODE_NOT_FOUND, detail="gone")
        except FlowError:
            record = _record()
            record.exc_info = sys.exc_info()

        payload = json.loads(JSONFormatter().format(record))

        assert "node_not_found: gone" in payload["exception"]

    def test_configure_logging_installs_json_handler(self):
        configure_logging()

        root = logging.getLogger()
        assert any(isinstance(h.formatter, JSONFormatter) for h in root.handlers)


class TestFlowError:
    """Test FlowError."""

    def test_only_missing_session_is_retryable(self):
        for kind in FlowErrorKind:
            error = FlowError(kind=kind, detail="x")
            assert error.retryable is (kind == FlowErrorKind.MISSING_SESSION_CONTEXT)

    def test_to_dict(self):
        error = FlowError(
            kind=FlowErrorKind.TARGET_NODE_MISSING,
            detail="Edge 'e1' points to missing node 'ghost'",
            node_id="ghost",
            session_id="call-42",
        )

        assert error.to_dict() == {
            "kind": "target_node_missing",
            "detail": "Edge 'e1' points to missing node 'ghost'",
            "node_id": "ghost",
            "session_id": "call-42",
            "retryable": False,
        }
        assert str(error) == "target_node_missing: Edge 'e1' points to missing node 'ghost'"
