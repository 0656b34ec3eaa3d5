"""
Test configuration and fixtures.

This module sets up test environment and provides shared fixtures for all tests.
"""

import os

import pytest

# Must be set BEFORE any imports of shared.config
os.environ["REDIS_URL"] = "redis://localhost:6379/0"
os.environ["SESSION_STORE_BACKEND"] = "memory"
os.environ["ULTRAVOX_API_KEY"] = ""
os.environ["PUBLIC_BASE_URL"] = "https://flows.example.com"

from agent.flow.models import FlowGraph  # noqa: E402
from agent.session.store import InMemorySessionStore  # noqa: E402

PLACEHOLDER_IDS = ["call-1234567890", "new_call", "new call", "current_call"]


@pytest.fixture(autouse=True)
def reset_cached_singletons():
    """Drop cached settings/stores so each test starts from a clean process state."""
    yield
    from agent.session import get_session_store
    from api.routes.flow import get_orchestrator
    from shared.config import get_settings

    get_orchestrator.cache_clear()
    get_session_store.cache_clear()
    get_settings.cache_clear()


@pytest.fixture
def store() -> InMemorySessionStore:
    return InMemorySessionStore(placeholder_ids=PLACEHOLDER_IDS)


@pytest.fixture
def workflow_graph_data() -> dict:
    """start -> workflow W with two labeled transitions -> A / B (editor wire format)."""
    return {
        "nodes": [
            {"id": "start", "type": "start", "data": {"content": "Hi, this is Sam from the clinic."}},
            {
                "id": "W",
                "type": "workflow",
                "data": {
                    "nodeTitle": "Triage",
                    "content": "Find out why the caller is calling.",
                    "transitions": [
                        {"id": "t1", "label": "user wants to reschedule", "triggerType": "user_response"},
                        {"id": "t2", "label": "user is not interested", "triggerType": "user_response"},
                    ],
                },
            },
            {"id": "A", "type": "message", "data": {"content": "Let's find you a new time."}},
            {"id": "B", "type": "ending", "data": {"content": "No problem, goodbye!"}},
        ],
        "edges": [
            {"id": "e0", "source": "start", "target": "W"},
            {"id": "e1", "source": "W", "target": "A"},
            {"id": "e2", "source": "W", "target": "B"},
        ],
        "ultravoxSettings": {"voice": "Jessica", "temperature": 0.3},
    }


@pytest.fixture
def workflow_graph(workflow_graph_data) -> FlowGraph:
    return FlowGraph.model_validate(workflow_graph_data)


@pytest.fixture
def condition_graph() -> FlowGraph:
    return FlowGraph.model_validate({
        "nodes": [
            {"id": "start", "type": "start", "data": {}},
            {
                "id": "C",
                "type": "condition",
                "data": {"condition": {"operator": "contains", "value": "surgery"}},
            },
            {"id": "no-surgery", "type": "message", "data": {"content": "Great."}},
            {"id": "surgery", "type": "message", "data": {"content": "Let me transfer you."}},
        ],
        "edges": [
            {"id": "e0", "source": "start", "target": "C"},
            {"id": "e_false", "source": "C", "target": "no-surgery", "sourceHandle": "false"},
            {"id": "e_true", "source": "C", "target": "surgery", "sourceHandle": "true"},
        ],
    })


@pytest.fixture
def question_graph() -> FlowGraph:
    return FlowGraph.model_validate({
        "nodes": [
            {
                "id": "Q",
                "type": "question",
                "data": {
                    "question": "Which plan are you on?",
                    "options": [
                        {"id": "opt-basic-plus", "text": "basic plus"},
                        {"id": "opt-basic", "text": "basic"},
                        {"id": "opt-premium", "text": "Premium"},
                    ],
                },
            },
            {"id": "P1", "type": "message", "data": {"content": "Basic plus it is."}},
            {"id": "P2", "type": "message", "data": {"content": "Basic it is."}},
            {"id": "P3", "type": "message", "data": {"content": "Premium it is."}},
        ],
        "edges": [
            {"id": "q1", "source": "Q", "target": "P1"},
            {"id": "q2", "source": "Q", "target": "P2"},
            {"id": "q3", "source": "Q", "target": "P3"},
        ],
    })
