"""
Flow API routes.

Endpoints called by the voice runtime's tools (change-stage,
evaluate-condition) and by the call launcher (call creation, session
registration).
This layer owns wire framing: status codes, the new-stage header and the
spoken fallback text returned with errors.
"""

import logging
from functools import lru_cache
from typing import Annotated

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from agent.flow.errors import FlowError, FlowErrorKind
from agent.flow.models import FlowGraph
from agent.flow.orchestrator import FlowOrchestrator, TurnOutcome
from agent.flow.stage_generator import build_call_request
from agent.session import get_session_store
from api.models.flow_requests import (
    ChangeStageRequest,
    CreateCallRequest,
    EvaluateConditionRequest,
    RegisterAliasRequest,
    RegisterSessionRequest,
)
from shared.ultravox_client import UltravoxClient

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/flow", tags=["flow"])

RESPONSE_TYPE_HEADER = "X-Ultravox-Response-Type"
NEW_STAGE = "new-stage"

ERROR_STATUS = {
    FlowErrorKind.MISSING_SESSION_CONTEXT: 404,
    FlowErrorKind.NODE_NOT_FOUND: 404,
    FlowErrorKind.UNSUPPORTED_OPERATOR: 400,
    FlowErrorKind.TARGET_NODE_MISSING: 500,
    FlowErrorKind.INVALID_GRAPH_STRUCTURE: 422,
}

# Spoken by the agent when a turn cannot be completed
FALLBACK_TEXT = {
    FlowErrorKind.MISSING_SESSION_CONTEXT: (
        "I'm sorry, I lost track of our conversation for a moment. Could you say that again?"
    ),
    FlowErrorKind.NODE_NOT_FOUND: (
        "I'm sorry, I couldn't find where we were in the conversation. Let's continue from here."
    ),
    FlowErrorKind.UNSUPPORTED_OPERATOR: (
        "I'm sorry, I couldn't check that answer. Let's continue."
    ),
    FlowErrorKind.TARGET_NODE_MISSING: (
        "I'm sorry, something went wrong moving to the next step. Let's continue."
    ),
    FlowErrorKind.INVALID_GRAPH_STRUCTURE: (
        "I'm sorry, this conversation is not set up correctly."
    ),
}


@lru_cache
def get_orchestrator() -> FlowOrchestrator:
    return FlowOrchestrator(get_session_store())


def get_ultravox_client() -> UltravoxClient:
    return UltravoxClient()


def error_response(error: FlowError) -> JSONResponse:
    return JSONResponse(
        status_code=ERROR_STATUS[error.kind],
        content={
            "error": error.kind.value,
            "detail": error.detail,
            "toolResultText": FALLBACK_TEXT[error.kind],
        },
    )


def invalid_graph_response(error: FlowError, issues: list[dict]) -> JSONResponse:
    return JSONResponse(
        status_code=ERROR_STATUS[error.kind],
        content={
            "error": error.kind.value,
            "detail": error.detail,
            "issues": issues,
        },
    )


def stage_response(outcome: TurnOutcome) -> JSONResponse:
    content = outcome.stage.to_wire()
    if outcome.end_of_flow:
        return JSONResponse(status_code=200, content=content)
    return JSONResponse(
        status_code=200,
        content=content,
        headers={RESPONSE_TYPE_HEADER: NEW_STAGE},
    )


@router.post("/sessions")
async def register_session(
    request: Request,
    orchestrator: Annotated[FlowOrchestrator, Depends(get_orchestrator)],
) -> JSONResponse:
    """
    Register the flow graph for a call.

    **Errors:**
    - **400**: Malformed payload
    - **422**: Graph fails structural validation
    """
    payload = RegisterSessionRequest.model_validate_json(await request.body())

    start = orchestrator.start_session(payload.call_id, payload.flow_data)
    issues = [issue.to_dict() for issue in start.issues]

    if not start.ok:
        return invalid_graph_response(start.error, issues)

    return JSONResponse(
        status_code=200,
        content={
            "callId": start.session_id,
            "initialNodeId": start.initial_node_id,
            "issues": issues,
            "stage": start.stage.to_wire() if start.stage else None,
        },
    )


@router.post("/calls")
async def create_call(
    request: Request,
    orchestrator: Annotated[FlowOrchestrator, Depends(get_orchestrator)],
    ultravox: Annotated[UltravoxClient, Depends(get_ultravox_client)],
) -> JSONResponse:
    """
    Create an Ultravox call for a flow and register the flow under its call id.

    The flow is serialized into the call's metadata, so it can be recovered
    by change-stage if this service loses the binding.

    **Errors:**
    - **400**: Malformed payload
    - **422**: Graph fails structural validation
    - **502**: Ultravox rejected or could not be reached
    - **503**: Ultravox API key not configured
    """
    payload = CreateCallRequest.model_validate_json(await request.body())
    graph = payload.flow_data

    issues, error = orchestrator.check_graph(graph)
    issue_dicts = [issue.to_dict() for issue in issues]
    if error is not None:
        return invalid_graph_response(error, issue_dicts)

    if not graph.nodes:
        return JSONResponse(
            status_code=422,
            content={"error": FlowErrorKind.INVALID_GRAPH_STRUCTURE.value, "detail": "Flow has no nodes"},
        )

    if not ultravox.is_configured:
        return JSONResponse(status_code=503, content={"error": "Ultravox API key not configured"})

    try:
        call = await ultravox.create_call(build_call_request(graph, base_url=orchestrator.base_url))
    except httpx.HTTPStatusError as e:
        return JSONResponse(
            status_code=502,
            content={"error": "Ultravox API error", "detail": e.response.text},
        )
    except httpx.HTTPError as e:
        return JSONResponse(
            status_code=502,
            content={"error": "Ultravox API unreachable", "detail": str(e)},
        )

    call_id = call.get("callId")
    if not call_id:
        logger.error(f"Ultravox call response has no callId: {call}")
        return JSONResponse(status_code=502, content={"error": "Ultravox response missing callId"})

    start = orchestrator.start_session(call_id, graph)

    return JSONResponse(
        status_code=200,
        content={
            "callId": call_id,
            "joinUrl": call.get("joinUrl"),
            "initialNodeId": start.initial_node_id,
            "issues": issue_dicts,
        },
    )


@router.post("/sessions/alias")
async def register_alias(
    request: Request,
    orchestrator: Annotated[FlowOrchestrator, Depends(get_orchestrator)],
) -> JSONResponse:
    payload = RegisterAliasRequest.model_validate_json(await request.body())
    orchestrator.store.register_alias(payload.real_id, payload.placeholder_id)
    return JSONResponse(
        status_code=200,
        content={
            "status": "aliased",
            "realId": payload.real_id,
            "placeholderId": payload.placeholder_id,
        },
    )


@router.delete("/sessions/{session_id}")
async def clear_session(
    session_id: str,
    orchestrator: Annotated[FlowOrchestrator, Depends(get_orchestrator)],
) -> JSONResponse:
    orchestrator.store.clear(session_id)
    return JSONResponse(status_code=200, content={"status": "cleared", "callId": session_id})


async def _recover_session(
    orchestrator: FlowOrchestrator,
    ultravox: UltravoxClient,
    call_id: str | None,
) -> bool:
    """Re-fetch a call's flow from Ultravox metadata, validate it and re-register it."""
    if not call_id:
        return False

    flow_data = await ultravox.fetch_flow_data(call_id)
    if flow_data is None:
        return False

    try:
        graph = FlowGraph.model_validate(flow_data)
    except ValidationError as e:
        logger.error(f"Flow metadata for call {call_id} is not a valid graph: {e}")
        return False

    start = orchestrator.start_session(call_id, graph)
    if not start.ok:
        logger.error(f"Flow metadata for call {call_id} was rejected: {start.error}")
        return False

    logger.info(f"Recovered flow for call {call_id} from Ultravox metadata")
    return True


@router.post("/change-stage")
async def change_stage(
    request: Request,
    orchestrator: Annotated[FlowOrchestrator, Depends(get_orchestrator)],
    ultravox: Annotated[UltravoxClient, Depends(get_ultravox_client)],
) -> JSONResponse:
    """
    changeStage tool endpoint: resolve the next node and return its stage.

    **Returns:**
    - **200** + `X-Ultravox-Response-Type: new-stage`: next stage
    - **200** without the header: closing stage (end of flow)

    **Errors:**
    - **404**: No flow for this call, or unknown current node
    - **400**: Unsupported condition operator
    - **500**: Edge points at a missing node
    """
    payload = ChangeStageRequest.model_validate_json(await request.body())

    outcome = orchestrator.change_stage(
        payload.call_id,
        payload.current_node_id,
        payload.user_response,
    )

    if outcome.error is not None and outcome.error.retryable:
        if await _recover_session(orchestrator, ultravox, payload.call_id):
            outcome = orchestrator.change_stage(
                payload.call_id,
                payload.current_node_id,
                payload.user_response,
            )

    if outcome.error is not None:
        return error_response(outcome.error)

    return stage_response(outcome)


@router.post("/evaluate-condition")
async def evaluate_condition(
    request: Request,
    orchestrator: Annotated[FlowOrchestrator, Depends(get_orchestrator)],
) -> JSONResponse:
    """evaluateCondition tool endpoint."""
    payload = EvaluateConditionRequest.model_validate_json(await request.body())

    evaluation = orchestrator.evaluate_condition(
        payload.user_input,
        payload.condition_value,
        payload.operator,
    )
    if evaluation.error is not None:
        return error_response(evaluation.error)

    return JSONResponse(
        status_code=200,
        content={
            "result": evaluation.result,
            "userInput": evaluation.user_input,
            "conditionValue": evaluation.condition_value,
            "operator": evaluation.operator,
        },
    )
