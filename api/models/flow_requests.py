"""Pydantic models for flow API request payloads (camelCase on the wire)."""

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from agent.flow.models import FlowGraph


class FlowRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class RegisterSessionRequest(FlowRequest):
    """Register the flow graph of a newly created call."""

    call_id: str = Field(min_length=1)
    flow_data: FlowGraph


class RegisterAliasRequest(FlowRequest):
    real_id: str = Field(min_length=1)
    placeholder_id: str = Field(min_length=1)


class ChangeStageRequest(FlowRequest):
    """
    Body of the changeStage tool call.

    Format: {
        "userResponse": "yes I'd like to book",
        "currentNodeId": "node-3",
        "callId": "3f1c..."  // may be a placeholder or missing
    }
    """

    user_response: str | None = None
    current_node_id: str = Field(min_length=1)
    call_id: str | None = None


class EvaluateConditionRequest(FlowRequest):
    user_input: str
    condition_value: str
    operator: str


class CreateCallRequest(FlowRequest):
    """Create a voice call that runs ``flow_data``."""

    flow_data: FlowGraph
