"""
Flow graph data models.

This module defines the static representation of an authored conversation
flow, as produced by the flow editor and consumed once at call start:
- NodeType: Enum of known node types
- TriggerType: Enum of transition trigger kinds
- FlowNode: A conversational step, with type-specific data
- Edge: A directed connection between two nodes
- GlobalSettings: Call-wide voice/model parameters
- FlowGraph: The complete graph snapshot

Node data is a tagged union keyed by node type: each node type parses its
``data`` bag into its own model, so every consumer only sees fields that
exist for that type. Unknown node types keep a plain NodeData.

All models are frozen. The editor's camelCase keys (``customPrompt``,
``sourceHandle``, ``ultravoxSettings``...) are accepted alongside snake_case.
"""

from enum import Enum
from typing import Any

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    SerializeAsAny,
    model_validator,
)
from pydantic.alias_generators import to_camel

from shared.config import get_settings

# Text the editor pre-fills into new nodes; means "not written yet"
PLACEHOLDER_PROMPT_MARKER = "👋 Click here to add your custom AI assistant prompt"


class NodeType(str, Enum):
    """Known node types. Nodes may carry other (passthrough) types."""

    START = "start"
    MESSAGE = "message"
    QUESTION = "question"
    CONDITION = "condition"
    WORKFLOW = "workflow"
    CAL_CHECK_AVAILABILITY = "cal_check_availability"
    CAL_BOOK_APPOINTMENT = "cal_book_appointment"
    CAL_BOOKING_CONFIRMATION = "cal_booking_confirmation"
    ENDING = "ending"


class TriggerType(str, Enum):
    """How a transition is meant to fire."""

    USER_RESPONSE = "user_response"
    CONDITION_MET = "condition_met"
    TIMEOUT = "timeout"
    MANUAL = "manual"


class ConditionOperator(str, Enum):
    """Operators supported by condition nodes."""

    EQUALS = "equals"
    CONTAINS = "contains"


# Node types whose outgoing edge is picked by matching the utterance
# against the node's transition labels
BRANCHING_NODE_TYPES: frozenset[NodeType] = frozenset({
    NodeType.WORKFLOW,
    NodeType.CAL_CHECK_AVAILABILITY,
    NodeType.CAL_BOOK_APPOINTMENT,
})

CALENDAR_NODE_TYPES: frozenset[NodeType] = frozenset({
    NodeType.CAL_CHECK_AVAILABILITY,
    NodeType.CAL_BOOK_APPOINTMENT,
    NodeType.CAL_BOOKING_CONFIRMATION,
})

DEFAULT_CAL_TIMEZONE = "America/Los_Angeles"


class FlowModel(BaseModel):
    """Base for all flow models: frozen, camelCase on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


# =============================================================================
# Node data (tagged union by node type)
# =============================================================================


class NodeData(FlowModel):
    """
    Fields shared by every node type.

    Extra editor keys are kept so a passthrough node survives a round trip.
    """

    model_config = ConfigDict(extra="allow")

    label: str | None = None
    node_title: str | None = None
    content: str | None = None
    custom_prompt: str | None = None
    description: str | None = None

    # Per-node stage overrides (fall back to GlobalSettings)
    voice: str | None = None
    model: str | None = None
    temperature: float | None = None
    language_hint: str | None = None

    @property
    def display_name(self) -> str | None:
        return self.node_title or self.label

    def override_prompt(self) -> str | None:
        """Return the custom prompt if the author actually wrote one."""
        text = (self.custom_prompt or "").strip()
        if not text or is_placeholder_prompt(text):
            return None
        return text


class ResponseOption(FlowModel):
    id: str = ""
    text: str = ""


class QuestionNodeData(NodeData):
    question: str | None = None
    options: list[ResponseOption] = Field(default_factory=list)


class Condition(FlowModel):
    """
    Condition evaluated against the user's utterance.

    ``operator`` is kept as free text; unsupported operators are reported
    when the node is resolved.
    """

    operator: str = ConditionOperator.EQUALS.value
    value: str = ""
    question_node_id: str | None = None


class ConditionNodeData(NodeData):
    condition: Condition | None = None


class Transition(FlowModel):
    """
    A labeled way out of a branching node.

    Without ``edge_id`` the i-th transition maps to the i-th outgoing edge.
    """

    id: str = ""
    label: str = ""
    trigger_type: TriggerType = TriggerType.USER_RESPONSE
    edge_id: str | None = None


class BranchingNodeData(NodeData):
    transitions: list[Transition] = Field(default_factory=list)


class CalendarNodeData(BranchingNodeData):
    cal_event_type_id: str | None = None
    cal_timezone: str = DEFAULT_CAL_TIMEZONE


NODE_DATA_MODELS: dict[NodeType, type[NodeData]] = {
    NodeType.START: NodeData,
    NodeType.MESSAGE: NodeData,
    NodeType.QUESTION: QuestionNodeData,
    NodeType.CONDITION: ConditionNodeData,
    NodeType.WORKFLOW: BranchingNodeData,
    NodeType.CAL_CHECK_AVAILABILITY: CalendarNodeData,
    NodeType.CAL_BOOK_APPOINTMENT: CalendarNodeData,
    NodeType.CAL_BOOKING_CONFIRMATION: CalendarNodeData,
    NodeType.ENDING: NodeData,
}


def is_placeholder_prompt(text: str | None) -> bool:
    return bool(text) and PLACEHOLDER_PROMPT_MARKER in text


def parse_node_type(value: str) -> NodeType | None:
    try:
        return NodeType(value)
    except ValueError:
        return None


def node_data_model_for(node_type: str) -> type[NodeData]:
    known = parse_node_type(node_type)
    if known is None:
        return NodeData
    return NODE_DATA_MODELS[known]


# =============================================================================
# Graph
# =============================================================================


class FlowNode(FlowModel):
    """A single conversational step."""

    model_config = ConfigDict(extra="ignore")

    id: str
    type: str
    data: SerializeAsAny[NodeData] = Field(default_factory=NodeData)

    @model_validator(mode="before")
    @classmethod
    def _parse_typed_data(cls, values: Any) -> Any:
        """Parse the raw data bag into the model registered for the node type."""
        if not isinstance(values, dict):
            return values

        raw_data = values.get("data")
        if raw_data is None:
            raw_data = {}
        if isinstance(raw_data, dict):
            data_model = node_data_model_for(str(values.get("type", "")))
            values = {**values, "data": data_model.model_validate(raw_data)}
        return values

    @property
    def node_type(self) -> NodeType | None:
        """Known node type, or None for passthrough types."""
        return parse_node_type(self.type)

    @property
    def is_branching(self) -> bool:
        return self.node_type in BRANCHING_NODE_TYPES

    @property
    def is_ending(self) -> bool:
        return self.node_type == NodeType.ENDING


class Edge(FlowModel):
    model_config = ConfigDict(extra="ignore")

    id: str = ""
    source: str
    target: str
    source_handle: str | None = None
    target_handle: str | None = None
    label: str | None = None


class GlobalSettings(FlowModel):
    """Call-wide stage parameters. Defaults come from application settings."""

    voice: str = Field(default_factory=lambda: get_settings().DEFAULT_VOICE)
    model: str = Field(default_factory=lambda: get_settings().DEFAULT_MODEL)
    temperature: float = Field(default_factory=lambda: get_settings().DEFAULT_TEMPERATURE)
    language_hint: str = Field(default_factory=lambda: get_settings().DEFAULT_LANGUAGE_HINT)
    max_duration: str = Field(default_factory=lambda: get_settings().DEFAULT_MAX_DURATION)
    recording_enabled: bool = True
    first_speaker: str = "FIRST_SPEAKER_AGENT"


class FlowGraph(FlowModel):
    """
    The authored flow graph for one call scenario.

    Order of ``nodes`` and ``edges`` is preserved: outgoing edge order is
    meaningful for transition resolution.
    """

    model_config = ConfigDict(extra="ignore")

    nodes: list[FlowNode] = Field(default_factory=list)
    edges: list[Edge] = Field(default_factory=list)
    global_settings: GlobalSettings = Field(
        default_factory=GlobalSettings,
        validation_alias=AliasChoices("globalSettings", "ultravoxSettings", "global_settings"),
        serialization_alias="globalSettings",
    )
    global_prompt: str | None = None

    def to_wire(self) -> dict[str, Any]:
        """Serialize with editor (camelCase) keys."""
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)
