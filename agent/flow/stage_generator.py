"""
Stage config generator.

Compiles "the node to enter next" into the stage payload the voice runtime
needs to behave like that node: system prompt, tool descriptors and voice
parameters.

Prompt precedence (first applicable wins):
1. The node's custom prompt, unless it is the editor's placeholder text
2. A template for the node type, filled with the node's content
3. A generic "proceed and call the transition tool" instruction

Every prompt ends with the transition-tool trailer carrying the literal node
id; the next turn's currentNodeId comes from it.
"""

import json
import logging
from typing import Any

from jinja2 import Environment, StrictUndefined
from pydantic import ConfigDict, Field

from agent.flow.graph import find_start_node, get_node, get_outgoing_edges
from agent.flow.models import (
    CALENDAR_NODE_TYPES,
    DEFAULT_CAL_TIMEZONE,
    BranchingNodeData,
    CalendarNodeData,
    ConditionNodeData,
    FlowGraph,
    FlowModel,
    FlowNode,
    GlobalSettings,
    NodeType,
    QuestionNodeData,
    is_placeholder_prompt,
)
from agent.flow.tool_descriptors import SelectedTool, tools_for_node
from shared.config import get_settings

logger = logging.getLogger(__name__)

MESSAGE_ROLE_USER = "MESSAGE_ROLE_USER"

END_OF_FLOW_TOOL_RESULT_TEXT = "Thank you! That completes our conversation. Have a great day!"

END_OF_FLOW_PROMPT = """You have reached the end of the conversation flow.

Thank the user for their time and let them know the conversation is complete. You may answer any final questions they have, but you no longer have access to the changeStage tool as the flow has concluded.

Be helpful and polite in your closing remarks."""

_env = Environment(
    trim_blocks=True,
    lstrip_blocks=True,
    undefined=StrictUndefined,
    autoescape=False,
)

HEADER_TEMPLATE = _env.from_string(
    """{% if global_prompt %}
GLOBAL INSTRUCTIONS:
{{ global_prompt }}

{% endif %}
You are an AI assistant helping users navigate through a conversational flow.

Current node: {{ node.type }}
Node ID: {{ node.id }}
{% if user_response %}
User's last response: "{{ user_response }}"
{% endif %}"""
)

CUSTOM_TEMPLATE = _env.from_string(
    """CUSTOM INSTRUCTIONS:
{{ prompt }}"""
)

NODE_TEMPLATES = {
    NodeType.START: _env.from_string(
        """You are starting a new conversation. {{ content or "Welcome! How can I help you today?" }}

Greet the user warmly, then use the 'changeStage' tool when you need to move to the next step in the conversation."""
    ),
    NodeType.MESSAGE: _env.from_string(
        """Deliver this message to the user: "{{ content }}"

After delivering the message, use the 'changeStage' tool to move to the next appropriate node."""
    ),
    NodeType.QUESTION: _env.from_string(
        """Ask the user this question: "{{ question }}"
{% if options %}
Available options: {{ options | join(", ") }}
{% endif %}

When you receive their response, use the 'changeStage' tool with their answer to proceed to the appropriate next node."""
    ),
    NodeType.CONDITION: _env.from_string(
        """This is a conditional node that evaluates user responses.
Condition: {{ operator }} "{{ value }}"

Evaluate the user's response against this condition (the 'evaluateCondition' tool can check it for you), then use the 'changeStage' tool to move to the appropriate next node."""
    ),
    NodeType.WORKFLOW: _env.from_string(
        """WORKFLOW INSTRUCTIONS:
{{ content }}
{% if transitions %}

Possible next steps:
{% for label in transitions %}
- {{ label }}
{% endfor %}
{% endif %}

Follow the workflow instructions above. This is your primary directive."""
    ),
    NodeType.CAL_CHECK_AVAILABILITY: _env.from_string(
        """CALENDAR AVAILABILITY:
{{ content or "Help the user find a time that works for them." }}

Ask which dates they prefer, then use the 'checkAvailability' tool with startDate (and optionally endDate) and nodeId '{{ node_id }}'. Read back the available times in the {{ timezone }} timezone."""
    ),
    NodeType.CAL_BOOK_APPOINTMENT: _env.from_string(
        """APPOINTMENT BOOKING:
{{ content or "Book the appointment the user has chosen." }}

Collect the user's full name, email address and preferred start time, then use the 'bookAppointment' tool with nodeId '{{ node_id }}'. Times are in the {{ timezone }} timezone."""
    ),
    NodeType.CAL_BOOKING_CONFIRMATION: _env.from_string(
        """BOOKING CONFIRMATION:
{{ content or "Confirm the booking details with the user before booking." }}

Use the 'bookingConfirmation' tool with nodeId '{{ node_id }}' for each step: collect the details, confirm the first name, the last name and the email spelling, then do the final confirmation."""
    ),
    NodeType.ENDING: _env.from_string(
        """{{ content or "Thank the user for their time and say goodbye." }}

This is the end of the conversation flow. Close the conversation politely."""
    ),
}

GENERIC_TEMPLATE = _env.from_string(
    """Process this node and use the 'changeStage' tool to continue the conversation flow."""
)

TRAILER_TEMPLATE = _env.from_string(
    """You have access to a 'changeStage' tool that will automatically determine the next node based on the conversation flow and user responses. When calling this tool:
- Include the user's response in the 'userResponse' parameter
- Include the current node ID '{{ node_id }}' in the 'currentNodeId' parameter
{% if session_id %}
- CRITICAL: Include the call ID '{{ session_id }}' in the 'callId' parameter
{% else %}
- CRITICAL: Include the call ID of this call in the 'callId' parameter (required)
{% endif %}
- The system will automatically determine and transition to the appropriate next node"""
)

ENDING_TRAILER_TEMPLATE = _env.from_string(
    """Current node ID: '{{ node_id }}'. This is the final node: there is no further stage to change to."""
)


class InitialMessage(FlowModel):
    role: str = MESSAGE_ROLE_USER
    text: str


class StageConfig(FlowModel):
    """
    Compiled stage for one node.

    ``node_id`` is kept for logging and is not part of the wire payload.
    """

    model_config = ConfigDict(protected_namespaces=())

    system_prompt: str
    model: str
    voice: str
    temperature: float
    language_hint: str
    selected_tools: list[SelectedTool] = Field(default_factory=list)
    initial_messages: list[InitialMessage] = Field(default_factory=list)
    tool_result_text: str | None = None
    node_id: str | None = Field(default=None, exclude=True)

    @property
    def tool_names(self) -> list[str]:
        return [tool.name for tool in self.selected_tools]

    def to_wire(self) -> dict[str, Any]:
        """Serialize in the runtime's camelCase shape."""
        return self.model_dump(by_alias=True, exclude_none=True)


def _content(node: FlowNode) -> str | None:
    """Node content, ignoring blanks and editor placeholder text."""
    for text in (node.data.content, node.data.label):
        if text and text.strip() and not is_placeholder_prompt(text):
            return text.strip()
    return None


def _render_type_template(node: FlowNode) -> str | None:
    """Render the node type's template, or None if the node lacks content for it."""
    node_type = node.node_type
    template = NODE_TEMPLATES.get(node_type)
    if template is None:
        return None

    data = node.data
    content = _content(node)

    if node_type == NodeType.MESSAGE:
        if content is None:
            return None
        return template.render(content=content)

    if node_type == NodeType.QUESTION:
        question = data.question if isinstance(data, QuestionNodeData) else None
        question = (question or "").strip() or content
        if not question:
            return None
        options = [o.text for o in data.options if o.text] if isinstance(data, QuestionNodeData) else []
        return template.render(question=question, options=options)

    if node_type == NodeType.CONDITION:
        if not isinstance(data, ConditionNodeData) or data.condition is None:
            return None
        return template.render(operator=data.condition.operator, value=data.condition.value)

    if node_type == NodeType.WORKFLOW:
        if content is None:
            return None
        transitions = (
            [t.label for t in data.transitions if t.label]
            if isinstance(data, BranchingNodeData) else []
        )
        return template.render(content=content, transitions=transitions)

    if node_type in CALENDAR_NODE_TYPES:
        timezone = data.cal_timezone if isinstance(data, CalendarNodeData) else DEFAULT_CAL_TIMEZONE
        return template.render(content=content, node_id=node.id, timezone=timezone)

    return template.render(content=content)


def build_system_prompt(
    node: FlowNode,
    *,
    session_id: str | None = None,
    user_response: str | None = None,
    global_prompt: str | None = None,
) -> str:
    """
    Assemble the full system prompt for a node.

    Args:
        node: Node being entered
        session_id: Call id to embed in the trailer (if known)
        user_response: Utterance that led here
        global_prompt: Flow-wide instructions prepended to the prompt

    Returns:
        Header, body and trailer joined by blank lines
    """
    header = HEADER_TEMPLATE.render(
        node=node,
        user_response=(user_response or "").strip() or None,
        global_prompt=(global_prompt or "").strip() or None,
    ).strip()

    override = node.data.override_prompt()
    if override is not None:
        body = CUSTOM_TEMPLATE.render(prompt=override)
    else:
        body = _render_type_template(node) or GENERIC_TEMPLATE.render()

    if node.node_type == NodeType.ENDING:
        trailer = ENDING_TRAILER_TEMPLATE.render(node_id=node.id)
    else:
        trailer = TRAILER_TEMPLATE.render(node_id=node.id, session_id=session_id)

    return f"{header}\n\n{body.strip()}\n\n{trailer.strip()}"


def compile_stage(
    node: FlowNode,
    global_settings: GlobalSettings,
    *,
    session_id: str | None = None,
    user_response: str | None = None,
    global_prompt: str | None = None,
    base_url: str | None = None,
) -> StageConfig:
    """
    Compile the stage that makes the voice runtime behave as ``node``.

    Args:
        node: Node being entered
        global_settings: Call-wide voice parameters
        session_id: Call id (embedded in the prompt trailer)
        user_response: Utterance that led to this node (seeds the stage)
        global_prompt: Flow-wide instructions
        base_url: Tool callback base URL (default: PUBLIC_BASE_URL)

    Returns:
        StageConfig ready to serialize
    """
    if base_url is None:
        base_url = get_settings().PUBLIC_BASE_URL

    data = node.data
    utterance = (user_response or "").strip()
    name = data.display_name or node.id

    stage = StageConfig(
        system_prompt=build_system_prompt(
            node,
            session_id=session_id,
            user_response=utterance,
            global_prompt=global_prompt,
        ),
        model=data.model or global_settings.model,
        voice=data.voice or global_settings.voice,
        temperature=data.temperature if data.temperature is not None else global_settings.temperature,
        language_hint=data.language_hint or global_settings.language_hint,
        selected_tools=tools_for_node(node, base_url),
        initial_messages=[InitialMessage(text=utterance)] if utterance else [],
        tool_result_text=f"Moving to {node.type} step '{name}'.",
        node_id=node.id,
    )

    logger.debug(
        f"Compiled stage for node {node.id} with tools {stage.tool_names}",
        extra={"session_id": session_id, "node_id": node.id, "node_type": node.type},
    )
    return stage


def compile_end_of_flow(global_settings: GlobalSettings) -> StageConfig:
    """Closing stage used when the flow has nowhere left to go. Carries no tools."""
    return StageConfig(
        system_prompt=END_OF_FLOW_PROMPT,
        model=global_settings.model,
        voice=global_settings.voice,
        temperature=global_settings.temperature,
        language_hint=global_settings.language_hint,
        selected_tools=[],
        tool_result_text=END_OF_FLOW_TOOL_RESULT_TEXT,
    )


def select_initial_node(graph: FlowGraph) -> FlowNode | None:
    """
    Pick the node the call starts on.

    The start node, unless it leads straight into a workflow node that the
    author has actually written (custom prompt or content): then that
    workflow node, so the call opens with the real script.
    """
    start = find_start_node(graph)
    if start is None:
        return graph.nodes[0] if graph.nodes else None

    edges = get_outgoing_edges(graph, start.id)
    if not edges:
        return start

    first = get_node(graph, edges[0].target)
    if first is None or first.node_type != NodeType.WORKFLOW:
        return start

    if first.data.override_prompt() is not None or _content(first) is not None:
        return first
    return start


def build_call_request(
    graph: FlowGraph,
    session_id: str | None = None,
    base_url: str | None = None,
) -> dict[str, Any]:
    """
    Build the call-creation payload for the voice runtime.

    The flow graph is serialized into call metadata so the graph can be
    recovered from the call if this service loses its session binding.

    Args:
        graph: Flow graph for the call
        session_id: Call id, if already known
        base_url: Tool callback base URL

    Returns:
        JSON-ready dict (initial stage fields plus call options and metadata)

    Raises:
        ValueError: If the graph has no nodes
    """
    initial_node = select_initial_node(graph)
    if initial_node is None:
        raise ValueError("Cannot build a call request for an empty flow")

    settings = graph.global_settings
    stage = compile_stage(
        initial_node,
        settings,
        session_id=session_id,
        global_prompt=graph.global_prompt,
        base_url=base_url,
    )

    start = find_start_node(graph)
    request = stage.to_wire()
    request.pop("toolResultText", None)
    request.update({
        "firstSpeaker": settings.first_speaker,
        "maxDuration": settings.max_duration,
        "recordingEnabled": settings.recording_enabled,
        "metadata": {
            "flowData": json.dumps(graph.to_wire()),
            "startNodeId": start.id if start else initial_node.id,
            "initialNodeId": initial_node.id,
        },
    })
    return request
