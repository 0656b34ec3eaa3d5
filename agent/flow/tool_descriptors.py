"""
Tool descriptors attached to compiled stages.

The voice runtime calls these HTTP tools back on this service. Descriptors are
pydantic models that serialize to the runtime's camelCase shape:

    {"temporaryTool": {"modelToolName": ..., "description": ...,
                       "dynamicParameters": [...], "http": {...}}}

The calendar tools are only described here; the booking backend that serves
them is a separate service reachable under the same base URL.
"""

from pydantic import ConfigDict, Field

from agent.flow.models import (
    CALENDAR_NODE_TYPES,
    ConditionOperator,
    FlowModel,
    FlowNode,
    NodeType,
)

CHANGE_STAGE_TOOL = "changeStage"
EVALUATE_CONDITION_TOOL = "evaluateCondition"
CHECK_AVAILABILITY_TOOL = "checkAvailability"
BOOK_APPOINTMENT_TOOL = "bookAppointment"
BOOKING_CONFIRMATION_TOOL = "bookingConfirmation"

CHANGE_STAGE_PATH = "/flow/change-stage"
EVALUATE_CONDITION_PATH = "/flow/evaluate-condition"
CHECK_AVAILABILITY_PATH = "/cal/check-availability"
BOOK_APPOINTMENT_PATH = "/cal/book-appointment"
BOOKING_CONFIRMATION_PATH = "/cal/booking-confirmation"

PARAMETER_LOCATION_BODY = "PARAMETER_LOCATION_BODY"

CONFIRMATION_STEPS = [
    "collect",
    "confirm_first_name",
    "confirm_last_name",
    "confirm_email",
    "final_confirmation",
]


class ParameterSchema(FlowModel):
    type: str = "string"
    description: str = ""
    enum: list[str] | None = None


class DynamicParameter(FlowModel):
    name: str
    location: str = PARAMETER_LOCATION_BODY
    parameter_schema: ParameterSchema = Field(alias="schema")
    required: bool = False


class HttpTarget(FlowModel):
    base_url_pattern: str
    http_method: str = "POST"
    headers: dict[str, str] | None = None


class TemporaryTool(FlowModel):
    model_config = ConfigDict(protected_namespaces=())

    model_tool_name: str
    description: str
    dynamic_parameters: list[DynamicParameter] = Field(default_factory=list)
    http: HttpTarget


class SelectedTool(FlowModel):
    """One entry of a stage's ``selectedTools`` list."""

    temporary_tool: TemporaryTool

    @property
    def name(self) -> str:
        return self.temporary_tool.model_tool_name


def _param(
    name: str,
    description: str,
    required: bool = False,
    type_: str = "string",
    enum: list[str] | None = None,
) -> DynamicParameter:
    return DynamicParameter(
        name=name,
        parameter_schema=ParameterSchema(type=type_, description=description, enum=enum),
        required=required,
    )


def _tool(
    name: str,
    description: str,
    parameters: list[DynamicParameter],
    base_url: str,
    path: str,
) -> SelectedTool:
    return SelectedTool(
        temporary_tool=TemporaryTool(
            model_tool_name=name,
            description=description,
            dynamic_parameters=parameters,
            http=HttpTarget(
                base_url_pattern=f"{base_url.rstrip('/')}{path}",
                headers={"Content-Type": "application/json"},
            ),
        )
    )


def change_stage_tool(base_url: str) -> SelectedTool:
    return _tool(
        CHANGE_STAGE_TOOL,
        "Navigate to the next stage in the conversation flow based on user "
        "responses and current node transitions.",
        [
            _param("userResponse", "The user's response or input that triggered the stage change", True),
            _param("currentNodeId", "The ID of the current node in the flow", True),
            _param("callId", "The unique identifier for this call session", True),
        ],
        base_url,
        CHANGE_STAGE_PATH,
    )


def evaluate_condition_tool(base_url: str) -> SelectedTool:
    return _tool(
        EVALUATE_CONDITION_TOOL,
        "Evaluate a condition against user input",
        [
            _param("userInput", "The user input to evaluate", True),
            _param("conditionValue", "The value to compare against", True),
            _param(
                "operator",
                "The comparison operator",
                True,
                enum=[op.value for op in ConditionOperator],
            ),
        ],
        base_url,
        EVALUATE_CONDITION_PATH,
    )


def check_availability_tool(base_url: str) -> SelectedTool:
    return _tool(
        CHECK_AVAILABILITY_TOOL,
        "Check calendar availability for a date range",
        [
            _param("startDate", "Start date to check (YYYY-MM-DD)", True),
            _param("endDate", "End date to check (YYYY-MM-DD), defaults to startDate"),
            _param("nodeId", "The ID of the current calendar node", True),
        ],
        base_url,
        CHECK_AVAILABILITY_PATH,
    )


def book_appointment_tool(base_url: str) -> SelectedTool:
    return _tool(
        BOOK_APPOINTMENT_TOOL,
        "Book an appointment in the calendar",
        [
            _param("name", "Full name of the attendee", True),
            _param("email", "Email address of the attendee", True),
            _param("startDateTime", "Appointment start (ISO 8601)", True),
            _param("duration", "Duration in minutes (default 60)", type_="number"),
            _param("nodeId", "The ID of the current calendar node", True),
        ],
        base_url,
        BOOK_APPOINTMENT_PATH,
    )


def booking_confirmation_tool(base_url: str) -> SelectedTool:
    return _tool(
        BOOKING_CONFIRMATION_TOOL,
        "Collect and confirm booking details step by step before booking",
        [
            _param("nodeId", "The ID of the current calendar node", True),
            _param(
                "confirmationStep",
                "Which confirmation step is being performed",
                True,
                enum=list(CONFIRMATION_STEPS),
            ),
            _param("name", "Full name of the attendee"),
            _param("email", "Email address of the attendee"),
            _param("startDateTime", "Appointment start (ISO 8601)"),
            _param("duration", "Duration in minutes (default 60)", type_="number"),
        ],
        base_url,
        BOOKING_CONFIRMATION_PATH,
    )


CALENDAR_TOOL_BUILDERS = {
    NodeType.CAL_CHECK_AVAILABILITY: check_availability_tool,
    NodeType.CAL_BOOK_APPOINTMENT: book_appointment_tool,
    NodeType.CAL_BOOKING_CONFIRMATION: booking_confirmation_tool,
}


def tools_for_node(node: FlowNode, base_url: str) -> list[SelectedTool]:
    """
    Tool descriptors for a stage entering ``node``.

    Every node except ``ending`` gets the stage-change tool. Condition nodes
    also get the condition evaluator; calendar nodes get their booking tool.
    """
    node_type = node.node_type
    if node_type == NodeType.ENDING:
        return []

    tools = [change_stage_tool(base_url)]
    if node_type == NodeType.CONDITION:
        tools.append(evaluate_condition_tool(base_url))
    if node_type in CALENDAR_NODE_TYPES:
        tools.append(CALENDAR_TOOL_BUILDERS[node_type](base_url))
    return tools
