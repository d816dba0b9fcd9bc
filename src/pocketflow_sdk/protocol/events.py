"""Event definitions for the workflow protocol.

The service and the client exchange named events over a socket.io
connection:
- Server events: emitted by the service while a workflow runs
- Client events: the run command and feedback responses
- Connection events: lifecycle signals raised by the transport itself

Each server event has a fixed payload shape, modelled below. Payload
models accept extra keys so newer service versions do not break older
clients.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

logger = logging.getLogger(__name__)


class ServerEvent(str, Enum):
    """All events the service may emit to a client."""

    # Run lifecycle
    RUN_START = "run_start"
    RUN_WARNING = "run_warning"
    RUN_COMPLETE = "run_complete"
    RUN_ERROR = "run_error"

    # Node execution
    STREAM_OUTPUT = "stream_output"
    NODE_ERROR = "node_error"
    FINAL_OUTPUT = "final_output"

    # Workflow submission
    WORKFLOW_RECEIVED = "workflow_received"
    WORKFLOW_ERROR = "workflow_error"
    WORKFLOW_LOG = "workflow_log"

    # Human in the loop
    FEEDBACK_REQUEST = "feedback_request"

    # Workflow generation
    GENERATION_ERROR = "generation_error"
    GENERATION_UPDATE = "generation_update"
    GENERATION_COMPLETE = "generation_complete"


class ClientEvent(str, Enum):
    """Events the client emits to the service."""

    RUN_WORKFLOW = "run_workflow"
    FEEDBACK_RESPONSE = "feedback_response"


class ConnectionEvent(str, Enum):
    """Lifecycle signals raised by the transport."""

    CONNECT = "connect"
    DISCONNECT = "disconnect"
    CONNECT_ERROR = "connect_error"


# A run ends after any of these; the owning connection is torn down.
TERMINAL_EVENTS: frozenset[ServerEvent] = frozenset(
    {ServerEvent.RUN_COMPLETE, ServerEvent.RUN_ERROR, ServerEvent.WORKFLOW_ERROR}
)

SERVER_EVENT_NAMES: frozenset[str] = frozenset(e.value for e in ServerEvent)


def event_name(kind: str | Enum) -> str:
    """Wire name for an event kind given as enum member or string."""
    return kind.value if isinstance(kind, Enum) else str(kind)


def is_terminal(kind: str | Enum) -> bool:
    """Check if an event kind ends a run."""
    return event_name(kind) in {e.value for e in TERMINAL_EVENTS}


# =============================================================================
# Payload models
# =============================================================================


class Payload(BaseModel):
    """Base for server event payloads."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)


class RunStartPayload(Payload):
    message: str = ""


class RunWarningPayload(Payload):
    message: str = ""
    errors: list[Any] = Field(default_factory=list)
    state: dict[str, Any] = Field(default_factory=dict)
    warning: bool = True


class RunCompletePayload(Payload):
    message: str = ""
    state: dict[str, Any] = Field(default_factory=dict)
    warning: bool = False
    errors: list[Any] | None = None
    output: Any = None

    @property
    def has_warnings(self) -> bool:
        """Completed, but the service flagged warnings or errors."""
        return self.warning or bool(self.errors)


class RunErrorPayload(Payload):
    message: str = ""
    stack: str | None = None


class StreamOutputPayload(Payload):
    type: str = ""
    node: str = ""
    state: Any = None
    action: str = ""
    is_error: bool = Field(default=False, alias="isError")


class NodeErrorPayload(Payload):
    node: str = ""
    error: Any = None
    state: Any = None


class FinalOutputPayload(Payload):
    type: str = ""
    data: Any = None


class WorkflowReceivedPayload(Payload):
    message: str | None = None


class WorkflowErrorPayload(Payload):
    message: str = "Unknown error"
    stack: str | None = None


class FeedbackRequestPayload(Payload):
    prompt: str = ""
    default_value: str | None = Field(default=None, alias="defaultValue")


class GenerationErrorPayload(Payload):
    message: str = ""


class GenerationUpdatePayload(Payload):
    type: str = ""
    message: str = ""


class GenerationCompletePayload(Payload):
    flow: Any = None


# workflow_log carries arbitrary data and has no model.
PAYLOAD_MODELS: dict[ServerEvent, type[Payload]] = {
    ServerEvent.RUN_START: RunStartPayload,
    ServerEvent.RUN_WARNING: RunWarningPayload,
    ServerEvent.RUN_COMPLETE: RunCompletePayload,
    ServerEvent.RUN_ERROR: RunErrorPayload,
    ServerEvent.STREAM_OUTPUT: StreamOutputPayload,
    ServerEvent.NODE_ERROR: NodeErrorPayload,
    ServerEvent.FINAL_OUTPUT: FinalOutputPayload,
    ServerEvent.WORKFLOW_RECEIVED: WorkflowReceivedPayload,
    ServerEvent.WORKFLOW_ERROR: WorkflowErrorPayload,
    ServerEvent.FEEDBACK_REQUEST: FeedbackRequestPayload,
    ServerEvent.GENERATION_ERROR: GenerationErrorPayload,
    ServerEvent.GENERATION_UPDATE: GenerationUpdatePayload,
    ServerEvent.GENERATION_COMPLETE: GenerationCompletePayload,
}


def decode_payload(kind: str | Enum, data: Any) -> Any:
    """Turn raw event data into its payload model.

    Already-decoded payloads, workflow_log data and unknown event kinds
    pass through unchanged. Data that does not fit the model is logged
    and passed through raw so dispatch still happens.
    """
    if isinstance(data, Payload):
        return data

    name = event_name(kind)
    if name not in SERVER_EVENT_NAMES:
        return data

    model = PAYLOAD_MODELS.get(ServerEvent(name))
    if model is None:
        return data

    try:
        return model.model_validate(data if data is not None else {})
    except ValidationError as e:
        logger.warning(f"Malformed '{name}' payload, passing raw data: {e}")
        return data
