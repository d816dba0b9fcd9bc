"""Workflow protocol: event names, payload shapes and client messages."""

from .commands import FeedbackResponse, RunRequest
from .events import (
    PAYLOAD_MODELS,
    TERMINAL_EVENTS,
    ClientEvent,
    ConnectionEvent,
    FeedbackRequestPayload,
    FinalOutputPayload,
    GenerationCompletePayload,
    GenerationErrorPayload,
    GenerationUpdatePayload,
    NodeErrorPayload,
    Payload,
    RunCompletePayload,
    RunErrorPayload,
    RunStartPayload,
    RunWarningPayload,
    ServerEvent,
    StreamOutputPayload,
    WorkflowErrorPayload,
    WorkflowReceivedPayload,
    decode_payload,
    event_name,
    is_terminal,
)

__all__ = [
    # Event kinds
    "ServerEvent",
    "ClientEvent",
    "ConnectionEvent",
    "TERMINAL_EVENTS",
    "event_name",
    "is_terminal",
    # Payloads
    "Payload",
    "PAYLOAD_MODELS",
    "decode_payload",
    "RunStartPayload",
    "RunWarningPayload",
    "RunCompletePayload",
    "RunErrorPayload",
    "StreamOutputPayload",
    "NodeErrorPayload",
    "FinalOutputPayload",
    "WorkflowReceivedPayload",
    "WorkflowErrorPayload",
    "FeedbackRequestPayload",
    "GenerationErrorPayload",
    "GenerationUpdatePayload",
    "GenerationCompletePayload",
    # Client messages
    "RunRequest",
    "FeedbackResponse",
]
