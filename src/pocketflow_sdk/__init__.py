"""PocketFlow SDK - Client for running workflows on a PocketFlow server.

Connects over socket.io, starts a workflow run, and routes the events
the server streams back to handlers:
- connect(): open a connection (retry, timeout, auth handshake)
- run_workflow(): start a run; terminal events close the connection
- Handler profiles: quiet (default), verbose, pretty

Transports:
- SocketIOTransport: real connections
- MockTransport: for testing without real I/O
"""

from .config import ClientConfig, ReconnectPolicy, configure_logging, normalize_endpoint
from .connection import ConnectionHandle, ConnectionOptions, connect, disconnect
from .errors import (
    ConnectionTimeoutError,
    EmitFailedError,
    HandshakeFailedError,
    InvalidEndpointError,
    MissingConnectionError,
    MissingTokenError,
    MissingWorkflowIdError,
    PocketFlowError,
    ReconnectExhaustedError,
    SocketConnectionError,
    WorkflowError,
)
from .feedback import FeedbackBridge, on_feedback_request, prompt_for_feedback
from .handlers import (
    EventHandlerRegistry,
    HandlerProfile,
    get_profile,
    register_handlers,
    resolve_handlers,
    select_profile,
)
from .protocol import ClientEvent, RunRequest, ServerEvent
from .transport import MockTransport, SocketIOTransport, TransportState
from .workflow import RunOptions, WorkflowRunSession, run_workflow

# Aliases
connect_socket = connect
disconnect_socket = disconnect

__all__ = [
    # Connection
    "connect",
    "disconnect",
    "connect_socket",
    "disconnect_socket",
    "ConnectionHandle",
    "ConnectionOptions",
    # Runs
    "run_workflow",
    "RunOptions",
    "RunRequest",
    "WorkflowRunSession",
    # Handlers
    "EventHandlerRegistry",
    "HandlerProfile",
    "get_profile",
    "select_profile",
    "resolve_handlers",
    "register_handlers",
    # Feedback
    "FeedbackBridge",
    "on_feedback_request",
    "prompt_for_feedback",
    # Protocol
    "ServerEvent",
    "ClientEvent",
    # Transports
    "SocketIOTransport",
    "MockTransport",
    "TransportState",
    # Configuration
    "ClientConfig",
    "ReconnectPolicy",
    "configure_logging",
    "normalize_endpoint",
    # Errors
    "PocketFlowError",
    "SocketConnectionError",
    "InvalidEndpointError",
    "HandshakeFailedError",
    "ConnectionTimeoutError",
    "ReconnectExhaustedError",
    "WorkflowError",
    "MissingConnectionError",
    "MissingWorkflowIdError",
    "MissingTokenError",
    "EmitFailedError",
]
