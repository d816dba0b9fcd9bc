"""Exception hierarchy for the PocketFlow SDK.

Two families mirror the two places a caller can fail:
- SocketConnectionError: raised by connect() before a run exists
- WorkflowError: raised by run() before anything is emitted

Once a run is underway, failures arrive as protocol events
(run_error, workflow_error, node_error), never as exceptions.
"""

from __future__ import annotations


class PocketFlowError(Exception):
    """Base class for all SDK errors."""


# =============================================================================
# Connection errors
# =============================================================================


class SocketConnectionError(PocketFlowError, ConnectionError):
    """Connecting to the workflow service failed."""


class InvalidEndpointError(SocketConnectionError, ValueError):
    """Endpoint cannot be turned into a usable URL."""

    def __init__(self, endpoint: str, reason: str) -> None:
        super().__init__(f"Invalid endpoint {endpoint!r}: {reason}")
        self.endpoint = endpoint


class HandshakeFailedError(SocketConnectionError):
    """The transport reported an error while establishing the connection.

    Attributes:
        cause: Underlying transport error, if any
        auth_failed: True when the service refused the handshake
    """

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        auth_failed: bool = False,
    ) -> None:
        super().__init__(message)
        self.cause = cause
        self.auth_failed = auth_failed


class ConnectionTimeoutError(SocketConnectionError, TimeoutError):
    """No connected signal arrived within the connect timeout."""

    def __init__(self, timeout: float) -> None:
        super().__init__(f"Socket connection timed out after {timeout:g} seconds")
        self.timeout = timeout


class ReconnectExhaustedError(HandshakeFailedError):
    """Every allowed connection attempt failed."""

    def __init__(self, attempts: int, cause: BaseException | None = None) -> None:
        detail = f": {cause}" if cause else ""
        super().__init__(
            f"Connection failed after {attempts} attempts{detail}",
            cause=cause,
        )
        self.attempts = attempts


# =============================================================================
# Workflow errors
# =============================================================================


class WorkflowError(PocketFlowError):
    """Starting a workflow run failed."""


class MissingConnectionError(WorkflowError, ValueError):
    """run() was called without a connection handle."""

    def __init__(self) -> None:
        super().__init__("Connection handle is required to run a workflow")


class MissingWorkflowIdError(WorkflowError, ValueError):
    """run() was called with an empty workflow id."""

    def __init__(self) -> None:
        super().__init__("Workflow ID is required")


class MissingTokenError(WorkflowError, ValueError):
    """run() was called with an empty token."""

    def __init__(self) -> None:
        super().__init__("Authentication token is required to run a workflow")


class EmitFailedError(WorkflowError):
    """Sending the run command over the transport failed."""

    def __init__(self, cause: BaseException) -> None:
        super().__init__(f"Failed to emit run_workflow: {cause}")
        self.cause = cause
