"""Connection to the workflow service.

connect() normalizes the endpoint, builds a ConnectionHandle around a
transport, installs the connect-time handlers, and waits until the
service accepts the connection.

ConnectionHandle state machine:

    DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED
                         |            |
                         v            v
                       FAILED <- RECONNECTING

Retry is bounded by the ReconnectPolicy and counted on the handle.
Teardown is one operation: remove every listener, then close the
transport. After it, no previously registered handler is called again.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from .config import ClientConfig, normalize_endpoint
from .errors import (
    ConnectionTimeoutError,
    HandshakeFailedError,
    ReconnectExhaustedError,
    SocketConnectionError,
)
from .feedback import FeedbackBridge, FeedbackCallback, on_feedback_request
from .handlers.defaults import default_connection_handler, default_disconnection_handler
from .handlers.registry import EventHandlerRegistry, Handler, HandlerTable
from .protocol.events import ConnectionEvent, ServerEvent, event_name
from .transport.base import (
    CLIENT_DISCONNECT_REASON,
    SERVER_DISCONNECT_REASONS,
    Listener,
    Transport,
    TransportOpenError,
    TransportState,
)
from .transport.socketio_client import SocketIOTransport

if TYPE_CHECKING:
    from .workflow import WorkflowRunSession

logger = logging.getLogger(__name__)


def _mask(token: str) -> str:
    if len(token) <= 10:
        return "*" * len(token)
    return f"{token[:4]}...{token[-4:]}"


@dataclass
class ConnectionOptions:
    """Caller options for connect().

    Attributes:
        token: Bearer token sent in the handshake auth payload
            (default: the config's api_key)
        handlers: Handlers for any events, kept for every run on this
            connection unless a run overrides them
        on_feedback: Answers feedback requests (default: terminal prompt)
        on_log: Handler for workflow_log
        on_stream_output: Handler for stream_output
        on_connect: Called on every successful connection
        on_disconnect: Called with the reason on every disconnect
        on_reconnect_failed: Called when a dropped connection cannot be
            re-established
        logger: Logger for connection diagnostics
    """

    token: str | None = None
    handlers: Mapping[str, Handler | None] = field(default_factory=dict)
    on_feedback: FeedbackCallback | None = None
    on_log: Handler | None = None
    on_stream_output: Handler | None = None
    on_connect: Callable[[], Any] | None = None
    on_disconnect: Callable[[str], Any] | None = None
    on_reconnect_failed: Callable[[SocketConnectionError], Any] | None = None
    logger: logging.Logger | None = None


class ConnectionHandle:
    """One connection to the workflow service, owned by one caller.

    Not meant to be shared by concurrent runs: a terminal event in one
    run tears the connection down for everyone using it.
    """

    def __init__(
        self,
        url: str,
        transport: Transport,
        config: ClientConfig | None = None,
        options: ConnectionOptions | None = None,
    ) -> None:
        self.url = url
        self.transport = transport
        self.config = config or ClientConfig()
        self.options = options or ConnectionOptions()
        self._logger = self.options.logger or logger
        self._registry = EventHandlerRegistry(self._logger)

        self._state = TransportState.DISCONNECTED
        self._closed = True
        self._reconnect_task: asyncio.Task[None] | None = None

        # Mutated only by this class
        self.attempts = 0
        self.last_error: SocketConnectionError | None = None

        # Connect-time handlers; runs layer their own on top
        self.base_handlers: HandlerTable = {}
        for kind, handler in self.options.handlers.items():
            if handler is not None:
                self.base_handlers[event_name(kind)] = handler
        if self.options.on_log is not None:
            self.base_handlers[ServerEvent.WORKFLOW_LOG.value] = self.options.on_log
        if self.options.on_stream_output is not None:
            self.base_handlers[ServerEvent.STREAM_OUTPUT.value] = self.options.on_stream_output

        self.feedback: FeedbackBridge | None = None
        self.active_session: WorkflowRunSession | None = None

    # =========================================================================
    # State
    # =========================================================================

    @property
    def state(self) -> TransportState:
        """Current connection state."""
        return self._state

    @property
    def connected(self) -> bool:
        """Check if the connection is up."""
        return self._state == TransportState.CONNECTED and self.transport.connected

    @property
    def sid(self) -> str | None:
        """Session id assigned by the service."""
        return self.transport.sid

    @property
    def token(self) -> str | None:
        """Credential sent with the handshake."""
        if self.options.token is not None:
            return self.options.token
        return self.config.api_key

    # =========================================================================
    # Listener primitives
    # =========================================================================

    def on(self, event: str, listener: Listener) -> None:
        """Add a raw listener on the transport."""
        self.transport.on(event, listener)

    def remove_all_listeners(self, event: str | None = None) -> None:
        """Remove listeners for one event, or for every event."""
        self.transport.remove_all_listeners(event)

    def listener_count(self, event: str) -> int:
        return self.transport.listener_count(event)

    async def emit(self, event: str, data: Any = None, callback: Listener | None = None) -> None:
        """Send a named event to the service."""
        await self.transport.emit(event, data, callback=callback)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def open(self) -> ConnectionHandle:
        """Connect, retrying per the reconnect policy.

        Listeners (lifecycle and connect-time handlers) are attached
        before the first attempt so no early event is missed.

        Raises:
            ConnectionTimeoutError: An attempt got no connected signal within
                connect_timeout and retry is disabled
            HandshakeFailedError: The service refused the handshake, or
                the connection failed with retry disabled
            ReconnectExhaustedError: Every allowed attempt failed or timed out
        """
        if self.connected:
            return self

        self._closed = False
        self.last_error = None
        self._install_listeners()

        token = self.token
        if token:
            self._logger.debug(
                f"Authentication token provided ({len(token)} chars: {_mask(token)})"
            )
        else:
            self._logger.warning("No authentication token provided")

        self._state = TransportState.CONNECTING
        self._logger.info(f"Connecting to {self.url}")
        try:
            await self._attempt_until_connected()
        except SocketConnectionError as e:
            await self._fail(e)
            raise

        self._state = TransportState.CONNECTED
        self._logger.info(f"Connected to {self.url} (sid={self.sid})")
        return self

    async def disconnect(self) -> None:
        """Tear the connection down.

        Removes every listener, then closes the transport. Idempotent and
        never raises.
        """
        if self._closed:
            return
        was_connected = self.transport.connected

        await self._teardown()
        self._state = TransportState.DISCONNECTED
        self._logger.info("Socket fully disconnected and cleaned up")

        if was_connected:
            await self._safe_call(self._disconnect_callback, CLIENT_DISCONNECT_REASON)

    async def __aenter__(self) -> ConnectionHandle:
        return await self.open()

    async def __aexit__(self, *args: Any) -> None:
        await self.disconnect()

    # =========================================================================
    # Internals
    # =========================================================================

    @property
    def _disconnect_callback(self) -> Callable[[str], Any]:
        return self.options.on_disconnect or default_disconnection_handler

    def _auth(self) -> dict[str, Any] | None:
        token = self.token
        return {"token": token} if token else None

    def _install_listeners(self) -> None:
        for event in ConnectionEvent:
            self.transport.remove_all_listeners(event.value)
        self.transport.on(ConnectionEvent.CONNECT.value, self._handle_connect)
        self.transport.on(ConnectionEvent.DISCONNECT.value, self._handle_disconnect)
        self.transport.on(ConnectionEvent.CONNECT_ERROR.value, self._handle_connect_error)
        self._registry.register(self, self.base_handlers)

    async def _open_once(self) -> None:
        """One connection attempt, bounded by connect_timeout."""
        timeout = self.config.connect_timeout
        try:
            await asyncio.wait_for(
                self.transport.open(
                    self.url, auth=self._auth(), transports=self.config.transports
                ),
                timeout=timeout,
            )
        except TimeoutError as e:
            try:
                await self.transport.close()
            except Exception:
                self._logger.exception("Error closing transport after timed-out attempt")
            raise ConnectionTimeoutError(timeout) from e

    async def _attempt_until_connected(self) -> None:
        # connect_timeout bounds each attempt; a timed-out attempt counts as failed
        policy = self.config.reconnect
        self.attempts = 0

        while True:
            self.attempts += 1
            try:
                await self._open_once()
            except (TransportOpenError, ConnectionTimeoutError) as e:
                if isinstance(e, TransportOpenError) and e.rejected:
                    raise HandshakeFailedError(
                        f"Authentication failed: {e}. Check your API token.",
                        cause=e,
                        auth_failed=True,
                    ) from e
                if not policy.enabled:
                    if isinstance(e, ConnectionTimeoutError):
                        raise
                    raise HandshakeFailedError(f"Connection failed: {e}", cause=e) from e
                if self.attempts > policy.attempts:
                    self._logger.error(
                        f"Reconnect failed after all {self.attempts} attempts, giving up"
                    )
                    raise ReconnectExhaustedError(self.attempts, cause=e) from e

                delay = policy.backoff(self.attempts)
                self._logger.warning(
                    f"Connection attempt #{self.attempts} failed ({e}); "
                    f"retrying in {delay:.2f}s"
                )
                await asyncio.sleep(delay)
                continue

            if self.attempts > 1:
                self._logger.info(f"Connected after {self.attempts} attempts")
            return

    async def _fail(self, error: SocketConnectionError) -> None:
        self.last_error = error
        await self._teardown()
        self._state = TransportState.FAILED

    async def _teardown(self) -> None:
        self._closed = True

        task = self._reconnect_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()
        self._reconnect_task = None

        if self.feedback is not None:
            self.feedback.cancel()

        try:
            self.transport.remove_all_listeners()
        except Exception:
            self._logger.exception("Failed to remove listeners")
        try:
            await self.transport.close()
        except Exception:
            self._logger.exception("Error closing transport")

    async def _safe_call(self, callback: Callable[..., Any] | None, *args: Any) -> None:
        if callback is None:
            return
        try:
            result = callback(*args)
            if inspect.isawaitable(result):
                await result
        except Exception:
            self._logger.exception("Connection callback raised")

    async def _handle_connect(self) -> None:
        await self._safe_call(self.options.on_connect or default_connection_handler)

    async def _handle_connect_error(self, data: Any = None) -> None:
        self._logger.warning(f"Connection error: {data}")

    async def _handle_disconnect(self, reason: str = CLIENT_DISCONNECT_REASON) -> None:
        self._logger.info(f"Socket disconnected: {reason}")
        await self._safe_call(self._disconnect_callback, reason)

        if self._closed or self._state != TransportState.CONNECTED:
            return

        if reason in SERVER_DISCONNECT_REASONS or not self.config.reconnect.enabled:
            self._state = TransportState.DISCONNECTED
            return

        self._state = TransportState.RECONNECTING
        self._reconnect_task = asyncio.create_task(self._reconnect())

    async def _reconnect(self) -> None:
        self._logger.warning(f"Connection lost, reconnecting to {self.url}")
        try:
            await self._attempt_until_connected()
        except SocketConnectionError as e:
            self._logger.error(f"Socket reconnect failed: {e}")
            await self._fail(e)
            await self._safe_call(self.options.on_reconnect_failed, e)
            return

        self._state = TransportState.CONNECTED
        self._logger.info(f"Socket reconnected after {self.attempts} attempts")


async def connect(
    endpoint: str | None = None,
    options: ConnectionOptions | None = None,
    config: ClientConfig | None = None,
    transport: Transport | None = None,
) -> ConnectionHandle:
    """Connect to the workflow service.

    Args:
        endpoint: Host or URL (default: the config's endpoint). A bare
            host is reached over https.
        options: Credential and callbacks
        config: Timeouts, retry policy and transports
            (default: ClientConfig.from_env())
        transport: Transport to use (default: SocketIOTransport)

    Returns:
        A connected handle

    Raises:
        InvalidEndpointError: The endpoint is not usable
        ConnectionTimeoutError, HandshakeFailedError,
        ReconnectExhaustedError: See ConnectionHandle.open
    """
    config = config or ClientConfig.from_env()
    options = options or ConnectionOptions()
    url = normalize_endpoint(endpoint or config.endpoint)

    if transport is None:
        transport = SocketIOTransport()

    handle = ConnectionHandle(url, transport, config=config, options=options)
    on_feedback_request(handle, options.on_feedback, logger=options.logger)
    return await handle.open()


async def disconnect(handle: ConnectionHandle | None) -> None:
    """Disconnect a handle; a missing handle is ignored."""
    if handle is not None:
        await handle.disconnect()
