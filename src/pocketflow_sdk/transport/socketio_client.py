"""Transport over socket.io, using python-socketio's AsyncClient.

The AsyncClient is created with its own reconnection disabled: retry
and backoff are owned by ConnectionHandle so that the attempt counter
and the give-up decision live in one place.

All incoming events reach the listener table through one catch-all
handler, plus explicit handlers for the three lifecycle signals.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import socketio

from ..protocol.events import ConnectionEvent
from .base import CLIENT_DISCONNECT_REASON, BaseTransport, Listener, TransportOpenError

logger = logging.getLogger(__name__)


def _error_message(data: Any) -> str:
    """Readable message from connect_error data."""
    if isinstance(data, dict):
        return str(data.get("message") or data)
    return str(data) if data is not None else "unknown error"


class SocketIOTransport(BaseTransport):
    """socket.io client channel.

    Wire format is socket.io's: named events with JSON payloads. The
    credential travels in the handshake ``auth`` payload, never in the
    URL.
    """

    def __init__(
        self,
        client: socketio.AsyncClient | None = None,
        namespace_timeout: float = 5.0,
    ) -> None:
        """Initialize the transport.

        Args:
            client: Preconfigured AsyncClient (default: a new one with
                reconnection disabled)
            namespace_timeout: Seconds the service has to accept the
                namespace connect after the engine.io handshake
        """
        super().__init__()
        self._sio = client or socketio.AsyncClient(
            reconnection=False,
            logger=False,
            engineio_logger=False,
        )
        self._namespace_timeout = namespace_timeout
        self._last_connect_error: Any = None
        self._rejected = False

        self._sio.on(ConnectionEvent.CONNECT.value, self._handle_connect)
        self._sio.on(ConnectionEvent.DISCONNECT.value, self._handle_disconnect)
        self._sio.on(ConnectionEvent.CONNECT_ERROR.value, self._handle_connect_error)
        self._sio.on("*", self._handle_event)

    @property
    def connected(self) -> bool:
        return bool(self._sio.connected)

    @property
    def sid(self) -> str | None:
        return self._sio.sid

    async def open(
        self,
        url: str,
        auth: dict[str, Any] | None = None,
        transports: Sequence[str] | None = None,
    ) -> None:
        """Make one connection attempt."""
        self._last_connect_error = None
        self._rejected = False
        logger.debug(f"socket.io connect to {url} (transports={list(transports or [])})")

        try:
            await self._sio.connect(
                url,
                auth=auth,
                transports=list(transports) if transports else None,
                wait_timeout=self._namespace_timeout,
            )
        except socketio.exceptions.ConnectionError as e:
            data = self._last_connect_error
            message = _error_message(data) if data is not None else str(e)
            logger.debug(f"socket.io connect failed: {message} (rejected={self._rejected})")
            raise TransportOpenError(message, rejected=self._rejected, data=data) from e

    async def close(self) -> None:
        """Close the socket.io connection."""
        await self._sio.disconnect()

    async def emit(self, event: str, data: Any = None, callback: Listener | None = None) -> None:
        """Send a named event; ``callback`` receives the service's ack."""
        await self._sio.emit(event, data, callback=callback)

    async def _handle_connect(self) -> None:
        await self.dispatch(ConnectionEvent.CONNECT.value)

    async def _handle_disconnect(self, reason: Any = None) -> None:
        # Older python-socketio releases call this handler without a reason
        await self.dispatch(
            ConnectionEvent.DISCONNECT.value,
            str(reason) if reason else CLIENT_DISCONNECT_REASON,
        )

    async def _handle_connect_error(self, data: Any = None) -> None:
        # Engine.io still up means the service itself refused the handshake
        self._rejected = getattr(self._sio.eio, "state", None) == "connected"
        self._last_connect_error = data
        await self.dispatch(ConnectionEvent.CONNECT_ERROR.value, data)

    async def _handle_event(self, event: str, *args: Any) -> None:
        await self.dispatch(event, *args)
