"""In-memory transport for tests and offline use.

No I/O: connection attempts succeed or fail as scripted, emitted
events are recorded, and incoming events are injected by the caller.

Usage:
    transport = MockTransport(fail_attempts=2)
    handle = await connect("example.com", transport=transport)
    assert transport.open_attempts == 3

    await transport.inject("run_complete", {"message": "done", "state": {}})
    assert transport.emitted[0][0] == "run_workflow"
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import Sequence
from typing import Any

from ..protocol.events import ConnectionEvent
from .base import CLIENT_DISCONNECT_REASON, BaseTransport, Listener, TransportOpenError


class MockTransport(BaseTransport):
    """Scriptable transport that records everything it is asked to do."""

    def __init__(
        self,
        fail_attempts: int = 0,
        reject: bool = False,
        hang: bool = False,
        error_message: str = "Connection refused by the server",
    ) -> None:
        """Initialize the mock.

        Args:
            fail_attempts: Number of open() calls that fail before one succeeds
            reject: Failures are handshake rejections rather than network errors
            hang: open() never completes (for timeout tests)
            error_message: Message carried by scripted failures
        """
        super().__init__()
        self._connected = False
        self._sid: str | None = None
        self._failures = fail_attempts
        self.reject = reject
        self.hang = hang
        self.error_message = error_message

        self.open_attempts = 0
        self.open_calls: list[dict[str, Any]] = []
        self.close_calls = 0
        self.emitted: list[tuple[str, Any]] = []
        self.emit_error: Exception | None = None
        self.ack: Any = None

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def sid(self) -> str | None:
        return self._sid

    def fail_next(self, attempts: int, rejected: bool | None = None) -> None:
        """Script further failing attempts (e.g. for reconnect tests)."""
        self._failures = attempts
        if rejected is not None:
            self.reject = rejected

    async def open(
        self,
        url: str,
        auth: dict[str, Any] | None = None,
        transports: Sequence[str] | None = None,
    ) -> None:
        """Succeed, fail or hang as scripted."""
        self.open_attempts += 1
        self.open_calls.append(
            {"url": url, "auth": auth, "transports": list(transports or [])}
        )

        if self.hang:
            await asyncio.Event().wait()

        if self._failures > 0:
            self._failures -= 1
            data = {"message": self.error_message}
            await self.dispatch(ConnectionEvent.CONNECT_ERROR.value, data)
            raise TransportOpenError(self.error_message, rejected=self.reject, data=data)

        self._connected = True
        self._sid = f"mock_{uuid.uuid4().hex[:12]}"
        await self.dispatch(ConnectionEvent.CONNECT.value)

    async def close(self) -> None:
        """Record the close and signal a client-side disconnect."""
        self.close_calls += 1
        if not self._connected:
            return
        self._connected = False
        self._sid = None
        await self.dispatch(ConnectionEvent.DISCONNECT.value, CLIENT_DISCONNECT_REASON)

    async def emit(self, event: str, data: Any = None, callback: Listener | None = None) -> None:
        """Record an outgoing event."""
        if self.emit_error is not None:
            raise self.emit_error
        if not self._connected:
            raise ConnectionError("Transport not connected")
        self.emitted.append((event, data))
        if callback is not None and self.ack is not None:
            callback(self.ack)

    async def inject(self, event: str, data: Any = None) -> None:
        """Deliver an event as if the service had sent it."""
        await self.dispatch(event, data)

    async def drop(self, reason: str = "transport close") -> None:
        """Lose the connection as if the network went away."""
        self._connected = False
        self._sid = None
        await self.dispatch(ConnectionEvent.DISCONNECT.value, reason)

    def emitted_events(self, event: str) -> list[Any]:
        """Payloads emitted under one event name."""
        return [data for name, data in self.emitted if name == event]
