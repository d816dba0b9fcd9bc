"""Client transport abstraction.

A transport is one full-duplex event channel to the workflow service.
It knows how to open and close the channel, emit named events, and
deliver incoming events to listeners. Retry, timeouts and handler
policy live above it, in ConnectionHandle.

Lifecycle signals are delivered through the same listener table as
protocol events, under the names in ConnectionEvent:
- "connect": the channel is up
- "disconnect" (reason): the channel went down
- "connect_error" (data): an attempt to open the channel failed
"""

from __future__ import annotations

import inspect
import logging
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from enum import Enum
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]

CLIENT_DISCONNECT_REASON = "io client disconnect"
SERVER_DISCONNECT_REASONS = frozenset({"io server disconnect", "server disconnect"})


class TransportState(str, Enum):
    """Connection state machine."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    FAILED = "failed"


class TransportOpenError(Exception):
    """A single attempt to open the channel failed.

    Attributes:
        rejected: True when the service answered and refused the
            handshake (bad or missing credentials). Retrying a rejected
            handshake does not help.
        data: Whatever the service or transport reported
    """

    def __init__(self, message: str, rejected: bool = False, data: Any = None) -> None:
        super().__init__(message)
        self.rejected = rejected
        self.data = data


@runtime_checkable
class Transport(Protocol):
    """Protocol for client transports."""

    @property
    def connected(self) -> bool:
        """Check if the channel is up."""
        ...

    @property
    def sid(self) -> str | None:
        """Session id assigned by the service, if connected."""
        ...

    async def open(
        self,
        url: str,
        auth: dict[str, Any] | None = None,
        transports: Sequence[str] | None = None,
    ) -> None:
        """Make one attempt to open the channel.

        Raises:
            TransportOpenError: If the attempt fails
        """
        ...

    async def close(self) -> None:
        """Close the channel. Safe to call when already closed."""
        ...

    async def emit(self, event: str, data: Any = None, callback: Listener | None = None) -> None:
        """Send a named event; ``callback`` receives the acknowledgement, if any."""
        ...

    def on(self, event: str, listener: Listener) -> None:
        """Add a listener for a named event."""
        ...

    def remove_all_listeners(self, event: str | None = None) -> None:
        """Remove listeners for one event, or for every event."""
        ...

    def listener_count(self, event: str) -> int:
        """Number of listeners attached to an event."""
        ...


class BaseTransport(ABC):
    """Base class for transports with a shared listener table.

    Provides:
    - Multiple listeners per event, called in registration order
    - Sync or async listeners
    - Listener failures logged and contained
    """

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event: str, listener: Listener) -> None:
        """Add a listener for a named event."""
        self._listeners.setdefault(event, []).append(listener)

    def remove_all_listeners(self, event: str | None = None) -> None:
        """Remove listeners for one event, or for every event."""
        if event is None:
            self._listeners.clear()
        else:
            self._listeners.pop(event, None)

    def listener_count(self, event: str) -> int:
        """Number of listeners attached to an event."""
        return len(self._listeners.get(event, []))

    @property
    def events(self) -> list[str]:
        """Event names that currently have listeners."""
        return [name for name, listeners in self._listeners.items() if listeners]

    async def dispatch(self, event: str, *args: Any) -> None:
        """Deliver an incoming event to its listeners, in order."""
        # Copy: a listener may tear down the table (e.g. on run_complete)
        for listener in list(self._listeners.get(event, [])):
            try:
                result = listener(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Listener for '{event}' failed")

    @property
    @abstractmethod
    def connected(self) -> bool: ...

    @property
    @abstractmethod
    def sid(self) -> str | None: ...

    @abstractmethod
    async def open(
        self,
        url: str,
        auth: dict[str, Any] | None = None,
        transports: Sequence[str] | None = None,
    ) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...

    @abstractmethod
    async def emit(
        self, event: str, data: Any = None, callback: Listener | None = None
    ) -> None: ...
