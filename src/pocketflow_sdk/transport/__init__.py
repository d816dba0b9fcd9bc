"""Transport layer.

The transport owns the wire: socket.io for real connections, an
in-memory mock for tests. Everything above it talks to the Transport
protocol only.
"""

from .base import (
    CLIENT_DISCONNECT_REASON,
    BaseTransport,
    Listener,
    Transport,
    TransportOpenError,
    TransportState,
)
from .mock import MockTransport
from .socketio_client import SocketIOTransport

__all__ = [
    "Transport",
    "BaseTransport",
    "Listener",
    "TransportState",
    "TransportOpenError",
    "CLIENT_DISCONNECT_REASON",
    "SocketIOTransport",
    "MockTransport",
]
