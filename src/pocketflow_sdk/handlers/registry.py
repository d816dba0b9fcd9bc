"""Handler resolution and registration.

resolve() merges a base profile with caller overrides into one handler
table. register() installs a table on a connection, replacing earlier
listeners for the same events and wrapping every handler so that a
failing handler is logged instead of breaking delivery.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Mapping
from enum import Enum
from typing import Any, Protocol

from ..protocol.events import SERVER_EVENT_NAMES, ServerEvent, decode_payload, event_name

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]
HandlerTable = dict[str, Handler]


class ListenerTarget(Protocol):
    """Anything handlers can be registered on (a ConnectionHandle or a transport)."""

    def on(self, event: str, listener: Callable[..., Any]) -> None: ...

    def remove_all_listeners(self, event: str | None = None) -> None: ...


class EventHandlerRegistry:
    """Resolves and installs handler tables.

    Stateless apart from the logger, so one instance can serve many
    connections.
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(__name__)

    def resolve(
        self,
        profile: Mapping[str | Enum, Handler],
        overrides: Mapping[str | Enum, Handler | None] | None = None,
    ) -> HandlerTable:
        """Build the effective handler table.

        For every server event the override wins when present and not
        None; otherwise the profile entry is used. Override keys that are
        not known server events are kept as given.

        Raises:
            KeyError: If the profile has no entry for a server event and
                no override covers it
        """
        base = {event_name(kind): handler for kind, handler in profile.items()}
        extra = {
            event_name(kind): handler
            for kind, handler in (overrides or {}).items()
            if handler is not None
        }

        table: HandlerTable = {}
        for kind in ServerEvent:
            handler = extra.get(kind.value) or base.get(kind.value)
            if handler is None:
                raise KeyError(f"No handler for '{kind.value}' in profile or overrides")
            table[kind.value] = handler

        for name, handler in extra.items():
            if name not in SERVER_EVENT_NAMES:
                self._logger.debug(f"Registering handler for unrecognized event '{name}'")
                table[name] = handler

        return table

    def register(self, target: ListenerTarget, table: Mapping[str, Handler]) -> list[str]:
        """Install a handler table.

        Each event's previous listeners are removed first, so calling
        register twice does not double-dispatch. A failure for one event
        is logged and does not stop the others.

        Returns:
            Event names that were registered
        """
        registered: list[str] = []
        for kind, handler in table.items():
            name = event_name(kind)
            try:
                target.remove_all_listeners(name)
                target.on(name, self.wrap(name, handler))
                registered.append(name)
            except Exception:
                self._logger.exception(f"Failed to register handler for '{name}'")
        return registered

    def wrap(self, kind: str, handler: Handler) -> Callable[..., Any]:
        """Wrap a handler with payload decoding and error containment."""
        log = self._logger

        async def dispatch(*args: Any) -> None:
            payload = decode_payload(kind, args[0] if args else None)
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                log.exception(f"Handler for '{kind}' raised; continuing with next event")

        dispatch.__wrapped__ = handler  # type: ignore[attr-defined]
        return dispatch


_default_registry = EventHandlerRegistry()


def resolve_handlers(
    profile: Mapping[str | Enum, Handler],
    overrides: Mapping[str | Enum, Handler | None] | None = None,
) -> HandlerTable:
    """Resolve with the shared registry."""
    return _default_registry.resolve(profile, overrides)


def register_handlers(target: ListenerTarget, table: Mapping[str, Handler]) -> list[str]:
    """Register with the shared registry."""
    return _default_registry.register(target, table)
