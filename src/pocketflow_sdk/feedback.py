"""Feedback bridge for human-in-the-loop workflows.

When a workflow needs input, the service emits ``feedback_request``
and waits for a ``feedback_response``. The bridge hands the request to
a callback, waits for its answer in a background task, and always
sends a response, even when the callback fails, so the service never
waits forever.

The callback may be a plain function or a coroutine function; both are
awaited the same way.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import click

from .handlers.registry import EventHandlerRegistry
from .protocol.commands import FeedbackResponse
from .protocol.events import ClientEvent, FeedbackRequestPayload, ServerEvent

if TYPE_CHECKING:
    from .connection import ConnectionHandle

logger = logging.getLogger(__name__)

FeedbackCallback = Callable[[FeedbackRequestPayload], Any]
EmitFn = Callable[[str, Any], Awaitable[None]]


async def prompt_for_feedback(request: FeedbackRequestPayload) -> str | None:
    """Ask for input on the terminal.

    Runs the blocking prompt in a worker thread so event delivery
    continues while the user types.
    """
    default = request.default_value
    return await asyncio.to_thread(
        click.prompt,
        request.prompt or "Input",
        default=default or "",
        show_default=bool(default),
    )


def _as_request(payload: Any) -> FeedbackRequestPayload:
    if isinstance(payload, FeedbackRequestPayload):
        return payload
    if isinstance(payload, dict):
        return FeedbackRequestPayload.model_validate(payload)
    return FeedbackRequestPayload(prompt="" if payload is None else str(payload))


class FeedbackBridge:
    """Answers feedback requests through a caller-supplied callback."""

    def __init__(
        self,
        emit: EmitFn,
        callback: FeedbackCallback | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        """Initialize the bridge.

        Args:
            emit: Async function sending an event over the connection
            callback: Produces the answer (default: terminal prompt)
            logger: Logger for bridge diagnostics
        """
        self._emit = emit
        self._callback = callback or prompt_for_feedback
        self._logger = logger or logging.getLogger(__name__)
        self._pending: set[asyncio.Task[None]] = set()

    @property
    def pending_count(self) -> int:
        """Requests still waiting for an answer."""
        return len(self._pending)

    def handle_request(self, payload: Any) -> None:
        """Handler for feedback_request; returns immediately.

        The answer is produced in a background task so a slow callback
        does not hold up later events.
        """
        request = _as_request(payload)
        self._logger.debug(f"Feedback request received: {request.prompt!r}")
        task = asyncio.create_task(self._respond(request))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _respond(self, request: FeedbackRequestPayload) -> None:
        try:
            value = self._callback(request)
            if inspect.isawaitable(value):
                value = await value
        except Exception as e:
            self._logger.exception("Feedback callback failed; sending empty response")
            response = FeedbackResponse(input=None, error=str(e) or type(e).__name__)
        else:
            if value is None or value == "":
                value = request.default_value
            response = FeedbackResponse(input=value)

        try:
            await self._emit(ClientEvent.FEEDBACK_RESPONSE.value, response.to_payload())
            self._logger.debug("Sent feedback_response")
        except Exception:
            self._logger.exception("Failed to send feedback_response")

    async def drain(self) -> None:
        """Wait until every pending request has been answered."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    def cancel(self) -> None:
        """Abandon pending requests (the connection is going away)."""
        for task in list(self._pending):
            task.cancel()


def on_feedback_request(
    handle: ConnectionHandle,
    callback: FeedbackCallback | None = None,
    logger: logging.Logger | None = None,
) -> FeedbackBridge:
    """Answer feedback requests on a connection.

    Replaces any earlier feedback bridge on the handle. The bridge is
    also kept as a base handler, so later runs keep it unless they
    override feedback_request themselves.

    Returns:
        The installed bridge
    """
    if handle.feedback is not None:
        handle.feedback.cancel()

    bridge = FeedbackBridge(handle.emit, callback, logger=logger)
    handle.feedback = bridge
    handle.base_handlers[ServerEvent.FEEDBACK_REQUEST.value] = bridge.handle_request
    EventHandlerRegistry(logger).register(
        handle, {ServerEvent.FEEDBACK_REQUEST.value: bridge.handle_request}
    )
    return bridge
