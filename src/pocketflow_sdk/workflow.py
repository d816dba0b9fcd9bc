"""Workflow runs.

A WorkflowRunSession drives one run over a connected handle:

1. Validate the request before touching the connection
2. Resolve handlers: run overrides over connect-time handlers over the
   selected profile
3. Wrap run_complete, run_error and workflow_error so the connection is
   torn down after their handler, whatever the handler does
4. Register the table, then emit run_workflow

run() returns once the command is sent. The outcome arrives through the
terminal handlers; ``completed`` is set when the run has ended and the
connection is gone.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import traceback
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .connection import ConnectionHandle
from .errors import (
    EmitFailedError,
    MissingConnectionError,
    MissingTokenError,
    MissingWorkflowIdError,
)
from .handlers.profiles import get_profile, select_profile
from .handlers.registry import EventHandlerRegistry, Handler, HandlerTable
from .protocol.commands import RunRequest
from .protocol.events import (
    TERMINAL_EVENTS,
    ClientEvent,
    RunErrorPayload,
    ServerEvent,
    event_name,
)

logger = logging.getLogger(__name__)


@dataclass
class RunOptions:
    """Per-run options.

    Attributes:
        overrides: Handlers that replace the defaults for this run; None
            values are ignored
        pretty: Render events as boxed blocks (wins over verbose)
        verbose: Log every event with its full payload
        logger: Logger for session diagnostics and profile output
    """

    overrides: Mapping[str | Enum, Handler | None] | None = None
    pretty: bool = False
    verbose: bool = False
    logger: logging.Logger | None = None


class WorkflowRunSession:
    """One run of one workflow on one connection."""

    def __init__(
        self,
        handle: ConnectionHandle | None,
        request: RunRequest,
        options: RunOptions | None = None,
        registry: EventHandlerRegistry | None = None,
    ) -> None:
        self.handle = handle
        self.request = request
        self.options = options or RunOptions()
        self._logger = self.options.logger or logger
        self._registry = registry or EventHandlerRegistry(self._logger)

        self.table: HandlerTable = {}
        self.completed = asyncio.Event()
        self.terminal_event: str | None = None

    @property
    def done(self) -> bool:
        """Check if a terminal event has ended this run."""
        return self.completed.is_set()

    async def run(self) -> None:
        """Start the run.

        Raises:
            MissingConnectionError: No handle
            MissingWorkflowIdError: Empty workflow id
            MissingTokenError: Empty token
            EmitFailedError: The command could not be sent and no
                run_error handler was available to report it
        """
        handle = self._validate()

        previous = handle.active_session
        if previous is not None and previous is not self and not previous.done:
            self._logger.warning(
                f"Connection already carries run of '{previous.request.workflow_id}'; "
                "a terminal event in either run disconnects both"
            )
        handle.active_session = self

        self.table = self._build_table(handle)
        self._registry.register(handle, self.table)

        self._logger.info(f"Running workflow '{self.request.workflow_id}'")
        try:
            await handle.emit(
                ClientEvent.RUN_WORKFLOW.value,
                self.request.to_payload(),
                callback=self._on_ack,
            )
        except Exception as e:
            self._logger.error(f"Failed to emit run_workflow: {e}")
            run_error = self.table.get(ServerEvent.RUN_ERROR.value)
            if run_error is None:
                raise EmitFailedError(e) from e
            payload = RunErrorPayload(
                message=f"Failed to start workflow: {e}",
                stack=traceback.format_exc(),
            )
            result = run_error(payload)
            if inspect.isawaitable(result):
                await result

    async def wait(self, timeout: float | None = None) -> str | None:
        """Wait for the run to end; returns the terminal event name.

        Raises:
            TimeoutError: The run did not end within timeout
        """
        await asyncio.wait_for(self.completed.wait(), timeout=timeout)
        return self.terminal_event

    # =========================================================================
    # Internals
    # =========================================================================

    def _validate(self) -> ConnectionHandle:
        if self.handle is None:
            raise MissingConnectionError()
        if not self.request.workflow_id:
            raise MissingWorkflowIdError()
        if not self.request.token:
            raise MissingTokenError()
        return self.handle

    def _build_table(self, handle: ConnectionHandle) -> HandlerTable:
        profile = get_profile(
            select_profile(pretty=self.options.pretty, verbose=self.options.verbose),
            self.options.logger,
        )

        layered: dict[str, Handler] = dict(handle.base_handlers)
        for kind, handler in (self.options.overrides or {}).items():
            if handler is not None:
                layered[event_name(kind)] = handler

        table = self._registry.resolve(profile, layered)
        for kind in TERMINAL_EVENTS:
            name = event_name(kind)
            if name in table:
                table[name] = self._terminal(handle, name, table[name])
        return table

    def _terminal(self, handle: ConnectionHandle, kind: str, handler: Handler) -> Handler:
        """Run handler, then always disconnect the owning connection."""
        log = self._logger

        async def on_terminal(payload: Any) -> None:
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                log.exception(f"Handler for '{kind}' raised; disconnecting anyway")
            finally:
                self.terminal_event = kind
                await handle.disconnect()
                if handle.active_session is self:
                    handle.active_session = None
                self.completed.set()

        on_terminal.__wrapped__ = handler  # type: ignore[attr-defined]
        return on_terminal

    def _on_ack(self, *args: Any) -> None:
        ack = args[0] if len(args) == 1 else args
        self._logger.debug(f"Server acknowledged run_workflow: {ack}")


async def run_workflow(
    handle: ConnectionHandle | None,
    workflow_id: str,
    token: str,
    input: Any = None,
    options: RunOptions | None = None,
) -> WorkflowRunSession:
    """Start a workflow run on a connected handle.

    Returns:
        The session, for callers that want to wait on ``completed``
    """
    request = RunRequest(workflow_id=workflow_id or "", token=token or "", input=input)
    session = WorkflowRunSession(handle, request, options)
    await session.run()
    return session
