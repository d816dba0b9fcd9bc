"""Built-in handler profiles.

A profile is a complete, read-only table from server event name to a
default handler. Three are provided:

- verbose: every event, with its full payload
- quiet: errors, warnings and run completion only
- pretty: every meaningful event as a boxed, human-readable block

All output goes through logging (the ``pocketflow_sdk.events`` logger
unless another is given), so applications decide where it ends up.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum
from types import MappingProxyType
from typing import Any

from ..protocol.events import ServerEvent
from .formatting import box, dump, field_value, has_warnings, is_error, numbered
from .registry import Handler

events_logger = logging.getLogger("pocketflow_sdk.events")


class HandlerProfile(str, Enum):
    """Names of the built-in profiles."""

    VERBOSE = "verbose"
    QUIET = "quiet"
    PRETTY = "pretty"


def _suppress(payload: Any) -> None:
    """Handler that deliberately does nothing."""


# =============================================================================
# Verbose
# =============================================================================


def verbose_handlers(logger: logging.Logger | None = None) -> Mapping[str, Handler]:
    """Profile that logs every event with its full payload."""
    log = logger or events_logger

    def emit(level: int, headline: str, payload: Any) -> None:
        log.log(level, f"{headline}\n{dump(payload)}")

    def run_complete(p: Any) -> None:
        if has_warnings(p):
            emit(
                logging.WARNING,
                f"Workflow completed with warnings: {field_value(p, 'message')}",
                p,
            )
        else:
            emit(logging.INFO, f"Workflow completed: {field_value(p, 'message')}", p)

    def stream_output(p: Any) -> None:
        level = logging.ERROR if is_error(p) else logging.INFO
        headline = (
            f"{'Error' if is_error(p) else 'Output'} from node '{field_value(p, 'node')}' "
            f"({field_value(p, 'type')}): {field_value(p, 'action')}"
        )
        emit(level, headline, p)

    return MappingProxyType(
        {
            ServerEvent.RUN_START.value: lambda p: emit(
                logging.INFO, f"Workflow started: {field_value(p, 'message')}", p
            ),
            ServerEvent.RUN_WARNING.value: lambda p: emit(
                logging.WARNING, f"Workflow warning: {field_value(p, 'message')}", p
            ),
            ServerEvent.RUN_COMPLETE.value: run_complete,
            ServerEvent.RUN_ERROR.value: lambda p: emit(
                logging.ERROR, f"Workflow error: {field_value(p, 'message')}", p
            ),
            ServerEvent.STREAM_OUTPUT.value: stream_output,
            ServerEvent.NODE_ERROR.value: lambda p: emit(
                logging.ERROR, f"Error in node '{field_value(p, 'node')}'", p
            ),
            ServerEvent.FINAL_OUTPUT.value: lambda p: emit(
                logging.INFO, f"Final output ({field_value(p, 'type')})", p
            ),
            ServerEvent.WORKFLOW_RECEIVED.value: lambda p: emit(
                logging.INFO, "Workflow received by server", p
            ),
            ServerEvent.WORKFLOW_ERROR.value: lambda p: emit(
                logging.ERROR, f"Workflow error: {field_value(p, 'message') or 'Unknown error'}", p
            ),
            ServerEvent.WORKFLOW_LOG.value: lambda p: emit(logging.INFO, "Workflow log", p),
            ServerEvent.FEEDBACK_REQUEST.value: lambda p: emit(
                logging.INFO, f"Feedback requested: {field_value(p, 'prompt')}", p
            ),
            ServerEvent.GENERATION_ERROR.value: lambda p: emit(
                logging.ERROR, f"Generation error: {field_value(p, 'message')}", p
            ),
            ServerEvent.GENERATION_UPDATE.value: lambda p: emit(
                logging.INFO, f"Generation update: {field_value(p, 'message')}", p
            ),
            ServerEvent.GENERATION_COMPLETE.value: lambda p: emit(
                logging.INFO, "Generation complete", p
            ),
        }
    )


# =============================================================================
# Quiet
# =============================================================================


def quiet_handlers(logger: logging.Logger | None = None) -> Mapping[str, Handler]:
    """Profile that reports only problems and completion."""
    log = logger or events_logger

    def run_warning(p: Any) -> None:
        log.warning(f"Workflow warning: {field_value(p, 'message')}")
        if field_value(p, "errors"):
            log.warning(f"Errors: {dump(field_value(p, 'errors'))}")

    def run_complete(p: Any) -> None:
        if has_warnings(p):
            log.warning(f"Workflow completed with warnings: {field_value(p, 'message')}")
            if field_value(p, "errors"):
                log.warning(f"Errors: {dump(field_value(p, 'errors'))}")
        else:
            log.info(f"Workflow completed: {field_value(p, 'message')}")

    def failure(label: str) -> Handler:
        def handler(p: Any) -> None:
            log.error(f"{label}: {field_value(p, 'message') or 'Unknown error'}")
            if field_value(p, "stack"):
                log.error(f"Stack: {field_value(p, 'stack')}")

        return handler

    def stream_output(p: Any) -> None:
        if is_error(p):
            log.error(
                f"Error from node '{field_value(p, 'node')}' ({field_value(p, 'type')}): "
                f"{field_value(p, 'action')}"
            )

    return MappingProxyType(
        {
            ServerEvent.RUN_START.value: _suppress,
            ServerEvent.RUN_WARNING.value: run_warning,
            ServerEvent.RUN_COMPLETE.value: run_complete,
            ServerEvent.RUN_ERROR.value: failure("Workflow error"),
            ServerEvent.STREAM_OUTPUT.value: stream_output,
            ServerEvent.NODE_ERROR.value: lambda p: log.error(
                f"Error in node '{field_value(p, 'node')}': {field_value(p, 'error')}"
            ),
            ServerEvent.FINAL_OUTPUT.value: _suppress,
            ServerEvent.WORKFLOW_RECEIVED.value: _suppress,
            ServerEvent.WORKFLOW_ERROR.value: failure("Workflow error"),
            ServerEvent.WORKFLOW_LOG.value: _suppress,
            ServerEvent.FEEDBACK_REQUEST.value: _suppress,
            ServerEvent.GENERATION_ERROR.value: failure("Generation error"),
            ServerEvent.GENERATION_UPDATE.value: _suppress,
            ServerEvent.GENERATION_COMPLETE.value: _suppress,
        }
    )


# =============================================================================
# Pretty
# =============================================================================


def pretty_handlers(logger: logging.Logger | None = None) -> Mapping[str, Handler]:
    """Profile that renders events as boxed blocks."""
    log = logger or events_logger

    def block(level: int, title: str, *lines: str) -> None:
        log.log(level, "\n".join([box(title), *[line for line in lines if line]]))

    def run_warning(p: Any) -> None:
        errors = field_value(p, "errors") or []
        block(
            logging.WARNING,
            "WORKFLOW WARNING",
            str(field_value(p, "message", "")),
            f"\nErrors:\n{numbered(errors)}" if errors else "",
        )

    def run_complete(p: Any) -> None:
        errors = field_value(p, "errors") or []
        state = f"\nFinal State:\n{dump(field_value(p, 'state', {}))}"
        if has_warnings(p):
            block(
                logging.WARNING,
                "WORKFLOW COMPLETED WITH WARNINGS",
                str(field_value(p, "message", "")),
                f"\nErrors:\n{numbered(errors)}" if errors else "",
                state,
            )
        else:
            block(
                logging.INFO,
                "WORKFLOW COMPLETED SUCCESSFULLY",
                str(field_value(p, "message", "")),
                state,
            )

    def failure(title: str) -> Handler:
        def handler(p: Any) -> None:
            stack = field_value(p, "stack")
            block(
                logging.ERROR,
                title,
                str(field_value(p, "message") or "Unknown error"),
                f"\nStack Trace:\n{stack}" if stack else "",
            )

        return handler

    def stream_output(p: Any) -> None:
        kind = "Error" if is_error(p) else "Stream Output"
        log.log(
            logging.ERROR if is_error(p) else logging.INFO,
            f"\n{kind} from Node: {field_value(p, 'node')}\n"
            f"Type: {field_value(p, 'type')}\n"
            f"Action: {field_value(p, 'action')}\n"
            f"State: {dump(field_value(p, 'state'))}",
        )

    return MappingProxyType(
        {
            ServerEvent.RUN_START.value: lambda p: block(
                logging.INFO, "WORKFLOW STARTED", str(field_value(p, "message", ""))
            ),
            ServerEvent.RUN_WARNING.value: run_warning,
            ServerEvent.RUN_COMPLETE.value: run_complete,
            ServerEvent.RUN_ERROR.value: failure("WORKFLOW ERROR"),
            ServerEvent.STREAM_OUTPUT.value: stream_output,
            ServerEvent.NODE_ERROR.value: lambda p: block(
                logging.ERROR,
                "NODE ERROR",
                f"Node: {field_value(p, 'node')}",
                f"Error: {dump(field_value(p, 'error'))}",
                f"State: {dump(field_value(p, 'state'))}",
            ),
            ServerEvent.FINAL_OUTPUT.value: lambda p: block(
                logging.INFO,
                "FINAL OUTPUT",
                f"Type: {field_value(p, 'type')}",
                f"Data: {dump(field_value(p, 'data'))}",
            ),
            ServerEvent.WORKFLOW_RECEIVED.value: lambda p: block(
                logging.INFO, "WORKFLOW RECEIVED", str(field_value(p, "message") or "")
            ),
            ServerEvent.WORKFLOW_ERROR.value: failure("WORKFLOW ERROR"),
            ServerEvent.WORKFLOW_LOG.value: lambda p: block(
                logging.INFO, "WORKFLOW LOG", p if isinstance(p, str) else dump(p)
            ),
            ServerEvent.FEEDBACK_REQUEST.value: lambda p: block(
                logging.INFO, "FEEDBACK REQUESTED", str(field_value(p, "prompt", ""))
            ),
            ServerEvent.GENERATION_ERROR.value: failure("GENERATION ERROR"),
            ServerEvent.GENERATION_UPDATE.value: _suppress,
            ServerEvent.GENERATION_COMPLETE.value: _suppress,
        }
    )


# Module-level tables bound to the default events logger
VERBOSE_HANDLERS = verbose_handlers()
QUIET_HANDLERS = quiet_handlers()
PRETTY_HANDLERS = pretty_handlers()

_BUILDERS = {
    HandlerProfile.VERBOSE: verbose_handlers,
    HandlerProfile.QUIET: quiet_handlers,
    HandlerProfile.PRETTY: pretty_handlers,
}

_DEFAULT_TABLES = {
    HandlerProfile.VERBOSE: VERBOSE_HANDLERS,
    HandlerProfile.QUIET: QUIET_HANDLERS,
    HandlerProfile.PRETTY: PRETTY_HANDLERS,
}


def select_profile(pretty: bool = False, verbose: bool = False) -> HandlerProfile:
    """Pick a profile: pretty beats verbose, quiet is the default."""
    if pretty:
        return HandlerProfile.PRETTY
    if verbose:
        return HandlerProfile.VERBOSE
    return HandlerProfile.QUIET


def get_profile(
    profile: HandlerProfile | str, logger: logging.Logger | None = None
) -> Mapping[str, Handler]:
    """Handler table for a profile, optionally bound to another logger."""
    profile = HandlerProfile(profile)
    if logger is None:
        return _DEFAULT_TABLES[profile]
    return _BUILDERS[profile](logger)
