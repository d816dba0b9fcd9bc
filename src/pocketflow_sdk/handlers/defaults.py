"""Default connection-level handlers.

Used by connect() when the caller does not supply its own callbacks.
"""

from __future__ import annotations

import logging
from typing import Any

from .formatting import dump, field_value, is_error

logger = logging.getLogger("pocketflow_sdk.events")


def default_connection_handler() -> None:
    """Log that the socket connected."""
    logger.info("Socket connected successfully")


def default_disconnection_handler(reason: str) -> None:
    """Log that the socket disconnected, and why."""
    logger.info(f"Socket disconnected: {reason}")


def default_log_handler(data: Any) -> None:
    """Log a workflow_log message as-is."""
    logger.info(data if isinstance(data, str) else dump(data))


def default_stream_output_handler(data: Any) -> None:
    """Log one line per stream_output event, plus the state when present."""
    prefix = "Error" if is_error(data) else "Output"
    logger.log(
        logging.ERROR if is_error(data) else logging.INFO,
        f"{prefix} from node '{field_value(data, 'node')}' ({field_value(data, 'type')}): "
        f"{field_value(data, 'action')}",
    )
    state = field_value(data, "state")
    if state:
        logger.info(f"State: {dump(state)}")
