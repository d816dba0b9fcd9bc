"""Event handlers: profiles, defaults, and the registry that installs them."""

from .defaults import (
    default_connection_handler,
    default_disconnection_handler,
    default_log_handler,
    default_stream_output_handler,
)
from .profiles import (
    PRETTY_HANDLERS,
    QUIET_HANDLERS,
    VERBOSE_HANDLERS,
    HandlerProfile,
    get_profile,
    pretty_handlers,
    quiet_handlers,
    select_profile,
    verbose_handlers,
)
from .registry import (
    EventHandlerRegistry,
    Handler,
    HandlerTable,
    register_handlers,
    resolve_handlers,
)

__all__ = [
    # Registry
    "EventHandlerRegistry",
    "Handler",
    "HandlerTable",
    "resolve_handlers",
    "register_handlers",
    # Profiles
    "HandlerProfile",
    "VERBOSE_HANDLERS",
    "QUIET_HANDLERS",
    "PRETTY_HANDLERS",
    "verbose_handlers",
    "quiet_handlers",
    "pretty_handlers",
    "get_profile",
    "select_profile",
    # Connection-level defaults
    "default_connection_handler",
    "default_disconnection_handler",
    "default_log_handler",
    "default_stream_output_handler",
]
