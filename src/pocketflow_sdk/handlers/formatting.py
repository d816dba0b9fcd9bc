"""Rendering helpers shared by the profiles and default handlers.

Payloads arrive either as decoded models or, for workflow_log, unknown
events and malformed data, as raw values. These helpers read both.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

BOX_WIDTH = 40


def field_value(payload: Any, name: str, default: Any = None) -> Any:
    """Read a field from a payload model or a raw dict."""
    if isinstance(payload, Mapping):
        return payload.get(name, default)
    return getattr(payload, name, default)


def is_error(payload: Any) -> bool:
    """stream_output payloads flag errors as is_error (model) or isError (raw)."""
    return bool(field_value(payload, "is_error") or field_value(payload, "isError"))


def has_warnings(payload: Any) -> bool:
    return bool(field_value(payload, "warning")) or bool(field_value(payload, "errors"))


def dump(value: Any) -> str:
    """Indented JSON for payloads and state."""
    if isinstance(value, BaseModel):
        value = value.model_dump(by_alias=True, exclude_none=True)
    try:
        return json.dumps(value, indent=2, default=str)
    except (TypeError, ValueError):
        return repr(value)


def box(title: str) -> str:
    """Three-line box around a title."""
    inner = BOX_WIDTH - 2
    return "\n".join(
        [
            "┌" + "─" * inner + "┐",
            "│ " + title.ljust(inner - 1) + "│",
            "└" + "─" * inner + "┘",
        ]
    )


def numbered(errors: Any) -> str:
    return "\n".join(f"[{i}] {json.dumps(err, default=str)}" for i, err in enumerate(errors, 1))
