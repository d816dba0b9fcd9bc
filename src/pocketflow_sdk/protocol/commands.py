"""Client-originated messages.

The client sends two things to the service: the command that starts a
run, and answers to feedback requests.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class RunRequest(BaseModel):
    """A request to run one workflow.

    Immutable once built. Emitted as ``run_workflow`` with the wire
    payload ``{"flowId": ..., "token": ..., "input": ...}``.

    Emptiness of ``workflow_id`` and ``token`` is checked by the run
    session, not here, so callers get WorkflowError subclasses rather
    than validation errors.
    """

    model_config = ConfigDict(frozen=True)

    workflow_id: str
    token: str
    input: Any = None

    def to_payload(self) -> dict[str, Any]:
        """Wire form of the run command."""
        return {
            "flowId": self.workflow_id,
            "token": self.token,
            "input": self.input,
        }


class FeedbackResponse(BaseModel):
    """Answer to a feedback_request."""

    input: Any = None
    error: str | None = None

    def to_payload(self) -> dict[str, Any]:
        """Wire form; ``error`` is only present when the callback failed."""
        payload: dict[str, Any] = {"input": self.input}
        if self.error is not None:
            payload["error"] = self.error
        return payload
