"""Unit tests for the feedback bridge."""

from __future__ import annotations

import asyncio
import logging
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from pocketflow_sdk.feedback import FeedbackBridge, on_feedback_request, prompt_for_feedback
from pocketflow_sdk.protocol.events import FeedbackRequestPayload


def make_bridge(callback) -> tuple[FeedbackBridge, AsyncMock]:
    emit = AsyncMock()
    return FeedbackBridge(emit, callback), emit


# =============================================================================
# FeedbackBridge Tests
# =============================================================================


class TestFeedbackBridge:
    """Tests for answering feedback requests."""

    @pytest.mark.asyncio
    async def test_sync_callback(self) -> None:
        """A plain function's answer is sent back."""
        bridge, emit = make_bridge(lambda request: f"answer to {request.prompt}")

        bridge.handle_request({"prompt": "Q?"})
        await bridge.drain()

        emit.assert_awaited_once_with("feedback_response", {"input": "answer to Q?"})

    @pytest.mark.asyncio
    async def test_async_callback(self) -> None:
        """A coroutine function's answer is awaited and sent back."""

        async def answer(request: FeedbackRequestPayload) -> str:
            await asyncio.sleep(0)
            return "async answer"

        bridge, emit = make_bridge(answer)
        bridge.handle_request(FeedbackRequestPayload(prompt="Q?"))
        await bridge.drain()

        emit.assert_awaited_once_with("feedback_response", {"input": "async answer"})

    @pytest.mark.asyncio
    @pytest.mark.parametrize("empty", [None, ""])
    async def test_empty_answer_uses_default(self, empty) -> None:
        """An empty answer is replaced by the request's default."""
        bridge, emit = make_bridge(lambda request: empty)

        bridge.handle_request({"prompt": "Q?", "defaultValue": "fallback"})
        await bridge.drain()

        emit.assert_awaited_once_with("feedback_response", {"input": "fallback"})

    @pytest.mark.asyncio
    async def test_callback_error_still_responds(self, caplog: pytest.LogCaptureFixture) -> None:
        """A failing callback sends a null input with the error."""

        def broken(request: FeedbackRequestPayload) -> str:
            raise RuntimeError("no input today")

        bridge, emit = make_bridge(broken)
        with caplog.at_level(logging.ERROR):
            bridge.handle_request({"prompt": "Q?"})
            await bridge.drain()

        emit.assert_awaited_once_with(
            "feedback_response", {"input": None, "error": "no input today"}
        )
        assert "Feedback callback failed" in caplog.text

    @pytest.mark.asyncio
    async def test_rejected_future_still_responds(self) -> None:
        """A coroutine that raises is handled like a sync failure."""
        bridge, emit = make_bridge(AsyncMock(side_effect=ValueError()))

        bridge.handle_request({"prompt": "Q?"})
        await bridge.drain()

        emit.assert_awaited_once_with("feedback_response", {"input": None, "error": "ValueError"})

    @pytest.mark.asyncio
    async def test_emit_failure_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        """A send failure is logged, not raised."""
        emit = AsyncMock(side_effect=ConnectionError("gone"))
        bridge = FeedbackBridge(emit, lambda request: "x")

        with caplog.at_level(logging.ERROR):
            bridge.handle_request({"prompt": "Q?"})
            await bridge.drain()

        assert "Failed to send feedback_response" in caplog.text

    @pytest.mark.asyncio
    async def test_slow_callback_does_not_block(self) -> None:
        """handle_request returns before the answer is ready."""
        release = asyncio.Event()

        async def slow(request: FeedbackRequestPayload) -> str:
            await release.wait()
            return "late"

        bridge, emit = make_bridge(slow)
        bridge.handle_request({"prompt": "Q?"})
        await asyncio.sleep(0)

        assert bridge.pending_count == 1
        emit.assert_not_awaited()

        release.set()
        await bridge.drain()
        assert bridge.pending_count == 0
        emit.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancel_abandons_pending(self) -> None:
        """cancel() stops requests that have not been answered."""

        async def never(request: FeedbackRequestPayload) -> str:
            await asyncio.Event().wait()
            return "never"

        bridge, emit = make_bridge(never)
        bridge.handle_request({"prompt": "Q?"})
        await asyncio.sleep(0)

        bridge.cancel()
        await bridge.drain()

        emit.assert_not_awaited()
        assert bridge.pending_count == 0

    @pytest.mark.asyncio
    async def test_raw_string_payload(self) -> None:
        """A bare string is treated as the prompt."""
        seen: list[FeedbackRequestPayload] = []
        bridge, _ = make_bridge(lambda request: seen.append(request) or "ok")

        bridge.handle_request("What now?")
        await bridge.drain()

        assert seen[0].prompt == "What now?"


# =============================================================================
# prompt_for_feedback Tests
# =============================================================================


class TestPromptForFeedback:
    """Tests for the interactive default callback."""

    @pytest.mark.asyncio
    async def test_prompt_shows_default(self) -> None:
        """The terminal prompt shows the default value."""
        with patch("pocketflow_sdk.feedback.click.prompt", return_value="typed") as prompt:
            result = await prompt_for_feedback(
                FeedbackRequestPayload(prompt="Name?", default_value="Bob")
            )

        assert result == "typed"
        prompt.assert_called_once_with("Name?", default="Bob", show_default=True)

    @pytest.mark.asyncio
    async def test_prompt_without_default(self) -> None:
        with patch("pocketflow_sdk.feedback.click.prompt", return_value="") as prompt:
            await prompt_for_feedback(FeedbackRequestPayload(prompt="Anything?"))

        prompt.assert_called_once_with("Anything?", default="", show_default=False)

    def test_bridge_defaults_to_prompt(self) -> None:
        """Without a callback the bridge prompts on the terminal."""
        bridge = FeedbackBridge(AsyncMock())
        assert bridge._callback is prompt_for_feedback


# =============================================================================
# on_feedback_request Tests
# =============================================================================


class TestOnFeedbackRequest:
    """Tests for installing a bridge on a handle."""

    def make_handle(self) -> MagicMock:
        handle = MagicMock()
        handle.feedback = None
        handle.base_handlers = {}
        handle.emit = AsyncMock()
        return handle

    def test_installs_bridge(self) -> None:
        """The bridge is kept on the handle and as a base handler."""
        handle = self.make_handle()

        bridge = on_feedback_request(handle, lambda request: "x")

        assert handle.feedback is bridge
        assert handle.base_handlers["feedback_request"] == bridge.handle_request
        handle.remove_all_listeners.assert_called_once_with("feedback_request")
        handle.on.assert_called_once()

    def test_replaces_previous_bridge(self) -> None:
        """Installing again cancels the earlier bridge."""
        handle = self.make_handle()
        old = MagicMock()
        handle.feedback = old

        on_feedback_request(handle)

        old.cancel.assert_called_once()
