"""Unit tests for ConnectionHandle and connect().

Uses MockTransport - the handle's retry, timeout and teardown logic runs
for real, only the wire is simulated.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock

import pytest

from pocketflow_sdk.config import ClientConfig, ReconnectPolicy
from pocketflow_sdk.connection import (
    ConnectionHandle,
    ConnectionOptions,
    connect,
    disconnect,
)
from pocketflow_sdk.errors import (
    ConnectionTimeoutError,
    HandshakeFailedError,
    InvalidEndpointError,
    ReconnectExhaustedError,
)
from pocketflow_sdk.transport.base import CLIENT_DISCONNECT_REASON, TransportState
from pocketflow_sdk.transport.mock import MockTransport

# =============================================================================
# connect() Tests
# =============================================================================


class TestConnect:
    """Tests for establishing a connection."""

    @pytest.mark.asyncio
    async def test_bare_host_uses_https(
        self, transport: MockTransport, fast_config: ClientConfig
    ) -> None:
        """A bare host is connected over https."""
        handle = await connect("example.com", config=fast_config, transport=transport)

        assert transport.open_calls[0]["url"] == "https://example.com"
        assert handle.state == TransportState.CONNECTED
        assert handle.connected is True
        assert handle.sid is not None

    @pytest.mark.asyncio
    async def test_http_endpoint_unchanged(
        self, transport: MockTransport, fast_config: ClientConfig
    ) -> None:
        await connect("http://example.com", config=fast_config, transport=transport)
        assert transport.open_calls[0]["url"] == "http://example.com"

    @pytest.mark.asyncio
    async def test_endpoint_from_config(
        self, transport: MockTransport, fast_config: ClientConfig
    ) -> None:
        """Without an endpoint the config's is used."""
        config = replace(fast_config, endpoint="ws://localhost:3000")
        await connect(config=config, transport=transport)
        assert transport.open_calls[0]["url"] == "ws://localhost:3000"

    @pytest.mark.asyncio
    async def test_invalid_endpoint(
        self, transport: MockTransport, fast_config: ClientConfig
    ) -> None:
        """Bad endpoints fail before any connection attempt."""
        with pytest.raises(InvalidEndpointError):
            await connect("gopher://example.com", config=fast_config, transport=transport)
        assert transport.open_attempts == 0

    @pytest.mark.asyncio
    async def test_token_in_handshake_auth(
        self, transport: MockTransport, fast_config: ClientConfig
    ) -> None:
        """The token travels in the auth payload, not the URL."""
        await connect(
            "example.com",
            ConnectionOptions(token="tok_abc"),
            config=fast_config,
            transport=transport,
        )

        call = transport.open_calls[0]
        assert call["auth"] == {"token": "tok_abc"}
        assert "tok_abc" not in call["url"]
        assert call["transports"] == ["polling", "websocket"]

    @pytest.mark.asyncio
    async def test_token_falls_back_to_api_key(
        self, transport: MockTransport, fast_config: ClientConfig
    ) -> None:
        config = replace(fast_config, api_key="env_key")
        await connect("example.com", config=config, transport=transport)
        assert transport.open_calls[0]["auth"] == {"token": "env_key"}

    @pytest.mark.asyncio
    async def test_missing_token_warns(
        self,
        transport: MockTransport,
        fast_config: ClientConfig,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """No token is logged but not fatal."""
        with caplog.at_level(logging.WARNING):
            handle = await connect("example.com", config=fast_config, transport=transport)

        assert handle.connected
        assert transport.open_calls[0]["auth"] is None
        assert "No authentication token provided" in caplog.text

    @pytest.mark.asyncio
    async def test_token_masked_in_logs(
        self,
        transport: MockTransport,
        fast_config: ClientConfig,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """The full token never reaches the logs."""
        token = "supersecrettoken1234"
        with caplog.at_level(logging.DEBUG):
            await connect(
                "example.com",
                ConnectionOptions(token=token),
                config=fast_config,
                transport=transport,
            )

        assert token not in caplog.text
        assert "supe...1234" in caplog.text

    @pytest.mark.asyncio
    async def test_on_connect_called(
        self, transport: MockTransport, fast_config: ClientConfig
    ) -> None:
        on_connect = MagicMock()
        await connect(
            "example.com",
            ConnectionOptions(on_connect=on_connect),
            config=fast_config,
            transport=transport,
        )
        on_connect.assert_called_once_with()

    @pytest.mark.asyncio
    async def test_feedback_bridge_installed(
        self, transport: MockTransport, fast_config: ClientConfig
    ) -> None:
        """Every handle answers feedback requests."""
        handle = await connect("example.com", config=fast_config, transport=transport)

        assert handle.feedback is not None
        assert transport.listener_count("feedback_request") == 1


# =============================================================================
# Retry and failure Tests
# =============================================================================


class TestConnectRetry:
    """Tests for bounded retry, timeout and handshake failure."""

    @pytest.mark.asyncio
    async def test_retries_until_connected(self, fast_config: ClientConfig) -> None:
        """Network failures are retried within the limit."""
        transport = MockTransport(fail_attempts=2)

        handle = await connect("example.com", config=fast_config, transport=transport)

        assert handle.connected
        assert handle.attempts == 3
        assert transport.open_attempts == 3

    @pytest.mark.asyncio
    async def test_exhausted(self, fast_config: ClientConfig) -> None:
        """Failing past the limit raises and leaves no listeners behind."""
        transport = MockTransport(fail_attempts=100)

        with pytest.raises(ReconnectExhaustedError) as exc_info:
            await connect("example.com", config=fast_config, transport=transport)

        # One initial attempt plus three retries
        assert exc_info.value.attempts == 4
        assert transport.open_attempts == 4
        assert isinstance(exc_info.value, HandshakeFailedError)
        assert transport.events == []

    @pytest.mark.asyncio
    async def test_exhausted_handle_state(self, fast_config: ClientConfig) -> None:
        """A handle that gave up is FAILED and records why."""
        transport = MockTransport(fail_attempts=100)
        handle = ConnectionHandle("https://example.com", transport, config=fast_config)

        with pytest.raises(ReconnectExhaustedError) as exc_info:
            await handle.open()

        assert handle.state == TransportState.FAILED
        assert handle.last_error is exc_info.value
        assert handle.connected is False

    @pytest.mark.asyncio
    async def test_rejected_handshake_not_retried(self, fast_config: ClientConfig) -> None:
        """A refused handshake fails at once with an auth error."""
        transport = MockTransport(fail_attempts=1, reject=True, error_message="Invalid token")

        with pytest.raises(HandshakeFailedError) as exc_info:
            await connect("example.com", config=fast_config, transport=transport)

        assert exc_info.value.auth_failed is True
        assert "Authentication failed" in str(exc_info.value)
        assert not isinstance(exc_info.value, ReconnectExhaustedError)
        assert transport.open_attempts == 1

    @pytest.mark.asyncio
    async def test_retry_disabled(self, fast_config: ClientConfig) -> None:
        """Without retry the first failure is a handshake failure."""
        config = replace(fast_config, reconnect=ReconnectPolicy(enabled=False))
        transport = MockTransport(fail_attempts=1)

        with pytest.raises(HandshakeFailedError) as exc_info:
            await connect("example.com", config=config, transport=transport)

        assert exc_info.value.auth_failed is False
        assert exc_info.value.cause is not None
        assert transport.open_attempts == 1

    @pytest.mark.asyncio
    async def test_timeout(self, fast_config: ClientConfig) -> None:
        """Without retry, an attempt that never connects raises a timeout error."""
        config = replace(
            fast_config, connect_timeout=0.05, reconnect=ReconnectPolicy(enabled=False)
        )
        transport = MockTransport(hang=True)
        handle = ConnectionHandle("https://example.com", transport, config=config)

        with pytest.raises(ConnectionTimeoutError) as exc_info:
            await handle.open()

        assert isinstance(exc_info.value, TimeoutError)
        assert exc_info.value.timeout == 0.05
        assert transport.open_attempts == 1
        assert handle.state == TransportState.FAILED
        assert transport.events == []

    @pytest.mark.asyncio
    async def test_timed_out_attempts_count_as_failures(self, fast_config: ClientConfig) -> None:
        """With retry, each timed-out attempt uses up the attempt budget."""
        config = replace(fast_config, connect_timeout=0.02)
        transport = MockTransport(hang=True)

        with pytest.raises(ReconnectExhaustedError) as exc_info:
            await connect("example.com", config=config, transport=transport)

        assert exc_info.value.attempts == 4
        assert transport.open_attempts == 4
        assert isinstance(exc_info.value.cause, ConnectionTimeoutError)

    @pytest.mark.asyncio
    async def test_default_policy_reaches_exhaustion(
        self, scaled_default_config: ClientConfig
    ) -> None:
        """Default timeout and backoff give up on the attempt budget, not the clock."""
        transport = MockTransport(fail_attempts=1000)
        handle = ConnectionHandle(
            "https://example.com", transport, config=scaled_default_config
        )

        with pytest.raises(ReconnectExhaustedError) as exc_info:
            await handle.open()

        policy = scaled_default_config.reconnect
        assert exc_info.value.attempts == policy.attempts + 1
        assert transport.open_attempts == policy.attempts + 1
        assert handle.last_error is exc_info.value

    @pytest.mark.asyncio
    async def test_retry_logged(
        self, fast_config: ClientConfig, caplog: pytest.LogCaptureFixture
    ) -> None:
        transport = MockTransport(fail_attempts=1)
        with caplog.at_level(logging.INFO, logger="pocketflow_sdk.connection"):
            await connect("example.com", config=fast_config, transport=transport)

        assert "Connection attempt #1 failed" in caplog.text
        assert "Connected after 2 attempts" in caplog.text


# =============================================================================
# Disconnect Tests
# =============================================================================


class TestDisconnect:
    """Tests for teardown."""

    @pytest.mark.asyncio
    async def test_removes_listeners_then_closes(
        self, transport: MockTransport, fast_config: ClientConfig
    ) -> None:
        handle = await connect("example.com", config=fast_config, transport=transport)
        assert transport.events

        await handle.disconnect()

        assert transport.events == []
        assert transport.close_calls == 1
        assert handle.state == TransportState.DISCONNECTED
        assert handle.connected is False

    @pytest.mark.asyncio
    async def test_disconnect_callback_reason(
        self, transport: MockTransport, fast_config: ClientConfig
    ) -> None:
        """A client disconnect reports its reason exactly once."""
        on_disconnect = MagicMock()
        handle = await connect(
            "example.com",
            ConnectionOptions(on_disconnect=on_disconnect),
            config=fast_config,
            transport=transport,
        )

        await handle.disconnect()

        on_disconnect.assert_called_once_with(CLIENT_DISCONNECT_REASON)

    @pytest.mark.asyncio
    async def test_idempotent(self, transport: MockTransport, fast_config: ClientConfig) -> None:
        handle = await connect("example.com", config=fast_config, transport=transport)

        await handle.disconnect()
        await handle.disconnect()
        await disconnect(handle)

        assert transport.close_calls == 1

    @pytest.mark.asyncio
    async def test_never_opened(self, transport: MockTransport) -> None:
        """Disconnecting a handle that never connected is a no-op."""
        handle = ConnectionHandle("https://example.com", transport)
        await handle.disconnect()
        assert transport.close_calls == 0

    @pytest.mark.asyncio
    async def test_module_disconnect_accepts_none(self) -> None:
        await disconnect(None)

    @pytest.mark.asyncio
    async def test_close_error_swallowed(
        self,
        transport: MockTransport,
        fast_config: ClientConfig,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        """A transport failing to close does not escape disconnect()."""
        handle = await connect("example.com", config=fast_config, transport=transport)
        transport.close = AsyncMock(side_effect=OSError("socket gone"))

        with caplog.at_level(logging.ERROR):
            await handle.disconnect()

        assert "Error closing transport" in caplog.text
        assert transport.events == []

    @pytest.mark.asyncio
    async def test_no_events_after_disconnect(
        self, transport: MockTransport, fast_config: ClientConfig
    ) -> None:
        """Handlers registered before teardown are never called again."""
        on_log = MagicMock()
        handle = await connect(
            "example.com",
            ConnectionOptions(on_log=on_log),
            config=fast_config,
            transport=transport,
        )
        await transport.inject("workflow_log", "before")
        await handle.disconnect()
        await transport.inject("workflow_log", "after")

        on_log.assert_called_once_with("before")

    @pytest.mark.asyncio
    async def test_context_manager(
        self, transport: MockTransport, fast_config: ClientConfig
    ) -> None:
        handle = ConnectionHandle("https://example.com", transport, config=fast_config)

        async with handle as opened:
            assert opened is handle
            assert handle.connected

        assert transport.close_calls == 1
        assert handle.state == TransportState.DISCONNECTED


# =============================================================================
# Mid-run reconnection Tests
# =============================================================================


class TestReconnection:
    """Tests for recovering from a dropped connection."""

    @pytest.mark.asyncio
    async def test_reconnects_and_keeps_handlers(
        self, transport: MockTransport, fast_config: ClientConfig
    ) -> None:
        on_log = MagicMock()
        on_disconnect = MagicMock()
        handle = await connect(
            "example.com",
            ConnectionOptions(on_log=on_log, on_disconnect=on_disconnect),
            config=fast_config,
            transport=transport,
        )
        transport.fail_next(1)

        await transport.drop("transport close")
        assert handle.state == TransportState.RECONNECTING
        await handle._reconnect_task

        assert handle.state == TransportState.CONNECTED
        assert handle.attempts == 2
        on_disconnect.assert_called_once_with("transport close")

        await transport.inject("workflow_log", "still here")
        on_log.assert_called_once_with("still here")

    @pytest.mark.asyncio
    async def test_reconnect_exhausted(
        self, transport: MockTransport, fast_config: ClientConfig
    ) -> None:
        """Giving up force-closes the handle and reports the failure."""
        on_failed = MagicMock()
        handle = await connect(
            "example.com",
            ConnectionOptions(on_reconnect_failed=on_failed),
            config=fast_config,
            transport=transport,
        )
        transport.fail_next(100)

        await transport.drop("ping timeout")
        await handle._reconnect_task

        assert handle.state == TransportState.FAILED
        assert isinstance(handle.last_error, ReconnectExhaustedError)
        on_failed.assert_called_once_with(handle.last_error)
        assert transport.events == []

    @pytest.mark.asyncio
    async def test_server_disconnect_not_retried(
        self, transport: MockTransport, fast_config: ClientConfig
    ) -> None:
        """The service closing the connection is final."""
        handle = await connect("example.com", config=fast_config, transport=transport)
        attempts_before = transport.open_attempts

        await transport.drop("io server disconnect")

        assert handle.state == TransportState.DISCONNECTED
        assert handle._reconnect_task is None
        assert transport.open_attempts == attempts_before

    @pytest.mark.asyncio
    async def test_disconnect_cancels_reconnect(self, fast_config: ClientConfig) -> None:
        """Disconnecting while reconnecting stops the retry loop."""
        config = replace(
            fast_config,
            reconnect=ReconnectPolicy(attempts=50, delay=10.0, delay_max=10.0),
        )
        transport = MockTransport()
        handle = await connect("example.com", config=config, transport=transport)
        transport.fail_next(100)

        await transport.drop("transport close")
        task = handle._reconnect_task
        await handle.disconnect()

        with pytest.raises(asyncio.CancelledError):
            await task
        assert task.cancelled()
        assert handle.state == TransportState.DISCONNECTED

    @pytest.mark.asyncio
    async def test_default_policy_mid_run_exhaustion(
        self, transport: MockTransport, scaled_default_config: ClientConfig
    ) -> None:
        """A drop with default timing reports exhaustion to on_reconnect_failed."""
        failures: list[Exception] = []
        handle = await connect(
            "example.com",
            ConnectionOptions(on_reconnect_failed=failures.append),
            config=scaled_default_config,
            transport=transport,
        )
        transport.fail_next(1000)

        await transport.drop("transport close")
        await handle._reconnect_task

        assert len(failures) == 1
        assert isinstance(failures[0], ReconnectExhaustedError)
        assert handle.last_error is failures[0]
        assert handle.state == TransportState.FAILED
        assert handle.attempts == scaled_default_config.reconnect.attempts + 1
