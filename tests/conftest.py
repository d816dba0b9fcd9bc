"""Pytest configuration and shared fixtures."""

from dataclasses import replace

import pytest

from pocketflow_sdk.config import ClientConfig, ReconnectPolicy
from pocketflow_sdk.transport.mock import MockTransport

SCALE = 0.01


@pytest.fixture
def transport() -> MockTransport:
    """Fresh in-memory transport."""
    return MockTransport()


@pytest.fixture
def fast_config() -> ClientConfig:
    """Config with no retry delay and a short connect timeout."""
    return ClientConfig(
        endpoint="example.com",
        api_key=None,
        connect_timeout=2.0,
        reconnect=ReconnectPolicy(
            attempts=3, delay=0.0, delay_max=0.0, randomization_factor=0.0
        ),
    )


@pytest.fixture
def scaled_default_config() -> ClientConfig:
    """Default timeout and backoff, every duration divided by 100.

    Keeps the ratio between connect_timeout and the retry delays that
    real connections see.
    """
    defaults = ClientConfig()
    policy = defaults.reconnect
    return ClientConfig(
        endpoint="example.com",
        connect_timeout=defaults.connect_timeout * SCALE,
        reconnect=replace(
            policy, delay=policy.delay * SCALE, delay_max=policy.delay_max * SCALE
        ),
    )
