"""Client configuration.

Settings come from explicit arguments first, then the environment, then
a .env file in or above the working directory:

    POCKETFLOW_SERVER_URL          Service endpoint (default: api.pocketflow.ai)
    POCKETFLOW_API_KEY             Bearer token for the handshake
    POCKETFLOW_CONNECT_TIMEOUT     Seconds to wait for the connection (default: 30)
    POCKETFLOW_RECONNECT_ATTEMPTS  Connection attempts before giving up (default: 10)
    POCKETFLOW_TRANSPORTS          Comma separated engine.io transports
    POCKETFLOW_LOG_LEVEL           Level used by configure_logging()
"""

from __future__ import annotations

import logging
import os
import random
import sys
from collections.abc import Mapping
from dataclasses import dataclass, field
from urllib.parse import urlsplit

from dotenv import dotenv_values, find_dotenv

from .errors import InvalidEndpointError

logger = logging.getLogger(__name__)

DEFAULT_ENDPOINT = "api.pocketflow.ai"
DEFAULT_CONNECT_TIMEOUT = 30.0
DEFAULT_TRANSPORTS = ("polling", "websocket")

SECURE_SCHEME = "https"
RECOGNIZED_SCHEMES = frozenset({"http", "https", "ws", "wss"})

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def normalize_endpoint(endpoint: str) -> str:
    """Return the endpoint as a URL with a scheme.

    A bare host gets the secure scheme; a URL with a recognized scheme is
    kept as given (minus trailing slashes).

    Raises:
        InvalidEndpointError: If the endpoint is empty, has an unknown
            scheme, or has no host
    """
    url = (endpoint or "").strip()
    if not url:
        raise InvalidEndpointError(endpoint, "endpoint is empty")

    if "://" in url:
        scheme = url.split("://", 1)[0].lower()
        if scheme not in RECOGNIZED_SCHEMES:
            raise InvalidEndpointError(endpoint, f"unsupported scheme '{scheme}'")
    else:
        url = f"{SECURE_SCHEME}://{url}"
        logger.debug(f"Added {SECURE_SCHEME} scheme to endpoint: {url}")

    if not urlsplit(url).netloc:
        raise InvalidEndpointError(endpoint, "no host")

    return url.rstrip("/")


def _env_int(env: Mapping[str, str], key: str, default: int) -> int:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning(f"Ignoring {key}={raw!r}: not an integer, using {default}")
        return default


def _env_float(env: Mapping[str, str], key: str, default: float) -> float:
    raw = env.get(key)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        logger.warning(f"Ignoring {key}={raw!r}: not a number, using {default}")
        return default


@dataclass
class ReconnectPolicy:
    """Bounded retry with linear backoff and jitter."""

    enabled: bool = True
    attempts: int = 10
    delay: float = 1.0
    delay_max: float = 5.0
    randomization_factor: float = 0.5

    def backoff(self, attempt: int, rng: random.Random | None = None) -> float:
        """Seconds to wait before retry number ``attempt`` (1-based)."""
        base = min(self.delay * max(attempt, 1), self.delay_max)
        if self.randomization_factor:
            roll = (rng or random).uniform(-1.0, 1.0)
            base *= 1.0 + roll * self.randomization_factor
        return max(0.0, min(base, self.delay_max))


@dataclass
class ClientConfig:
    """Connection settings for the workflow service."""

    endpoint: str = DEFAULT_ENDPOINT
    api_key: str | None = None
    connect_timeout: float = DEFAULT_CONNECT_TIMEOUT
    transports: list[str] = field(default_factory=lambda: list(DEFAULT_TRANSPORTS))
    reconnect: ReconnectPolicy = field(default_factory=ReconnectPolicy)

    @property
    def url(self) -> str:
        """Normalized endpoint URL."""
        return normalize_endpoint(self.endpoint)

    @classmethod
    def from_env(
        cls,
        env: Mapping[str, str] | None = None,
        dotenv_path: str | os.PathLike[str] | None = None,
    ) -> ClientConfig:
        """Build a config from environment variables.

        Args:
            env: Mapping to read from (default: os.environ, falling back
                to values from a .env file)
            dotenv_path: .env file used when env is not given
                (default: the nearest .env from the working directory)
        """
        if env is None:
            path = dotenv_path or find_dotenv(usecwd=True)
            file_values = dotenv_values(path) if path else {}
            env = {
                **{k: v for k, v in file_values.items() if v is not None},
                **os.environ,
            }

        transports_raw = env.get("POCKETFLOW_TRANSPORTS", "")
        transports = [t.strip() for t in transports_raw.split(",") if t.strip()]

        return cls(
            endpoint=env.get("POCKETFLOW_SERVER_URL") or DEFAULT_ENDPOINT,
            api_key=env.get("POCKETFLOW_API_KEY") or None,
            connect_timeout=_env_float(
                env, "POCKETFLOW_CONNECT_TIMEOUT", DEFAULT_CONNECT_TIMEOUT
            ),
            transports=transports or list(DEFAULT_TRANSPORTS),
            reconnect=ReconnectPolicy(
                attempts=_env_int(env, "POCKETFLOW_RECONNECT_ATTEMPTS", 10),
            ),
        )


def configure_logging(level: str | int | None = None) -> None:
    """Send SDK logs to stderr.

    Intended for scripts. The library itself never touches logging
    configuration.
    """
    if level is None:
        level = os.getenv("POCKETFLOW_LOG_LEVEL", "INFO")
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root_logger.addHandler(stderr_handler)
    root_logger.setLevel(level)
