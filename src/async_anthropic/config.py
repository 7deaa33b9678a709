"""Client configuration.

Config discovery (first match wins):
  1. explicit ``path`` argument
  2. ``./async_anthropic.yaml``
  3. ``~/.config/async-anthropic/config.yaml``
  4. Built-in defaults

An empty ``api_key`` is filled from the ``ANTHROPIC_API_KEY`` environment
variable.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from async_anthropic.streaming.retry import RetryPolicy

_logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.anthropic.com"
DEFAULT_API_VERSION = "2023-06-01"
API_KEY_ENV = "ANTHROPIC_API_KEY"


# ---------------------------------------------------------------------------
# Config data structures
# ---------------------------------------------------------------------------

@dataclass
class RetrySpec:
    """Retry settings as written in the config file."""

    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0
    max_delay: float = 60.0
    jitter: float = 0.25

    def to_policy(self) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            multiplier=self.multiplier,
            max_delay=self.max_delay,
            jitter=self.jitter,
        )


@dataclass
class ClientConfig:
    """Connection and retry settings for ``AsyncAnthropicClient``.

    ``timeout`` bounds each HTTP operation, ``connect_timeout`` the TCP/TLS
    setup, and ``idle_timeout`` the silence allowed between two stream
    frames (``None`` disables the watchdog).
    """

    api_key: str = field(default="", repr=False)
    base_url: str = DEFAULT_BASE_URL
    version: str = DEFAULT_API_VERSION
    beta: str | None = None
    timeout: float = 600.0
    connect_timeout: float = 10.0
    idle_timeout: float | None = 60.0
    retry: RetrySpec = field(default_factory=RetrySpec)

    def __post_init__(self) -> None:
        if not self.api_key:
            self.api_key = os.environ.get(API_KEY_ENV, "")
            if not self.api_key:
                _logger.warning("Client configured without an API key")


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------

_SEARCH_PATHS = [
    Path("./async_anthropic.yaml"),
    Path.home() / ".config" / "async-anthropic" / "config.yaml",
]


def _parse_retry(raw: dict[str, Any] | None) -> RetrySpec:
    if not raw:
        return RetrySpec()
    known = {
        k: v for k, v in raw.items()
        if v is not None and k in RetrySpec.__dataclass_fields__
    }
    return RetrySpec(**known)


def load_config(path: str | Path | None = None) -> ClientConfig:
    """Load configuration from YAML.

    Parameters
    ----------
    path:
        Explicit config path.  If *None*, search default locations.

    Returns
    -------
    ClientConfig
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path)
        if not config_path.exists():
            _logger.warning("Config file not found: %s; using defaults", path)
            return ClientConfig()
    else:
        for candidate in _SEARCH_PATHS:
            if candidate.exists():
                config_path = candidate
                break

    if config_path is None:
        _logger.info("No config file found; using defaults")
        return ClientConfig()

    _logger.info("Loading config from %s", config_path)
    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    return ClientConfig(
        api_key=raw.get("api_key") or "",
        base_url=raw.get("base_url", DEFAULT_BASE_URL),
        version=raw.get("version", DEFAULT_API_VERSION),
        beta=raw.get("beta"),
        timeout=float(raw.get("timeout", 600.0)),
        connect_timeout=float(raw.get("connect_timeout", 10.0)),
        idle_timeout=raw.get("idle_timeout", 60.0),
        retry=_parse_retry(raw.get("retry")),
    )
