"""
Configuration helpers for the Readwise MCP server.

This module centralizes base URL selection, access token loading, default
timeouts, retry settings and stream pacing. No secrets are stored in the
repository; the access token is read from environment or a local file if
present.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

# Default connection settings
DEFAULT_BASE_URL = os.getenv("BASE_URL", "https://readwise.io")
DEFAULT_HOST = os.getenv("HOST", "0.0.0.0")


def _load_timeout() -> float:
    raw_timeout = os.getenv("READWISE_HTTP_TIMEOUT")
    if raw_timeout:
        try:
            return float(raw_timeout)
        except ValueError:
            return 10.0
    return 10.0


def _load_port() -> int:
    raw_port = os.getenv("PORT")
    if raw_port:
        try:
            return int(raw_port)
        except ValueError:
            return 3000
    return 3000


def _debug_enabled() -> bool:
    return os.getenv("DEBUG", "").lower() == "true" or os.getenv("NODE_ENV") == "development"


DEFAULT_TIMEOUT = _load_timeout()
DEFAULT_PORT = _load_port()

# Access token handling
ACCESS_TOKEN_ENV_VAR = "ACCESS_TOKEN"
ACCESS_TOKEN_FILE_ENV_VAR = "ACCESS_TOKEN_FILE"
DEFAULT_ACCESS_TOKEN_FILE = "access_token.txt"

# Upstream retry policy
DEFAULT_RETRIES = 3
DEFAULT_RETRY_DELAY = 5.0

# Pause between streamed results
DEFAULT_STREAM_ITEM_DELAY = 0.1

DEBUG = _debug_enabled()
LOG_LEVEL = os.getenv("READWISE_MCP_LOG_LEVEL", "DEBUG" if DEBUG else "INFO")
LOG_FORMAT = os.getenv("READWISE_MCP_LOG_FORMAT", "json")  # json or plain


def load_access_token() -> Optional[str]:
    """
    Load the Readwise access token from environment or a local file.

    Returns:
        The token string if available, otherwise None. The token is never logged
        or returned to callers.
    """
    env_token = os.getenv(ACCESS_TOKEN_ENV_VAR)
    if env_token:
        return env_token.strip()

    token_path = os.getenv(ACCESS_TOKEN_FILE_ENV_VAR, DEFAULT_ACCESS_TOKEN_FILE)
    if token_path:
        path = Path(token_path)
        if path.is_file():
            return path.read_text(encoding="utf-8").strip() or None

    return None


@dataclass(frozen=True, slots=True)
class ReadwiseConfig:
    """Runtime configuration for the server and its Readwise upstream."""

    base_url: str = DEFAULT_BASE_URL
    timeout: float = DEFAULT_TIMEOUT
    access_token: Optional[str] = load_access_token()
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    retries: int = DEFAULT_RETRIES
    retry_delay: float = DEFAULT_RETRY_DELAY
    stream_item_delay: float = DEFAULT_STREAM_ITEM_DELAY
    initialize_on_startup: bool = True
    debug: bool = DEBUG
    log_level: str = LOG_LEVEL
    log_format: str = LOG_FORMAT


default_config = ReadwiseConfig()
