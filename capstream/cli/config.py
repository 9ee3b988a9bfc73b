"""
capstream CLI Configuration Module

Handles configuration priority:
  1. CLI flags (highest priority)
  2. Environment variables
  3. Default values (lowest priority)

Configuration sources:
  - API_BASE: CAPSTREAM_API_BASE (env) → http://127.0.0.1:8000 (default)
  - QUERY_PATH: CAPSTREAM_QUERY_PATH (env) → /api/v1/nl/query (default)
  - TIMEOUT: CAPSTREAM_CLI_TIMEOUT (env) → 30 (default, seconds)
  - OUTPUT_FORMAT: CAPSTREAM_CLI_OUTPUT_FORMAT (env) → text (default, text|json)
  - TOKEN: CAPSTREAM_API_TOKEN (env) → unset (sent as a bearer header)
"""

import os
from dataclasses import dataclass
from typing import Literal, Optional

DEFAULT_API_BASE = "http://127.0.0.1:8000"
DEFAULT_QUERY_PATH = "/api/v1/nl/query"
DEFAULT_TIMEOUT = 30


@dataclass
class CLIConfig:
    """CLI Configuration object."""

    api_base: str = DEFAULT_API_BASE
    query_path: str = DEFAULT_QUERY_PATH
    timeout: int = DEFAULT_TIMEOUT  # seconds, connect/write only
    output_format: Literal["text", "json"] = "text"
    token: Optional[str] = None
    verbose: bool = False

    def auth_headers(self) -> dict[str, str]:
        return {"Authorization": f"Bearer {self.token}"} if self.token else {}

    def to_dict(self) -> dict:
        """Convert to dictionary (safe for display, no secrets)."""
        return {
            "api_base": self.api_base,
            "query_path": self.query_path,
            "timeout": self.timeout,
            "output_format": self.output_format,
            "token": "***" if self.token else None,
            "verbose": self.verbose,
        }


def get_api_base_from_env() -> str:
    return os.getenv("CAPSTREAM_API_BASE") or DEFAULT_API_BASE


def get_query_path_from_env() -> str:
    path = os.getenv("CAPSTREAM_QUERY_PATH") or DEFAULT_QUERY_PATH
    return path if path.startswith("/") else f"/{path}"


def get_timeout_from_env() -> int:
    """
    Get timeout value from environment variables.

    Source: CAPSTREAM_CLI_TIMEOUT (seconds)
    Default: 30
    """
    try:
        timeout = os.getenv("CAPSTREAM_CLI_TIMEOUT")
        if timeout:
            return int(timeout)
    except (ValueError, TypeError):
        pass

    return DEFAULT_TIMEOUT


def get_output_format_from_env() -> Literal["text", "json"]:
    output_format = os.getenv("CAPSTREAM_CLI_OUTPUT_FORMAT", "text").lower()
    if output_format in ("text", "json"):
        return output_format  # type: ignore
    return "text"


def get_token_from_env() -> Optional[str]:
    token = os.getenv("CAPSTREAM_API_TOKEN", "").strip()
    return token or None


def get_config(
    api_base: Optional[str] = None,
    query_path: Optional[str] = None,
    timeout: Optional[int] = None,
    output_format: Optional[Literal["text", "json"]] = None,
    token: Optional[str] = None,
    verbose: Optional[bool] = None,
) -> CLIConfig:
    """
    Build CLI configuration with priority: CLI flag > env > default.

    Returns:
        CLIConfig object with resolved values
    """
    return CLIConfig(
        api_base=api_base or get_api_base_from_env(),
        query_path=query_path or get_query_path_from_env(),
        timeout=timeout or get_timeout_from_env(),
        output_format=output_format or get_output_format_from_env(),
        token=token or get_token_from_env(),
        verbose=bool(verbose),
    )
