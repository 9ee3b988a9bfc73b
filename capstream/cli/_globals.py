"""Process-wide CLI configuration, set once by the global options callback."""

from typing import Optional

from capstream.cli.config import CLIConfig, get_config

_config: Optional[CLIConfig] = None


def set_global_config(config: CLIConfig) -> None:
    global _config
    _config = config


def get_global_config() -> CLIConfig:
    """Return the configuration of this invocation, resolving env/defaults if unset."""
    global _config
    if _config is None:
        _config = get_config()
    return _config


def reset_global_config() -> None:
    global _config
    _config = None
