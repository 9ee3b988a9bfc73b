"""
capstream CLI Main Entry Point

Streams questions to the analytics assistant backend and decodes recorded
response bodies offline.
"""

import sys

import typer

# Load project environment variables before anything reads them
from capstream.core.env_loader import load_project_env

load_project_env()

from capstream.cli._globals import set_global_config
from capstream.cli.commands import ask, replay
from capstream.cli.config import get_config
from capstream.core.logger import configure_logging


def config_callback(
    api_base: str = typer.Option(
        None,
        "--api-base",
        help="Backend API base URL (e.g., http://127.0.0.1:8000). Overrides CAPSTREAM_API_BASE env var.",
        envvar="CAPSTREAM_API_BASE",
    ),
    json_output: bool = typer.Option(
        False,
        "--json",
        help="Print one JSON object per event instead of plain text.",
    ),
    timeout: int = typer.Option(
        None,
        "--timeout",
        help="Connect/write timeout in seconds. Overrides CAPSTREAM_CLI_TIMEOUT env var.",
        envvar="CAPSTREAM_CLI_TIMEOUT",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Log session transitions and requests to stderr.",
    ),
) -> None:
    """Global options callback. Sets configuration for all commands."""
    output_format = "json" if json_output else None
    config = get_config(
        api_base=api_base,
        timeout=timeout,
        output_format=output_format,  # type: ignore
        verbose=verbose,
    )
    set_global_config(config)
    configure_logging("DEBUG" if verbose else "WARNING")


app = typer.Typer(
    name="capstream",
    help="capstream: streaming client for a conversational analytics assistant",
    no_args_is_help=True,
    callback=config_callback,
)

app.command()(ask.ask)
app.command()(replay.replay)


def main() -> None:
    """Main entry point for CLI."""
    try:
        app()
    except KeyboardInterrupt:
        print("\n[ABORTED] Aborted by user.", file=sys.stderr)
        sys.exit(130)


if __name__ == "__main__":
    main()
