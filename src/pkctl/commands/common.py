"""Options and wiring shared by pkctl commands."""

from pathlib import Path
from typing import Any, Optional

import typer
from pydantic import ValidationError

from pkctl import processors
from pkctl.config import CommandOptions, Settings
from pkctl.engine import EngineClient
from pkctl.errors import OptionsError
from pkctl.node import process_client_options
from pkctl.session import SessionGate
from pkctl.utils import setup_logging

NodePathOption: Any = typer.Option(
    None, "--node-path", "-np", help="Path to node state (or PK_NODE_PATH)", show_default=False
)
PasswordFileOption: Any = typer.Option(
    None, "--password-file", "-pf", help="Path to password", show_default=False
)
FormatOption: Any = typer.Option(
    "human", "--format", "-f", help="Output format: human, json"
)
VerboseOption: Any = typer.Option(
    0, "--verbose", "-v", count=True, help="Log verbose messages (repeat for debug)"
)
ClientHostOption: Any = typer.Option(
    None, "--client-host", "-ch", help="Client host address (or PK_CLIENT_HOST)", show_default=False
)
ClientPortOption: Any = typer.Option(
    None, "--client-port", "-cp", help="Client port (or PK_CLIENT_PORT)", show_default=False
)


def build_options(
    node_path: Optional[Path] = None,
    verbose: int = 0,
    **options: Any,
) -> tuple[CommandOptions, Settings]:
    """Settings and validated options for one invocation."""
    setup_logging(verbose)
    try:
        settings = Settings()
    except ValidationError as e:
        raise OptionsError(f"invalid PK_* environment: {e.error_count()} error(s)") from e
    command_options = CommandOptions.build(settings, node_path=node_path, verbose=verbose, **options)
    return command_options, settings


def connect(host: str, port: int, settings: Settings) -> EngineClient:
    """Client for the agent client service at host:port."""
    return EngineClient(host, port, timeout=settings.request_timeout)


def open_engine(options: CommandOptions, settings: Settings) -> EngineClient:
    """Client for the live agent of the node path."""
    host, port = process_client_options(options)
    return connect(host, port, settings)


def open_gate(
    options: CommandOptions,
    settings: Settings,
    engine: Optional[EngineClient] = None,
) -> SessionGate:
    """Session gate for one invocation."""
    return SessionGate.for_invocation(
        options,
        settings,
        engine,
        prompt=processors.prompt_password,
        interactive=processors.stdin_is_interactive(),
    )
