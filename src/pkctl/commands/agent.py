"""Agent session commands.

Commands:
    pkctl agent lock        # Clear the session token
    pkctl agent lockall     # Revoke all sessions and clear the session token
    pkctl agent unlock      # Authenticate and store a session token
    pkctl agent status      # Agent status
    pkctl agent stop        # Stop the agent
"""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from pkctl.commands import common
from pkctl.commands.common import (
    ClientHostOption,
    ClientPortOption,
    FormatOption,
    NodePathOption,
    PasswordFileOption,
    VerboseOption,
)
from pkctl.errors import AgentStatusError
from pkctl.node import process_client_status
from pkctl.utils import handle_errors, output_dict

app = typer.Typer(help="Agent session and status", no_args_is_help=True)
console = Console(stderr=True)


@app.command("lock")
@handle_errors
def lock(
    node_path: Optional[Path] = NodePathOption,
    verbose: int = VerboseOption,
):
    """Lock the client and clear the existing token."""
    options, settings = common.build_options(node_path, verbose)
    common.open_gate(options, settings).lock()


@app.command("lockall")
@handle_errors
def lock_all(
    node_path: Optional[Path] = NodePathOption,
    password_file: Optional[Path] = PasswordFileOption,
    client_host: Optional[str] = ClientHostOption,
    client_port: Optional[int] = ClientPortOption,
    verbose: int = VerboseOption,
):
    """Lock all clients and clear the existing token."""
    options, settings = common.build_options(
        node_path, verbose,
        password_file=password_file, client_host=client_host, client_port=client_port,
    )
    with common.open_engine(options, settings) as engine:
        common.open_gate(options, settings, engine).lock_all()


@app.command("unlock")
@handle_errors
def unlock(
    node_path: Optional[Path] = NodePathOption,
    password_file: Optional[Path] = PasswordFileOption,
    client_host: Optional[str] = ClientHostOption,
    client_port: Optional[int] = ClientPortOption,
    verbose: int = VerboseOption,
):
    """Request a session token from the agent and store it."""
    options, settings = common.build_options(
        node_path, verbose,
        password_file=password_file, client_host=client_host, client_port=client_port,
    )
    with common.open_engine(options, settings) as engine:
        common.open_gate(options, settings, engine).unlock()
    console.print("[green]✓[/green] Unlocked")


@app.command("status")
@handle_errors
def status(
    node_path: Optional[Path] = NodePathOption,
    password_file: Optional[Path] = PasswordFileOption,
    output_format: str = FormatOption,
    client_host: Optional[str] = ClientHostOption,
    client_port: Optional[int] = ClientPortOption,
    verbose: int = VerboseOption,
):
    """Get the status of the agent.

    When the agent is not LIVE the status file is reported as is, without
    authenticating.
    """
    options, settings = common.build_options(
        node_path, verbose,
        password_file=password_file, format=output_format,
        client_host=client_host, client_port=client_port,
    )
    client_status = process_client_status(options)
    status_info = client_status.status_info
    if status_info is not None and not status_info.live:
        output_dict({"status": status_info.status, **status_info.data}, options.format)
        return

    with common.connect(client_status.client_host, client_status.client_port, settings) as engine:
        gate = common.open_gate(options, settings, engine)
        response = gate.call("status", engine.agent_status)
    output_dict({"status": "LIVE", **response}, options.format)


@app.command("stop")
@handle_errors
def stop(
    node_path: Optional[Path] = NodePathOption,
    password_file: Optional[Path] = PasswordFileOption,
    client_host: Optional[str] = ClientHostOption,
    client_port: Optional[int] = ClientPortOption,
    verbose: int = VerboseOption,
):
    """Stop the agent.

    Stopping an agent that is already DEAD or STOPPING does nothing.
    """
    options, settings = common.build_options(
        node_path, verbose,
        password_file=password_file, client_host=client_host, client_port=client_port,
    )
    client_status = process_client_status(options)
    status_info = client_status.status_info
    if status_info is not None:
        if status_info.status == "DEAD":
            console.print("Agent is already dead")
            return
        if status_info.status == "STOPPING":
            console.print("Agent is already stopping")
            return
        if status_info.status == "STARTING":
            raise AgentStatusError("Agent is starting")

    with common.connect(client_status.client_host, client_status.client_port, settings) as engine:
        common.open_gate(options, settings, engine).call("stop", engine.agent_stop)
    console.print("Stopping Agent")
