"""Key commands.

Commands:
    pkctl keys password     # Change the root password
"""

from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from pkctl import processors
from pkctl.commands import common
from pkctl.commands.common import (
    ClientHostOption,
    ClientPortOption,
    NodePathOption,
    PasswordFileOption,
    VerboseOption,
)
from pkctl.utils import handle_errors

app = typer.Typer(help="Manage the agent's keys", no_args_is_help=True)
console = Console(stderr=True)


@app.command("password")
@handle_errors
def change_password(
    password_new_file: Optional[Path] = typer.Option(
        None, "--password-new-file", "-pnf", help="Path to new password", show_default=False
    ),
    node_path: Optional[Path] = NodePathOption,
    password_file: Optional[Path] = PasswordFileOption,
    client_host: Optional[str] = ClientHostOption,
    client_port: Optional[int] = ClientPortOption,
    verbose: int = VerboseOption,
):
    """Change the password of the root keypair.

    The new password is read from --password-new-file, PK_PASSWORD_NEW, or a
    confirmed prompt, in that order.
    """
    options, settings = common.build_options(
        node_path, verbose,
        password_file=password_file, client_host=client_host, client_port=client_port,
    )
    with common.open_engine(options, settings) as engine:
        gate = common.open_gate(options, settings, engine)
        password_new = processors.process_new_password(
            password_new_file, settings.password_new, gate.interactive
        )
        gate.call("keys password", lambda auth: engine.change_password(auth, password_new))
    console.print("[green]✓[/green] Password changed")
