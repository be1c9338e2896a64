"""pkctl - command line client for a secrets agent.

Usage:
    pkctl agent unlock            # Authenticate and store a session token
    pkctl agent status            # Agent status
    pkctl agent lock              # Clear the session token

    pkctl secrets create <file> <vault:path>
    pkctl secrets dir <directory> <vault>
    pkctl secrets env -e <vault:path=ENV> -- cmd
"""

import typer

from pkctl import __version__
from pkctl.commands import agent, keys, secrets
from pkctl.utils import console

app = typer.Typer(
    name="pkctl",
    help="Command line client for a secrets agent",
    no_args_is_help=True,
    rich_markup_mode="rich",
)

app.add_typer(agent.app, name="agent", help="Agent session and status")
app.add_typer(secrets.app, name="secrets", help="Manage secrets in vaults")
app.add_typer(keys.app, name="keys", help="Manage the agent's keys")


@app.callback(invoke_without_command=True)
def main(
    version: bool = typer.Option(False, "--version", help="Show version"),
):
    """Command line client for a secrets agent.

    \b
    Quick Start:
        pkctl agent unlock                      # Authenticate once
        pkctl secrets create ./db.txt vault1:db/password
        pkctl secrets env -e vault1:db/password=DB_PASSWORD -- ./app
        pkctl agent lock                        # Forget the session
    """
    if version:
        console.print(f"pkctl {__version__}")
        raise typer.Exit(0)
