"""Secret commands.

Commands:
    pkctl secrets create <file> <vault:path>     # Create a secret from a file
    pkctl secrets update <file> <vault:path>     # Replace a secret's content
    pkctl secrets delete <vault:path>            # Delete a secret
    pkctl secrets get <vault:path>               # Print a secret
    pkctl secrets list <vault>                   # List a vault's secrets
    pkctl secrets mkdir <vault:path>             # Create a directory
    pkctl secrets stat <vault:path>              # Secret or directory metadata
    pkctl secrets dir <directory> <vault>        # Import a directory of secrets
    pkctl secrets env -e <vault:path[=ENV]> ...  # Print or run with secrets as env vars
"""

import logging
import os
import subprocess
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console
from rich.markup import escape

from pkctl.address import (
    SecretAddress,
    expand_directory,
    is_env_name,
    parse_secret_address,
    parse_vault_name,
    secret_file,
)
from pkctl.commands import common
from pkctl.commands.common import (
    ClientHostOption,
    ClientPortOption,
    FormatOption,
    NodePathOption,
    PasswordFileOption,
    VerboseOption,
)
from pkctl.engine import import_directory
from pkctl.errors import (
    DuplicateEnvNameError,
    FileReadError,
    InvalidEnvNameError,
    SecretEncodingError,
)
from pkctl.utils import handle_errors, output_dict, output_env, output_list, print_error

app = typer.Typer(help="Manage secrets in vaults", no_args_is_help=True)
console = Console(stderr=True)
logger = logging.getLogger(__name__)

ENV_FORMATS = ("dotenv", "prepend", "json")
ENV_INVALID = ("error", "warn", "ignore")
ENV_DUPLICATE = ("keep", "overwrite", "warn", "error")

# Shell exit statuses for a command that cannot be run
EXIT_NOT_EXECUTABLE = 126
EXIT_NOT_FOUND = 127


def read_local_file(path: Path) -> bytes:
    """Read a local file whose content becomes a secret."""
    try:
        return Path(path).read_bytes()
    except OSError as e:
        raise FileReadError(f"{path}: {e.strerror or e}") from e


def build_env(
    secrets: list[tuple[SecretAddress, bytes]],
    env_invalid: str = "error",
    env_duplicate: str = "overwrite",
) -> dict[str, str]:
    """Bind secrets to environment variable names.

    A secret without an explicit name is bound to the last segment of its
    path.
    """
    env: dict[str, str] = {}
    for address, content in secrets:
        name = address.env_var_name or address.segments[-1]
        if not is_env_name(name):
            if env_invalid == "error":
                raise InvalidEnvNameError(f"{name!r} from {address}")
            if env_invalid == "warn":
                logger.warning("Dropping %s, %r is not a valid environment variable name", address, name)
            continue
        if name in env:
            if env_duplicate == "error":
                raise DuplicateEnvNameError(f"{name!r} from {address}")
            if env_duplicate == "keep":
                continue
            if env_duplicate == "warn":
                logger.warning("Overwriting %s with %s", name, address)
        try:
            env[name] = content.decode("utf-8")
        except UnicodeDecodeError as e:
            raise SecretEncodingError(f"{address}: {e.reason} at byte {e.start}") from e
    return env


@app.command("create")
@handle_errors
def create_secret(
    local_path: Path = typer.Argument(..., help="On disk path to the secret file with the contents of the new secret"),
    secret_address: str = typer.Argument(..., help="Secret to create, as <vaultName>:<secretPath>"),
    node_path: Optional[Path] = NodePathOption,
    password_file: Optional[Path] = PasswordFileOption,
    client_host: Optional[str] = ClientHostOption,
    client_port: Optional[int] = ClientPortOption,
    verbose: int = VerboseOption,
):
    """Create a secret within a given vault."""
    address = parse_secret_address(secret_address)
    options, settings = common.build_options(
        node_path, verbose,
        password_file=password_file, client_host=client_host, client_port=client_port,
    )
    content = read_local_file(local_path)
    with common.open_engine(options, settings) as engine:
        gate = common.open_gate(options, settings, engine)
        gate.call(
            "secrets create",
            lambda auth: engine.import_secret(auth, address.vault_name, address.secret_path, content),
        )
    console.print(f"[green]✓[/green] Created: {escape(str(address))}", highlight=False)


@app.command("update")
@handle_errors
def update_secret(
    local_path: Path = typer.Argument(..., help="On disk path to the file with the new contents"),
    secret_address: str = typer.Argument(..., help="Secret to update, as <vaultName>:<secretPath>"),
    node_path: Optional[Path] = NodePathOption,
    password_file: Optional[Path] = PasswordFileOption,
    client_host: Optional[str] = ClientHostOption,
    client_port: Optional[int] = ClientPortOption,
    verbose: int = VerboseOption,
):
    """Update a secret with the contents of a file."""
    address = parse_secret_address(secret_address)
    options, settings = common.build_options(
        node_path, verbose,
        password_file=password_file, client_host=client_host, client_port=client_port,
    )
    content = read_local_file(local_path)
    with common.open_engine(options, settings) as engine:
        gate = common.open_gate(options, settings, engine)
        gate.call(
            "secrets update",
            lambda auth: engine.update_secret(auth, address.vault_name, address.secret_path, content),
        )
    console.print(f"[green]✓[/green] Updated: {escape(str(address))}", highlight=False)


@app.command("delete")
@handle_errors
def delete_secret(
    secret_address: str = typer.Argument(..., help="Secret to delete, as <vaultName>:<secretPath>"),
    node_path: Optional[Path] = NodePathOption,
    password_file: Optional[Path] = PasswordFileOption,
    client_host: Optional[str] = ClientHostOption,
    client_port: Optional[int] = ClientPortOption,
    verbose: int = VerboseOption,
):
    """Delete a secret from a vault."""
    address = parse_secret_address(secret_address)
    options, settings = common.build_options(
        node_path, verbose,
        password_file=password_file, client_host=client_host, client_port=client_port,
    )
    with common.open_engine(options, settings) as engine:
        gate = common.open_gate(options, settings, engine)
        gate.call(
            "secrets delete",
            lambda auth: engine.delete_secret(auth, address.vault_name, address.secret_path),
        )
    console.print(f"[green]✓[/green] Deleted: {escape(str(address))}", highlight=False)


@app.command("get")
@handle_errors
def get_secret(
    secret_address: str = typer.Argument(..., help="Secret to print, as <vaultName>:<secretPath>"),
    node_path: Optional[Path] = NodePathOption,
    password_file: Optional[Path] = PasswordFileOption,
    client_host: Optional[str] = ClientHostOption,
    client_port: Optional[int] = ClientPortOption,
    verbose: int = VerboseOption,
):
    """Print the contents of a secret."""
    address = parse_secret_address(secret_address)
    options, settings = common.build_options(
        node_path, verbose,
        password_file=password_file, client_host=client_host, client_port=client_port,
    )
    with common.open_engine(options, settings) as engine:
        gate = common.open_gate(options, settings, engine)
        content = gate.call(
            "secrets get",
            lambda auth: engine.get_secret(auth, address.vault_name, address.secret_path),
        )
    typer.echo(content, nl=False)


@app.command("list")
@handle_errors
def list_secrets(
    vault_name: str = typer.Argument(..., help="Name of the vault to list"),
    node_path: Optional[Path] = NodePathOption,
    password_file: Optional[Path] = PasswordFileOption,
    output_format: str = FormatOption,
    client_host: Optional[str] = ClientHostOption,
    client_port: Optional[int] = ClientPortOption,
    verbose: int = VerboseOption,
):
    """List all secrets of a vault."""
    parse_vault_name(vault_name)
    options, settings = common.build_options(
        node_path, verbose,
        password_file=password_file, format=output_format,
        client_host=client_host, client_port=client_port,
    )
    with common.open_engine(options, settings) as engine:
        gate = common.open_gate(options, settings, engine)
        secrets = gate.call("secrets list", lambda auth: engine.list_secrets(auth, vault_name))
    output_list(sorted(secrets), options.format)


@app.command("mkdir")
@handle_errors
def make_directory(
    secret_address: str = typer.Argument(..., help="Directory to create, as <vaultName>:<directoryPath>"),
    recursive: bool = typer.Option(False, "--recursive", "-r", help="Create parent directories as needed"),
    node_path: Optional[Path] = NodePathOption,
    password_file: Optional[Path] = PasswordFileOption,
    client_host: Optional[str] = ClientHostOption,
    client_port: Optional[int] = ClientPortOption,
    verbose: int = VerboseOption,
):
    """Create a directory within a vault."""
    address = parse_secret_address(secret_address)
    options, settings = common.build_options(
        node_path, verbose,
        password_file=password_file, client_host=client_host, client_port=client_port,
    )
    with common.open_engine(options, settings) as engine:
        gate = common.open_gate(options, settings, engine)
        gate.call(
            "secrets mkdir",
            lambda auth: engine.make_directory(auth, address.vault_name, address.secret_path, recursive),
        )
    console.print(f"[green]✓[/green] Created directory: {escape(str(address))}", highlight=False)


@app.command("stat")
@handle_errors
def stat_secret(
    secret_address: str = typer.Argument(..., help="Secret or directory, as <vaultName>:<secretPath>"),
    node_path: Optional[Path] = NodePathOption,
    password_file: Optional[Path] = PasswordFileOption,
    output_format: str = FormatOption,
    client_host: Optional[str] = ClientHostOption,
    client_port: Optional[int] = ClientPortOption,
    verbose: int = VerboseOption,
):
    """Show metadata of a secret or directory."""
    address = parse_secret_address(secret_address)
    options, settings = common.build_options(
        node_path, verbose,
        password_file=password_file, format=output_format,
        client_host=client_host, client_port=client_port,
    )
    with common.open_engine(options, settings) as engine:
        gate = common.open_gate(options, settings, engine)
        stat = gate.call(
            "secrets stat",
            lambda auth: engine.stat_secret(auth, address.vault_name, address.secret_path),
        )
    output_dict({"path": address.secret_path, **stat}, options.format)


@app.command("dir")
@handle_errors
def import_dir(
    directory: Path = typer.Argument(..., help="Directory of secret files to import"),
    vault_name: str = typer.Argument(..., help="Name of the vault to import into"),
    node_path: Optional[Path] = NodePathOption,
    password_file: Optional[Path] = PasswordFileOption,
    client_host: Optional[str] = ClientHostOption,
    client_port: Optional[int] = ClientPortOption,
    verbose: int = VerboseOption,
):
    """Add a directory of secrets to a vault.

    Every regular file below the directory becomes a secret named after its
    path relative to the directory.
    """
    addresses = expand_directory(directory, vault_name)
    options, settings = common.build_options(
        node_path, verbose,
        password_file=password_file, client_host=client_host, client_port=client_port,
    )
    if not addresses:
        console.print(f"[yellow]![/yellow] No files found in {escape(str(directory))}", highlight=False)
        return
    with common.open_engine(options, settings) as engine:
        gate = common.open_gate(options, settings, engine)
        count = gate.call(
            "secrets dir",
            lambda auth: import_directory(
                engine, auth, vault_name, addresses,
                lambda address: read_local_file(secret_file(directory, address)),
            ),
        )
    console.print(f"[green]✓[/green] Imported {count} secrets into {vault_name}", highlight=False)


@app.command("env")
@handle_errors
def env_secrets(
    command: Optional[List[str]] = typer.Argument(None, help="Command and arguments to run"),
    env: List[str] = typer.Option(..., "--env", "-e", help="Secrets to bind, as <vaultName>:<secretPath>[=<envVarName>]"),
    env_format: str = typer.Option("dotenv", "--env-format", "-ef", help="Output format: dotenv, prepend, json"),
    env_invalid: str = typer.Option("error", "--env-invalid", "-ei", help="Invalid names: error, warn, ignore"),
    env_duplicate: str = typer.Option("overwrite", "--env-duplicate", "-ed", help="Duplicate names: keep, overwrite, warn, error"),
    node_path: Optional[Path] = NodePathOption,
    password_file: Optional[Path] = PasswordFileOption,
    client_host: Optional[str] = ClientHostOption,
    client_port: Optional[int] = ClientPortOption,
    verbose: int = VerboseOption,
):
    """Run a command with secrets as environment variables.

    Without a command the variables are printed to stdout.
    """
    for value, choices, flag in (
        (env_format, ENV_FORMATS, "--env-format"),
        (env_invalid, ENV_INVALID, "--env-invalid"),
        (env_duplicate, ENV_DUPLICATE, "--env-duplicate"),
    ):
        if value not in choices:
            raise typer.BadParameter(f"must be one of {', '.join(choices)}", param_hint=flag)

    addresses = [parse_secret_address(value) for value in env]
    options, settings = common.build_options(
        node_path, verbose,
        password_file=password_file, client_host=client_host, client_port=client_port,
    )
    with common.open_engine(options, settings) as engine:
        gate = common.open_gate(options, settings, engine)
        secrets = gate.call(
            "secrets env",
            lambda auth: [
                (address, engine.get_secret(auth, address.vault_name, address.secret_path))
                for address in addresses
            ],
        )
    variables = build_env(secrets, env_invalid, env_duplicate)

    if command:
        process_env = os.environ.copy()
        process_env.update(variables)
        logger.info("Running %s with %d secrets", command[0], len(variables))
        try:
            result = subprocess.run(command, env=process_env)
        except FileNotFoundError as e:
            print_error(f"{command[0]}: command not found")
            raise typer.Exit(EXIT_NOT_FOUND) from e
        except PermissionError as e:
            print_error(f"{command[0]}: permission denied")
            raise typer.Exit(EXIT_NOT_EXECUTABLE) from e
        raise typer.Exit(result.returncode)

    output_env(variables, env_format)
