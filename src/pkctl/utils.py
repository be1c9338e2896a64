"""Output formatting, logging setup and command error handling."""

import functools
import json
import logging
from typing import Any, Callable, Iterable, Mapping, TypeVar

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from pkctl.errors import PkctlError, exit_code_for

console = Console()
err_console = Console(stderr=True)

F = TypeVar("F", bound=Callable[..., Any])


# ═══════════════════════════════════════════════════════════════════════════════
# Logging
# ═══════════════════════════════════════════════════════════════════════════════


def verbose_to_log_level(verbose: int = 0) -> int:
    """Convert -v count to a logging level."""
    if verbose >= 2:
        return logging.DEBUG
    if verbose == 1:
        return logging.INFO
    return logging.WARNING


def setup_logging(verbose: int = 0) -> None:
    """Send pkctl logs to stderr through rich."""
    logger = logging.getLogger("pkctl")
    logger.setLevel(verbose_to_log_level(verbose))
    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(console=err_console, show_path=False, markup=False)
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
        logger.addHandler(handler)
    logger.propagate = False


# ═══════════════════════════════════════════════════════════════════════════════
# Output
# ═══════════════════════════════════════════════════════════════════════════════


def output_dict(data: Mapping[str, Any], fmt: str = "human") -> None:
    """Print a mapping as a key/value table or as JSON."""
    if fmt == "json":
        typer.echo(json.dumps(data, ensure_ascii=False))
        return

    table = Table(show_header=False, box=None)
    table.add_column("Key", style="dim")
    table.add_column("Value")
    for key, value in data.items():
        table.add_row(escape(str(key)), escape("" if value is None else str(value)))
    console.print(table)


def output_list(items: Iterable[str], fmt: str = "human") -> None:
    """Print one item per line, or a JSON array."""
    items = list(items)
    if fmt == "json":
        typer.echo(json.dumps(items, ensure_ascii=False))
        return
    for item in items:
        typer.echo(item)


def quote_env_value(value: str) -> str:
    """Quote a dotenv value when it contains special characters."""
    if any(c in value for c in [" ", "'", '"', "$", "\n", "\\", "#"]):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"').replace("\n", "\\n")
        return f'"{escaped}"'
    return value


def output_env(env: Mapping[str, str], fmt: str = "dotenv") -> None:
    """Print environment variables as dotenv lines, a command prefix or JSON."""
    if fmt == "json":
        typer.echo(json.dumps(dict(env), ensure_ascii=False))
        return
    pairs = [f"{key}={quote_env_value(value)}" for key, value in env.items()]
    if fmt == "prepend":
        typer.echo(" ".join(pairs))
        return
    for pair in pairs:
        typer.echo(pair)


# ═══════════════════════════════════════════════════════════════════════════════
# Error handling
# ═══════════════════════════════════════════════════════════════════════════════


def print_error(message: str) -> None:
    err_console.print(f"[red]✗[/red] {escape(message)}")


def handle_errors(func: F) -> F:
    """Turn pkctl and OS errors raised by a command into an exit code."""

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except OSError as e:
            print_error(str(e))
            raise typer.Exit(exit_code_for(e)) from e
        except PkctlError as e:
            if e.message != e.description:
                print_error(f"{e.description}: {e.message}")
            else:
                print_error(e.message)
            raise typer.Exit(e.exit_code) from e

    return wrapper  # type: ignore[return-value]
