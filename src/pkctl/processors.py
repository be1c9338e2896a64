"""Password sourcing: environment, password files and interactive prompts."""

import sys
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.prompt import Prompt

from pkctl.errors import OptionsError, PasswordFileReadError

console = Console(stderr=True)


def stdin_is_interactive() -> bool:
    """Whether a password can be prompted for (stdin is a terminal)."""
    try:
        return sys.stdin.isatty()
    except (AttributeError, ValueError):
        return False


def prompt_password() -> Optional[str]:
    """Prompt for the existing password.

    Returns ``None`` when the prompt is cancelled (Ctrl-C or EOF).
    """
    try:
        return Prompt.ask("Please enter the password", password=True, console=console)
    except (KeyboardInterrupt, EOFError):
        return None


def prompt_new_password() -> Optional[str]:
    """Prompt for a new password until both entries match.

    Returns ``None`` when the prompt is cancelled.
    """
    while True:
        try:
            password = Prompt.ask("Enter new password", password=True, console=console)
            confirm = Prompt.ask("Confirm new password", password=True, console=console)
        except (KeyboardInterrupt, EOFError):
            return None
        if password == confirm:
            return password
        console.print("[red]✗[/red] Passwords do not match!")


def read_password_file(path: Path) -> str:
    """Read a password file, stripping surrounding whitespace."""
    try:
        return Path(path).read_text(encoding="utf-8").strip()
    except OSError as e:
        raise PasswordFileReadError(f"{path}: {e.strerror or e}") from e


def process_new_password(
    password_new_file: Optional[Path],
    env_password_new: Optional[str],
    interactive: bool,
) -> str:
    """Processes a new password.

    Order of operations:
    1. Reads --password-new-file
    2. Reads PK_PASSWORD_NEW
    3. Prompts and confirms the password
    This may return an empty string.
    """
    if password_new_file is not None:
        return read_password_file(password_new_file)
    if env_password_new is not None:
        return env_password_new
    if interactive:
        password_new = prompt_new_password()
        if password_new is not None:
            return password_new
    raise OptionsError(
        "A new password is necessary, provide it via --password-new-file, "
        "PK_PASSWORD_NEW or when prompted"
    )
