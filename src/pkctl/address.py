"""Secret addresses.

A secret address names a secret inside a vault, optionally bound to an
environment variable::

    vaultName:secretPath[=envVarName]

Grammar::

    address      := vaultName ":" secretPath ("=" envVarName)?
    vaultName    := [A-Za-z0-9_-]+
    secretPath   := pathSegment ("/" pathSegment)*
    envVarName   := [A-Za-z_] [A-Za-z0-9_]*

Inside the secret path a backslash makes the following NUL, ``\\``, ``/``
or ``=`` literal. A backslash before anything else is kept as is. The last
unescaped ``=`` separates the environment variable name, but only when what
follows it is a valid name; otherwise the ``=`` is part of the path.
"""

import os
import string
from dataclasses import dataclass
from pathlib import Path
from typing import NamedTuple, Optional, Union

from pkctl.errors import AddressSyntaxError

VAULT_NAME_CHARS = frozenset(string.ascii_letters + string.digits + "_-")
ENV_NAME_START = frozenset(string.ascii_letters + "_")
ENV_NAME_CHARS = frozenset(string.ascii_letters + string.digits + "_")
ESCAPABLE = frozenset("\0\\/=")


@dataclass(frozen=True)
class SecretAddress:
    vault_name: str
    segments: tuple[str, ...]
    env_var_name: Optional[str] = None

    @property
    def secret_path(self) -> str:
        return "/".join(self.segments)

    def __str__(self) -> str:
        return format_secret_address(self)


class _Unit(NamedTuple):
    """One decoded character of the secret path and where it started."""

    char: str
    escaped: bool
    offset: int


def is_env_name(name: str) -> bool:
    return bool(name) and name[0] in ENV_NAME_START and all(c in ENV_NAME_CHARS for c in name)


def _byte_offset(text: str, index: int) -> int:
    return len(text[:index].encode("utf-8", "surrogatepass"))


class _Parser:
    """Recursive-descent parser over a single address argument."""

    def __init__(self, text: str):
        self.text = text

    def error(self, index: int, reason: str) -> AddressSyntaxError:
        return AddressSyntaxError(self.text, _byte_offset(self.text, index), reason)

    def address(self) -> SecretAddress:
        colon = self.vault_name_end()
        vault_name = self.text[:colon]
        units = self.units(colon + 1)
        path_units, env_var_name = self.env_binding(units)
        segments = self.secret_path(path_units, colon + 1)
        return SecretAddress(vault_name, segments, env_var_name)

    def vault_name_end(self) -> int:
        for index, char in enumerate(self.text):
            if char == ":":
                if index == 0:
                    raise self.error(0, "vault name is empty")
                return index
            if char not in VAULT_NAME_CHARS:
                raise self.error(index, f"invalid character {char!r} in vault name")
        raise self.error(len(self.text), "expected ':' after the vault name")

    def units(self, start: int) -> list[_Unit]:
        units = []
        index = start
        while index < len(self.text):
            char = self.text[index]
            following = self.text[index + 1:index + 2]
            if char == "\\" and following and following in ESCAPABLE:
                units.append(_Unit(following, True, index))
                index += 2
            else:
                units.append(_Unit(char, False, index))
                index += 1
        return units

    def env_binding(self, units: list[_Unit]) -> tuple[list[_Unit], Optional[str]]:
        for position in range(len(units) - 1, -1, -1):
            unit = units[position]
            if unit.char == "=" and not unit.escaped:
                break
        else:
            return units, None

        rhs = units[position + 1:]
        if not rhs:
            raise self.error(unit.offset + 1, "environment variable name is empty")
        name = "".join(u.char for u in rhs)
        if any(u.escaped for u in rhs) or not is_env_name(name):
            # Not a binding, the '=' belongs to the path
            return units, None
        return units[:position], name

    def secret_path(self, units: list[_Unit], start: int) -> tuple[str, ...]:
        if not units:
            raise self.error(start, "secret path is empty")
        segments = []
        current: list[_Unit] = []
        segment_start = start
        for unit in units:
            if unit.char == "/" and not unit.escaped:
                segments.append(self.segment(current, segment_start))
                current = []
                segment_start = unit.offset + 1
            else:
                current.append(unit)
        segments.append(self.segment(current, segment_start))
        return tuple(segments)

    def segment(self, units: list[_Unit], start: int) -> str:
        if not units:
            raise self.error(start, "secret path has an empty segment")
        for unit in units:
            if unit.escaped:
                continue
            if unit.char == ":":
                raise self.error(unit.offset, "unescaped ':' in secret path")
            if unit.char == "\0":
                raise self.error(unit.offset, "unescaped NUL in secret path")
        segment = "".join(u.char for u in units)
        if segment in (".", "..") and not any(u.escaped for u in units):
            raise self.error(start, f"secret path segment {segment!r} is not allowed")
        return segment


def parse_secret_address(text: str) -> SecretAddress:
    """Parse ``vaultName:secretPath[=envVarName]``.

    Raises :class:`AddressSyntaxError` with the byte offset of the problem.
    """
    return _Parser(text).address()


def try_parse_secret_address(text: str) -> Union[SecretAddress, AddressSyntaxError]:
    """Like :func:`parse_secret_address`, returning the error instead of raising."""
    try:
        return parse_secret_address(text)
    except AddressSyntaxError as e:
        return e


def parse_vault_name(text: str) -> str:
    """Validate a bare vault name."""
    if not text:
        raise AddressSyntaxError(text, 0, "vault name is empty")
    for index, char in enumerate(text):
        if char not in VAULT_NAME_CHARS:
            raise AddressSyntaxError(text, _byte_offset(text, index), f"invalid character {char!r} in vault name")
    return text


def _escape_segment(segment: str) -> str:
    return "".join(f"\\{c}" if c in ESCAPABLE else c for c in segment)


def format_secret_address(address: SecretAddress) -> str:
    """Command line form of a parsed or expanded address, escaped so it parses back."""
    rendered = f"{address.vault_name}:" + "/".join(_escape_segment(s) for s in address.segments)
    if address.env_var_name is not None:
        rendered += f"={address.env_var_name}"
    return rendered


def _raise(error: OSError) -> None:
    raise error


def _check_expanded(relative: str) -> None:
    # ':' and NUL have no escape inside a secret path
    for index, char in enumerate(relative):
        if char in ":\0":
            raise AddressSyntaxError(
                relative, _byte_offset(relative, index), f"file name contains {char!r}"
            )


def expand_directory(directory: Union[str, Path], vault_name: str) -> list[SecretAddress]:
    """One address per regular file below ``directory``.

    Secret paths are relative to ``directory`` and always use ``/``.
    Symbolic links are not followed.
    A file whose relative path holds a character no secret path can hold
    raises :class:`AddressSyntaxError` before anything is returned.
    """
    parse_vault_name(vault_name)
    root = Path(directory)
    if not root.is_dir():
        raise NotADirectoryError(f"Not a directory: {root}")

    addresses = set()
    for dirpath, _dirnames, filenames in os.walk(root, onerror=_raise):
        for filename in filenames:
            file_path = Path(dirpath) / filename
            if file_path.is_symlink() or not file_path.is_file():
                continue
            relative = file_path.relative_to(root)
            _check_expanded(relative.as_posix())
            addresses.add(SecretAddress(vault_name, relative.parts))
    return sorted(addresses, key=lambda a: a.segments)


def secret_file(root: Union[str, Path], address: SecretAddress) -> Path:
    """Local file an expanded address was made from."""
    return Path(root).joinpath(*address.segments)
