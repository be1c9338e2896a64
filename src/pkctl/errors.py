"""pkctl error taxonomy.

Every error raised on purpose by pkctl derives from :class:`PkctlError` and
carries the process exit code the CLI should terminate with. Exit codes
follow the BSD ``sysexits.h`` conventions so scripts can branch on the
failure class (usage vs. permission vs. runtime).
"""

from typing import Optional


# sysexits.h
EX_GENERAL = 1
EX_USAGE = 64
EX_DATAERR = 65
EX_NOINPUT = 66
EX_UNAVAILABLE = 69
EX_SOFTWARE = 70
EX_IOERR = 74
EX_TEMPFAIL = 75
EX_NOPERM = 77


class PkctlError(Exception):
    """Base pkctl error."""

    description = "pkctl error"
    exit_code = EX_GENERAL

    def __init__(self, message: str = ""):
        self.message = message or self.description
        super().__init__(self.message)


class AuthenticationRequired(PkctlError):
    """No usable credential was found for a gated command."""

    description = (
        "Authentication is required, provide a password via PK_PASSWORD, "
        "--password-file or when prompted, or a token via PK_TOKEN"
    )
    exit_code = EX_NOPERM


class AuthenticationInvalid(PkctlError):
    """A supplied credential was rejected by the agent."""

    description = "Authentication failed, the credential was rejected"
    exit_code = EX_NOPERM


class AddressSyntaxError(PkctlError, ValueError):
    """Malformed ``vaultName:secretPath[=envVarName]`` argument."""

    description = "Invalid secret address"
    exit_code = EX_USAGE

    def __init__(self, token: str, offset: int, reason: str):
        self.token = token
        self.offset = offset
        self.reason = reason
        super().__init__(f"{token!r} at byte {offset}: {reason}")


class InvalidEnvNameError(PkctlError):
    description = "Secret has an invalid environment variable name"
    exit_code = EX_USAGE


class DuplicateEnvNameError(PkctlError):
    description = "Environment variable name already bound"
    exit_code = EX_USAGE


class SecretEncodingError(PkctlError):
    """Secret content cannot become an environment variable value."""

    description = "Secret is not valid UTF-8 text"
    exit_code = EX_DATAERR


class OptionsError(PkctlError):
    description = "Invalid command options"
    exit_code = EX_USAGE


class ClientOptionsError(OptionsError):
    description = "Missing required client options"


class PasswordFileReadError(PkctlError):
    description = "Failed to read password file"
    exit_code = EX_NOINPUT


class FileReadError(PkctlError):
    description = "Failed to read file"
    exit_code = EX_NOINPUT


class AgentStatusError(PkctlError):
    description = "Agent is not live"
    exit_code = EX_TEMPFAIL


class EngineError(PkctlError):
    """Agent client service error (connection failure or error response)."""

    description = "Agent request failed"
    exit_code = EX_UNAVAILABLE

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


def exit_code_for(error: BaseException) -> int:
    """Map an exception raised during a command to a process exit code."""
    if isinstance(error, PkctlError):
        return error.exit_code
    if isinstance(error, OSError):
        return EX_IOERR
    return EX_SOFTWARE
