"""Session gate.

Decides, for one command invocation, which credential the command runs
with and whether the user has to be asked for a password. It also performs
the ``lock``/``unlock``/``lockall`` transitions of the node's session token.

Credential precedence (highest first):
1. An explicit token (PK_TOKEN), validated with the agent
2. The token stored in the node path
3. A supplied password (PK_PASSWORD, then --password-file)
4. An interactive password prompt, at most once per invocation
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, Optional, TypeVar

from pkctl.config import CommandOptions, Settings
from pkctl.engine import Engine, encode_auth_from_password, encode_auth_from_token
from pkctl.errors import AgentStatusError, AuthenticationInvalid, AuthenticationRequired
from pkctl.processors import prompt_password, read_password_file, stdin_is_interactive
from pkctl.session.token_store import TokenStore

logger = logging.getLogger(__name__)

T = TypeVar("T")

UNLOCK = "unlock"


class CredentialKind(str, Enum):
    TOKEN = "token"
    PASSWORD = "password"


class CredentialSource(str, Enum):
    EXPLICIT_TOKEN = "explicit-token"
    TOKEN_STORE = "token-store"
    PASSWORD_ENV = "password-env"
    PASSWORD_FILE = "password-file"
    PROMPT = "prompt"


@dataclass(frozen=True)
class Credential:
    kind: CredentialKind
    source: CredentialSource
    value: str = field(repr=False)

    @property
    def authorization(self) -> str:
        """Authorization header value."""
        if self.kind is CredentialKind.TOKEN:
            return encode_auth_from_token(self.value)
        return encode_auth_from_password(self.value)


class SessionGate:
    """Per-invocation authentication decisions for one node path."""

    def __init__(
        self,
        token_store: TokenStore,
        engine: Optional[Engine] = None,
        explicit_token: Optional[str] = None,
        env_password: Optional[str] = None,
        password_file: Optional[Path] = None,
        prompt: Callable[[], Optional[str]] = prompt_password,
        interactive: Optional[bool] = None,
    ):
        self.token_store = token_store
        self._engine = engine
        self.explicit_token = explicit_token
        self.env_password = env_password
        self.password_file = password_file
        self.prompt = prompt
        self.interactive = stdin_is_interactive() if interactive is None else interactive
        self._prompted = False

    @classmethod
    def for_invocation(
        cls,
        options: CommandOptions,
        settings: Settings,
        engine: Optional[Engine] = None,
        **kwargs,
    ) -> "SessionGate":
        """Gate wired to the node path and credentials of one invocation."""
        return cls(
            TokenStore(options.token_file),
            engine,
            explicit_token=settings.token,
            env_password=settings.password,
            password_file=options.password_file,
            **kwargs,
        )

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise AgentStatusError("No agent connection for this command")
        return self._engine

    @property
    def locked(self) -> bool:
        return self.token_store.read() is None

    # ─────────────────────────────────────────────────────────────────────────
    # Credential resolution
    # ─────────────────────────────────────────────────────────────────────────

    def resolve(self, command: str) -> Credential:
        """Credential the command runs with.

        Only ``unlock`` persists a token minted from a password; every other
        command uses it for this invocation only.
        """
        if self.explicit_token is not None:
            logger.debug("Using explicit session token for %s", command)
            self.engine.validate_token(self.explicit_token)
            return Credential(CredentialKind.TOKEN, CredentialSource.EXPLICIT_TOKEN, self.explicit_token)

        token = self.token_store.read()
        if token is not None:
            logger.debug("Using stored session token for %s", command)
            return Credential(CredentialKind.TOKEN, CredentialSource.TOKEN_STORE, token)

        return self._authenticate(command)

    def call(self, command: str, fn: Callable[[str], T]) -> T:
        """Run ``fn`` with the resolved authorization header value.

        A stored token the agent no longer accepts falls through to password
        authentication once. The stored token is left as it is.
        """
        credential = self.resolve(command)
        try:
            return fn(credential.authorization)
        except AuthenticationInvalid:
            if credential.source is not CredentialSource.TOKEN_STORE:
                raise
            logger.info("Stored session token was rejected, authenticating with a password")
        credential = self._authenticate(command)
        return fn(credential.authorization)

    def _password(self) -> Credential:
        if self.env_password is not None:
            return Credential(CredentialKind.PASSWORD, CredentialSource.PASSWORD_ENV, self.env_password)
        if self.password_file is not None:
            return Credential(
                CredentialKind.PASSWORD,
                CredentialSource.PASSWORD_FILE,
                read_password_file(self.password_file),
            )
        if self.interactive and not self._prompted:
            self._prompted = True
            password = self.prompt()
            if password is not None:
                return Credential(CredentialKind.PASSWORD, CredentialSource.PROMPT, password)
        raise AuthenticationRequired()

    def _authenticate(self, command: str) -> Credential:
        password = self._password()
        token = self.engine.validate_and_mint(password.value)
        if command == UNLOCK:
            self.token_store.create(token)
            logger.info("Session unlocked")
        return Credential(CredentialKind.TOKEN, password.source, token)

    # ─────────────────────────────────────────────────────────────────────────
    # Transitions
    # ─────────────────────────────────────────────────────────────────────────

    def unlock(self) -> Credential:
        """Authenticate and persist a session token.

        An explicit token is validated and stored as is, otherwise a password
        is exchanged for a new token. Nothing is written unless the agent
        accepts the credential.
        """
        if self.explicit_token is not None:
            self.engine.validate_token(self.explicit_token)
            self.token_store.create(self.explicit_token)
            logger.info("Session unlocked with explicit token")
            return Credential(CredentialKind.TOKEN, CredentialSource.EXPLICIT_TOKEN, self.explicit_token)
        return self._authenticate(UNLOCK)

    def lock(self) -> None:
        """Destroy the session token, whoever else relies on it."""
        self.token_store.destroy()
        logger.info("Session locked")

    def lock_all(self) -> None:
        """Revoke every session on the agent, then lock this node path."""
        self.call("lockall", self.engine.revoke_sessions)
        self.lock()
