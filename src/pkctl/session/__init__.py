"""Session token storage and authentication gate."""

from pkctl.session.gate import Credential, CredentialKind, CredentialSource, SessionGate
from pkctl.session.token_store import TokenStore

__all__ = [
    "Credential",
    "CredentialKind",
    "CredentialSource",
    "SessionGate",
    "TokenStore",
]
