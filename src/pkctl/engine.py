"""Agent client service API client."""

import base64
import logging
from typing import Any, Callable, Iterable, Optional, Protocol

import httpx

from pkctl.errors import AuthenticationInvalid, EngineError

logger = logging.getLogger(__name__)


def encode_auth_from_password(password: str) -> str:
    """Authorization header value for a password."""
    encoded = base64.b64encode(f":{password}".encode("utf-8")).decode("ascii")
    return f"Basic {encoded}"


def encode_auth_from_token(token: str) -> str:
    """Authorization header value for a session token."""
    return f"Bearer {token}"


class Engine(Protocol):
    """Operations pkctl needs from the agent."""

    def validate_and_mint(self, password: str) -> str: ...

    def validate_token(self, token: str) -> None: ...

    def revoke_sessions(self, authorization: str) -> None: ...

    def agent_status(self, authorization: str) -> dict[str, Any]: ...

    def agent_stop(self, authorization: str) -> None: ...

    def import_secret(
        self, authorization: str, vault_name: str, secret_path: str, content: bytes
    ) -> None: ...

    def update_secret(
        self, authorization: str, vault_name: str, secret_path: str, content: bytes
    ) -> None: ...

    def delete_secret(self, authorization: str, vault_name: str, secret_path: str) -> None: ...

    def get_secret(self, authorization: str, vault_name: str, secret_path: str) -> bytes: ...

    def list_secrets(self, authorization: str, vault_name: str) -> list[str]: ...

    def make_directory(
        self, authorization: str, vault_name: str, dir_path: str, recursive: bool = False
    ) -> None: ...

    def stat_secret(self, authorization: str, vault_name: str, secret_path: str) -> dict[str, Any]: ...

    def change_password(self, authorization: str, password_new: str) -> None: ...


class EngineClient:
    """HTTP client for the agent's client service."""

    def __init__(
        self,
        host: str,
        port: int,
        timeout: float = 30.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.addr = f"http://{host}:{port}"
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.Client] = None

    @property
    def client(self) -> httpx.Client:
        """HTTP client (lazy initialization)."""
        if self._client is None:
            self._client = httpx.Client(
                base_url=self.addr,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    def __enter__(self) -> "EngineClient":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    def _request(
        self,
        method: str,
        path: str,
        authorization: Optional[str] = None,
        data: Optional[dict] = None,
        params: Optional[dict] = None,
    ) -> dict[str, Any]:
        """Send a request, mapping error responses to pkctl errors."""
        headers = {"Authorization": authorization} if authorization else None
        logger.debug("%s /v1/%s", method, path)
        try:
            response = self.client.request(
                method=method,
                url=f"/v1/{path}",
                json=data,
                params=params,
                headers=headers,
            )
        except httpx.RequestError as e:
            raise EngineError(f"Connection to agent at {self.addr} failed: {e}") from e

        if response.status_code == 204:
            return {}

        try:
            result = response.json() if response.content else {}
        except ValueError:
            result = {}

        if response.status_code >= 400:
            errors = result.get("errors", []) if isinstance(result, dict) else []
            error_msg = "; ".join(errors) if errors else f"HTTP {response.status_code}"
            if response.status_code in (401, 403):
                raise AuthenticationInvalid(error_msg)
            raise EngineError(error_msg, response.status_code)

        return result

    # ─────────────────────────────────────────────────────────────────────────
    # Sessions
    # ─────────────────────────────────────────────────────────────────────────

    def validate_and_mint(self, password: str) -> str:
        """Exchange a password for a new session token."""
        result = self._request(
            "POST", "sessions", authorization=encode_auth_from_password(password)
        )
        token = result.get("token")
        if not token:
            raise EngineError("Agent response did not contain a session token")
        return token

    def validate_token(self, token: str) -> None:
        """Raise :class:`AuthenticationInvalid` unless ``token`` is accepted."""
        self._request("GET", "sessions/self", authorization=encode_auth_from_token(token))

    def revoke_sessions(self, authorization: str) -> None:
        """Invalidate every session token issued by the agent."""
        self._request("DELETE", "sessions", authorization=authorization)

    def agent_status(self, authorization: str) -> dict[str, Any]:
        """Agent details (pid, node id, addresses, connection and vault counts)."""
        return self._request("GET", "agent/status", authorization=authorization)

    def agent_stop(self, authorization: str) -> None:
        """Ask the agent to shut down."""
        self._request("POST", "agent/stop", authorization=authorization)

    # ─────────────────────────────────────────────────────────────────────────
    # Secrets
    # ─────────────────────────────────────────────────────────────────────────

    def import_secret(
        self, authorization: str, vault_name: str, secret_path: str, content: bytes
    ) -> None:
        """Create a new secret."""
        self._request(
            "POST",
            f"vaults/{vault_name}/secrets",
            authorization=authorization,
            data={"path": secret_path, "content": base64.b64encode(content).decode("ascii")},
        )

    def update_secret(
        self, authorization: str, vault_name: str, secret_path: str, content: bytes
    ) -> None:
        """Replace the content of an existing secret."""
        self._request(
            "PUT",
            f"vaults/{vault_name}/secrets",
            authorization=authorization,
            data={"path": secret_path, "content": base64.b64encode(content).decode("ascii")},
        )

    def delete_secret(self, authorization: str, vault_name: str, secret_path: str) -> None:
        """Delete a secret."""
        self._request(
            "DELETE",
            f"vaults/{vault_name}/secrets",
            authorization=authorization,
            params={"path": secret_path},
        )

    def get_secret(self, authorization: str, vault_name: str, secret_path: str) -> bytes:
        """Secret content."""
        result = self._request(
            "GET",
            f"vaults/{vault_name}/secrets/content",
            authorization=authorization,
            params={"path": secret_path},
        )
        return base64.b64decode(result.get("content", ""))

    def list_secrets(self, authorization: str, vault_name: str) -> list[str]:
        """Paths of all secrets in a vault."""
        result = self._request("GET", f"vaults/{vault_name}/secrets", authorization=authorization)
        return list(result.get("secrets", []))

    def make_directory(
        self, authorization: str, vault_name: str, dir_path: str, recursive: bool = False
    ) -> None:
        """Create a directory, and its parents with ``recursive``."""
        self._request(
            "POST",
            f"vaults/{vault_name}/secrets/directories",
            authorization=authorization,
            data={"path": dir_path, "recursive": recursive},
        )

    def stat_secret(self, authorization: str, vault_name: str, secret_path: str) -> dict[str, Any]:
        """Metadata of a secret or directory (type, size, timestamps)."""
        result = self._request(
            "GET",
            f"vaults/{vault_name}/secrets/stat",
            authorization=authorization,
            params={"path": secret_path},
        )
        return dict(result.get("stat", {}))

    # ─────────────────────────────────────────────────────────────────────────
    # Keys
    # ─────────────────────────────────────────────────────────────────────────

    def change_password(self, authorization: str, password_new: str) -> None:
        """Change the root password protecting the agent's keys."""
        self._request(
            "PUT", "keys/password", authorization=authorization, data={"password": password_new}
        )


def import_directory(
    engine: Engine,
    authorization: str,
    vault_name: str,
    addresses: Iterable[Any],
    read: Callable[[Any], bytes],
) -> int:
    """Import one secret per address, reading content with ``read``.

    Returns the number of secrets imported. The first failure is raised.
    """
    count = 0
    for address in addresses:
        engine.import_secret(authorization, vault_name, address.secret_path, read(address))
        logger.info("Imported %s:%s", vault_name, address.secret_path)
        count += 1
    return count
