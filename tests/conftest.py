import base64
import json
from collections import defaultdict
from pathlib import Path

import pytest
from typer.testing import CliRunner

from pkctl import processors
from pkctl.commands import common
from pkctl.errors import AuthenticationInvalid, EngineError


class FakeEngine:
    """In-memory agent."""

    def __init__(self, password: str = "password"):
        self.password = password
        self.tokens: set[str] = set()
        self.vaults: dict[str, dict[str, bytes]] = defaultdict(dict)
        self.directories: dict[str, set[str]] = defaultdict(set)
        self.stopped = False
        self.calls: list[str] = []
        self.closed = False
        self._minted = 0

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.closed = True

    def _check(self, authorization: str) -> None:
        scheme, _, value = authorization.partition(" ")
        if scheme == "Bearer" and value in self.tokens:
            return
        if scheme == "Basic" and base64.b64decode(value).decode() == f":{self.password}":
            return
        raise AuthenticationInvalid("credential rejected")

    def validate_and_mint(self, password: str) -> str:
        self.calls.append("validate_and_mint")
        if password != self.password:
            raise AuthenticationInvalid("wrong password")
        self._minted += 1
        token = f"token-{self._minted}"
        self.tokens.add(token)
        return token

    def validate_token(self, token: str) -> None:
        self.calls.append("validate_token")
        if token not in self.tokens:
            raise AuthenticationInvalid("unknown token")

    def revoke_sessions(self, authorization: str) -> None:
        self.calls.append("revoke_sessions")
        self._check(authorization)
        self.tokens.clear()

    def agent_status(self, authorization: str) -> dict:
        self.calls.append("agent_status")
        self._check(authorization)
        return {
            "pid": 4242,
            "nodeId": "v0test",
            "clientHost": "127.0.0.1",
            "clientPort": 41523,
            "vaultsMade": len(self.vaults),
        }

    def agent_stop(self, authorization: str) -> None:
        self.calls.append("agent_stop")
        self._check(authorization)
        self.stopped = True

    def import_secret(self, authorization, vault_name, secret_path, content):
        self.calls.append("import_secret")
        self._check(authorization)
        if secret_path in self.vaults[vault_name]:
            raise EngineError(f"secret {secret_path} already exists", 409)
        self.vaults[vault_name][secret_path] = content

    def update_secret(self, authorization, vault_name, secret_path, content):
        self.calls.append("update_secret")
        self._check(authorization)
        if secret_path not in self.vaults[vault_name]:
            raise EngineError(f"secret {secret_path} does not exist", 404)
        self.vaults[vault_name][secret_path] = content

    def delete_secret(self, authorization, vault_name, secret_path):
        self.calls.append("delete_secret")
        self._check(authorization)
        if self.vaults[vault_name].pop(secret_path, None) is None:
            raise EngineError(f"secret {secret_path} does not exist", 404)

    def get_secret(self, authorization, vault_name, secret_path):
        self.calls.append("get_secret")
        self._check(authorization)
        try:
            return self.vaults[vault_name][secret_path]
        except KeyError:
            raise EngineError(f"secret {secret_path} does not exist", 404)

    def list_secrets(self, authorization, vault_name):
        self.calls.append("list_secrets")
        self._check(authorization)
        return list(self.vaults[vault_name])

    def make_directory(self, authorization, vault_name, dir_path, recursive=False):
        self.calls.append("make_directory")
        self._check(authorization)
        directories = self.directories[vault_name]
        if dir_path in directories or dir_path in self.vaults[vault_name]:
            raise EngineError(f"{dir_path} already exists", 409)
        parents = []
        parent = dir_path.rpartition("/")[0]
        while parent and parent not in directories:
            parents.append(parent)
            parent = parent.rpartition("/")[0]
        if parents and not recursive:
            raise EngineError(f"parent of {dir_path} does not exist", 404)
        directories.update(parents)
        directories.add(dir_path)

    def stat_secret(self, authorization, vault_name, secret_path):
        self.calls.append("stat_secret")
        self._check(authorization)
        if secret_path in self.vaults[vault_name]:
            return {"type": "file", "size": len(self.vaults[vault_name][secret_path])}
        if secret_path in self.directories[vault_name]:
            return {"type": "directory"}
        raise EngineError(f"{secret_path} does not exist", 404)

    def change_password(self, authorization, password_new):
        self.calls.append("change_password")
        self._check(authorization)
        self.password = password_new


class PromptRecorder:
    def __init__(self, answer="password"):
        self.answer = answer
        self.calls = 0

    def __call__(self):
        self.calls += 1
        return self.answer


@pytest.fixture
def engine():
    return FakeEngine()


@pytest.fixture
def node_path(tmp_path) -> Path:
    path = tmp_path / "node"
    path.mkdir()
    return path


@pytest.fixture
def live_node(node_path) -> Path:
    """Node path whose status file says the agent is LIVE."""
    status = {
        "status": "LIVE",
        "data": {"pid": 4242, "nodeId": "v0test", "clientHost": "127.0.0.1", "clientPort": 41523},
    }
    (node_path / "status.json").write_text(json.dumps(status))
    return node_path


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    for name in (
        "PK_NODE_PATH",
        "PK_PASSWORD",
        "PK_PASSWORD_NEW",
        "PK_TOKEN",
        "PK_CLIENT_HOST",
        "PK_CLIENT_PORT",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "config"))
    monkeypatch.setenv("XDG_DATA_HOME", str(tmp_path / "data"))


@pytest.fixture
def prompt(monkeypatch):
    """Interactive terminal whose password prompt is recorded."""
    recorder = PromptRecorder()
    monkeypatch.setattr(processors, "prompt_password", recorder)
    monkeypatch.setattr(processors, "stdin_is_interactive", lambda: True)
    return recorder


@pytest.fixture
def no_tty(monkeypatch):
    monkeypatch.setattr(processors, "stdin_is_interactive", lambda: False)


@pytest.fixture
def connected(monkeypatch, engine):
    """Route every agent connection to the fake engine."""
    hosts = []

    def connect(host, port, settings):
        hosts.append((host, port))
        return engine

    monkeypatch.setattr(common, "connect", connect)
    return hosts


@pytest.fixture
def runner():
    return CliRunner()
