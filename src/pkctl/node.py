"""Agent status file handling.

The agent publishes its lifecycle state to ``<node_path>/status.json``::

    {"status": "LIVE", "data": {"pid": 1234, "nodeId": "...",
                                "clientHost": "127.0.0.1", "clientPort": 41523}}

pkctl reads it to find the agent's client service when no explicit
``--client-host``/``--client-port`` is given.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from pkctl.config import CommandOptions
from pkctl.errors import AgentStatusError, ClientOptionsError

logger = logging.getLogger(__name__)

STATUSES = ("STARTING", "LIVE", "STOPPING", "DEAD")


@dataclass(frozen=True)
class NodeStatus:
    status: str
    data: dict[str, Any] = field(default_factory=dict)

    @property
    def live(self) -> bool:
        return self.status == "LIVE"


@dataclass(frozen=True)
class ClientStatus:
    """Where to reach the agent, plus the status it was derived from.

    ``status_info`` is ``None`` when the address came from explicit options.
    """

    status_info: Optional[NodeStatus]
    client_host: Optional[str]
    client_port: Optional[int]


def read_status(path: Path) -> Optional[NodeStatus]:
    """Read the status file, ``None`` if the agent never wrote one."""
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None

    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise AgentStatusError(f"Status file {path} is not valid JSON: {e}") from e

    if not isinstance(payload, dict) or payload.get("status") not in STATUSES:
        raise AgentStatusError(f"Status file {path} has an unknown format")

    data = payload.get("data") or {}
    if not isinstance(data, dict):
        raise AgentStatusError(f"Status file {path} has an unknown format")
    return NodeStatus(status=payload["status"], data=data)


def _check_partial(options: CommandOptions) -> None:
    missing = []
    if options.client_host is None:
        missing.append("missing client host, provide it with --client-host or PK_CLIENT_HOST")
    if options.client_port is None:
        missing.append("missing client port, provide it with --client-port or PK_CLIENT_PORT")
    if missing:
        raise ClientOptionsError("; ".join(missing))


def process_client_status(options: CommandOptions) -> ClientStatus:
    """Resolve the client address without requiring the agent to be live.

    Order of operations:
    1. --client-host and --client-port (or PK_CLIENT_HOST/PK_CLIENT_PORT)
    2. The status file, when neither is set
    A missing status file is reported as a DEAD agent.
    """
    if options.client_host is not None and options.client_port is not None:
        return ClientStatus(None, options.client_host, options.client_port)
    if options.client_host is not None or options.client_port is not None:
        _check_partial(options)

    status_info = read_status(options.status_file)
    if status_info is None:
        logger.info("No status file at %s, agent is not running", options.status_file)
        return ClientStatus(NodeStatus("DEAD"), None, None)
    if not status_info.live:
        return ClientStatus(status_info, None, None)

    host = status_info.data.get("clientHost")
    port = status_info.data.get("clientPort")
    if not host or not port:
        raise AgentStatusError("Agent is LIVE but its status has no client address")
    return ClientStatus(status_info, host, int(port))


def process_client_options(options: CommandOptions) -> tuple[str, int]:
    """Client address for commands that need a live agent."""
    client_status = process_client_status(options)
    if client_status.client_host is None or client_status.client_port is None:
        status = client_status.status_info.status if client_status.status_info else "DEAD"
        raise AgentStatusError(f"agent is not live (status: {status})")
    return client_status.client_host, client_status.client_port
