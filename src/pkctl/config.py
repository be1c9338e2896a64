"""pkctl configuration.

Configuration priority (highest to lowest):
1. Command line options (-np, -ch, -cp, ...)
2. Environment variables (PK_*)
3. User config (~/.config/pkctl/config)
4. System config (/etc/pkctl/config)

Secrets (PK_PASSWORD, PK_PASSWORD_NEW, PK_TOKEN) are only ever read from the
environment, never from config files.
"""

import logging
import os
from pathlib import Path
from typing import Any, Literal, Optional, Tuple, Type

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from pkctl.errors import OptionsError

logger = logging.getLogger(__name__)

TOKEN_BASE = "token"
STATUS_BASE = "status.json"

# Config file keys and the settings field each one sets
CONFIG_FILE_KEYS = {
    "PK_NODE_PATH": "node_path",
    "PK_CLIENT_HOST": "client_host",
    "PK_CLIENT_PORT": "client_port",
    "PK_REQUEST_TIMEOUT": "request_timeout",
}
SECRET_KEYS = frozenset({"PK_PASSWORD", "PK_PASSWORD_NEW", "PK_TOKEN"})


def default_node_path() -> Path:
    """Platform default node path (~/.local/share/pkctl)."""
    data_home = os.environ.get("XDG_DATA_HOME") or Path.home() / ".local" / "share"
    return Path(data_home) / "pkctl"


def config_file_paths() -> list[Path]:
    """Config files, lowest priority first."""
    config_home = os.environ.get("XDG_CONFIG_HOME") or Path.home() / ".config"
    return [Path("/etc/pkctl/config"), Path(config_home) / "pkctl" / "config"]


def read_config_file(path: Path) -> dict[str, str]:
    """Settings fields set by one file of ``PK_NAME=value`` lines.

    A missing file sets nothing. Comments, blank lines, unknown keys and
    secrets are skipped.
    """
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except FileNotFoundError:
        return {}
    except PermissionError:
        logger.warning("Cannot read config file %s", path)
        return {}

    values: dict[str, str] = {}
    for number, line in enumerate(lines, 1):
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        key, sep, value = (part.strip() for part in line.partition("="))
        if key in SECRET_KEYS:
            logger.warning("%s:%d: %s is only read from the environment", path, number, key)
            continue
        field_name = CONFIG_FILE_KEYS.get(key)
        if not sep or field_name is None:
            logger.debug("%s:%d: ignoring %r", path, number, key)
            continue
        values[field_name] = value.strip("\"'")
    return values


class ConfigFileSource(PydanticBaseSettingsSource):
    """Settings source over the config files, read once per ``Settings()``."""

    def __init__(self, settings_cls: Type[BaseSettings], paths: Optional[list[Path]] = None):
        super().__init__(settings_cls)
        self.values: dict[str, str] = {}
        for path in config_file_paths() if paths is None else paths:
            self.values.update(read_config_file(path))

    def get_field_value(self, field: Any, field_name: str) -> Tuple[Any, str, bool]:
        return self.values.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        return dict(self.values)


class Settings(BaseSettings):
    """Environment settings, read fresh for every invocation."""

    model_config = SettingsConfigDict(
        env_prefix="PK_",
        extra="ignore",
    )

    node_path: Path = Field(
        default_factory=default_node_path,
        description="Path to the node state directory",
    )
    password: Optional[str] = Field(
        default=None,
        description="Password used to authenticate against the agent",
    )
    password_new: Optional[str] = Field(
        default=None,
        description="New password, used when a password is being set",
    )
    token: Optional[str] = Field(
        default=None,
        description="Session token, bypasses password entry",
    )
    client_host: Optional[str] = Field(
        default=None,
        description="Agent client service host",
    )
    client_port: Optional[int] = Field(
        default=None,
        description="Agent client service port",
    )
    request_timeout: float = Field(
        default=30.0,
        description="Agent request timeout (seconds)",
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: Type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> Tuple[PydanticBaseSettingsSource, ...]:
        """Customize settings sources.

        Priority (highest to lowest):
        1. init_settings (constructor args)
        2. env_settings (PK_* environment variables)
        3. config_files (~/.config/pkctl/config, /etc/pkctl/config)
        """
        return (
            init_settings,
            env_settings,
            ConfigFileSource(settings_cls),
        )


class CommandOptions(BaseModel):
    """Options recognised by pkctl commands, validated before use."""

    model_config = ConfigDict(frozen=True)

    node_path: Path
    password_file: Optional[Path] = None
    format: Literal["human", "json"] = "human"
    verbose: int = Field(default=0, ge=0)
    client_host: Optional[str] = None
    client_port: Optional[int] = Field(default=None, ge=1, le=65535)

    @property
    def token_file(self) -> Path:
        """Session token path inside the node path."""
        return self.node_path / TOKEN_BASE

    @property
    def status_file(self) -> Path:
        """Agent status file path inside the node path."""
        return self.node_path / STATUS_BASE

    @classmethod
    def build(cls, settings: Settings, **options: Any) -> "CommandOptions":
        """Merge command line options over settings.

        Options passed as ``None`` fall back to the settings value.
        """
        values: dict[str, Any] = {
            "node_path": settings.node_path,
            "client_host": settings.client_host,
            "client_port": settings.client_port,
        }
        values.update({k: v for k, v in options.items() if v is not None})
        try:
            return cls(**values)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}"
                for err in e.errors()
            )
            raise OptionsError(problems) from e
