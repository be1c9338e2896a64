"""Tests for settings and option validation."""
from pathlib import Path

import pytest
from pydantic import ValidationError

from pkctl import config
from pkctl.config import CommandOptions, Settings
from pkctl.errors import OptionsError


class TestSettings:

    def test_defaults(self, tmp_path):
        settings = Settings()
        assert settings.node_path == tmp_path / "data" / "pkctl"
        assert settings.password is None
        assert settings.token is None
        assert settings.request_timeout == 30.0

    def test_environment(self, monkeypatch, tmp_path):
        monkeypatch.setenv("PK_NODE_PATH", str(tmp_path / "node"))
        monkeypatch.setenv("PK_PASSWORD", "secret")
        monkeypatch.setenv("PK_CLIENT_PORT", "1314")
        settings = Settings()
        assert settings.node_path == tmp_path / "node"
        assert settings.password == "secret"
        assert settings.client_port == 1314

    def test_user_config_file(self, tmp_path):
        config_file = tmp_path / "config" / "pkctl" / "config"
        config_file.parent.mkdir(parents=True)
        config_file.write_text(
            "# agent\n"
            "PK_CLIENT_HOST='10.0.0.1'\n"
            "PK_CLIENT_PORT=1314\n"
            "PK_PASSWORD=ignored\n"
        )
        settings = Settings()
        assert settings.client_host == "10.0.0.1"
        assert settings.client_port == 1314
        assert settings.password is None

    def test_environment_overrides_config_file(self, monkeypatch, tmp_path):
        config_file = tmp_path / "config" / "pkctl" / "config"
        config_file.parent.mkdir(parents=True)
        config_file.write_text("PK_CLIENT_HOST=10.0.0.1\n")
        monkeypatch.setenv("PK_CLIENT_HOST", "10.0.0.2")
        assert Settings().client_host == "10.0.0.2"

    def test_missing_config_file(self, tmp_path):
        assert config.read_config_file(tmp_path / "nope") == {}

    def test_config_file_lines(self, tmp_path):
        config_file = tmp_path / "config"
        config_file.write_text(
            "\n"
            "# comment\n"
            "not a setting\n"
            "PK_UNKNOWN=1\n"
            "PK_TOKEN=never\n"
            " PK_REQUEST_TIMEOUT = \"5\" \n"
        )
        assert config.read_config_file(config_file) == {"request_timeout": "5"}

    def test_later_config_files_win(self, tmp_path):
        system = tmp_path / "system"
        system.write_text("PK_CLIENT_HOST=10.0.0.1\nPK_CLIENT_PORT=1314\n")
        user = tmp_path / "user"
        user.write_text("PK_CLIENT_HOST=10.0.0.2\n")
        source = config.ConfigFileSource(Settings, [system, user, tmp_path / "missing"])
        assert source() == {"client_host": "10.0.0.2", "client_port": "1314"}

    def test_config_file_paths(self, tmp_path):
        assert config.config_file_paths() == [
            Path("/etc/pkctl/config"),
            tmp_path / "config" / "pkctl" / "config",
        ]


class TestCommandOptions:

    def test_options_override_settings(self, tmp_path):
        settings = Settings(client_host="10.0.0.1", client_port=1314)
        options = CommandOptions.build(settings, node_path=tmp_path, client_port=2000)
        assert options.node_path == tmp_path
        assert options.client_host == "10.0.0.1"
        assert options.client_port == 2000

    def test_none_falls_back_to_settings(self, tmp_path):
        settings = Settings(node_path=tmp_path)
        assert CommandOptions.build(settings, node_path=None).node_path == tmp_path

    def test_derived_paths(self, tmp_path):
        options = CommandOptions(node_path=tmp_path)
        assert options.token_file == tmp_path / "token"
        assert options.status_file == tmp_path / "status.json"

    def test_unknown_format(self, tmp_path):
        with pytest.raises(OptionsError, match="format"):
            CommandOptions.build(Settings(node_path=tmp_path), format="yaml")

    @pytest.mark.parametrize("port", [0, 65536])
    def test_port_out_of_range(self, tmp_path, port):
        with pytest.raises(OptionsError, match="client_port"):
            CommandOptions.build(Settings(node_path=tmp_path), client_port=port)

    def test_options_are_frozen(self, tmp_path):
        options = CommandOptions(node_path=tmp_path)
        with pytest.raises(ValidationError):
            options.verbose = 3
