"""
Unit tests for configuration module.

Tests cover:
- Defaults and daemon path defaults
- Type safety and constraints
- Immutability (frozen config)
- JSON config file loading, legacy keys and environment variables
- Derived properties (state_path, mail_timeout_seconds)
"""

import json

import pytest
from pydantic import ValidationError

from kindle_send.config import (
    STATE_FILE_NAME,
    Config,
    default_config_dir,
    default_config_path,
    load_config,
    read_config_file,
)
from kindle_send.exceptions import ConfigInvalidError


class TestConfigDefaults:
    """Test default values."""

    def test_defaults(self):
        """Verify default field values."""
        config = Config()

        assert config.server == "smtp.gmail.com"
        assert config.port == 465
        assert config.check_interval_minutes == 15
        assert config.daemon_enabled is False
        assert config.bookmark_path is None
        assert config.log_level == "INFO"

    def test_daemon_paths_default_to_config_dir(self, tmp_path):
        """Place PID and log files in the config directory."""
        config = Config()

        assert default_config_dir() == tmp_path / "xdg" / "kindle-send"
        assert config.pid_file == default_config_dir() / "kindle-send.pid"
        assert config.log_path == default_config_dir() / "kindle-send.log"

    def test_default_config_path(self, tmp_path):
        """Resolve KindleConfig.json under XDG_CONFIG_HOME."""
        assert default_config_path() == tmp_path / "xdg" / "kindle-send" / "KindleConfig.json"

    def test_home_fallback_without_xdg(self, monkeypatch, tmp_path):
        """Fall back to ~/.config without XDG_CONFIG_HOME."""
        monkeypatch.delenv("XDG_CONFIG_HOME")
        monkeypatch.setenv("HOME", str(tmp_path))

        assert default_config_dir() == tmp_path / ".config" / "kindle-send"


class TestConfigValidation:
    """Test configuration validation rules."""

    def test_empty_path_means_unset(self):
        """Treat blank paths as unset."""
        config = Config(bookmark_path="", store_path="  ")

        assert config.bookmark_path is None
        assert config.store_path is None

    def test_user_path_is_expanded(self, monkeypatch, tmp_path):
        """Expand ~ in configured paths."""
        monkeypatch.setenv("HOME", str(tmp_path))

        config = Config(bookmark_path="~/bookmarks.txt")

        assert config.bookmark_path == tmp_path / "bookmarks.txt"

    @pytest.mark.parametrize("interval", [0, -5, 10081])
    def test_interval_out_of_range(self, interval):
        """Reject check intervals outside 1..10080 minutes."""
        with pytest.raises(ValidationError):
            Config(check_interval_minutes=interval)

    def test_invalid_port(self):
        """Reject a port above 65535."""
        with pytest.raises(ValidationError):
            Config(port=70000)

    def test_log_level_is_case_insensitive(self):
        """Normalise log level case."""
        assert Config(log_level="debug").log_level == "DEBUG"

    def test_invalid_log_level(self):
        """Reject an unknown log level."""
        with pytest.raises(ValidationError):
            Config(log_level="LOUD")

    def test_config_is_frozen(self):
        """Config cannot be modified after creation."""
        config = Config()
        with pytest.raises(ValidationError):
            config.check_interval_minutes = 5

    def test_repr_hides_password(self):
        """Keep the password out of repr."""
        config = Config(sender="me@example.com", password="hunter2")

        assert "hunter2" not in repr(config)
        assert config.password.get_secret_value() == "hunter2"

    def test_environment_variables(self, monkeypatch):
        """Read KINDLE_SEND_ environment variables."""
        monkeypatch.setenv("KINDLE_SEND_CHECK_INTERVAL_MINUTES", "5")
        monkeypatch.setenv("KINDLE_SEND_DAEMON_ENABLED", "true")

        config = Config()

        assert config.check_interval_minutes == 5
        assert config.daemon_enabled is True


class TestDerivedProperties:
    """Test computed config properties."""

    def test_state_path_next_to_pid_file(self, tmp_path):
        """Default the state file to the PID file directory."""
        config = Config(pid_file=tmp_path / "run" / "daemon.pid")

        assert config.state_path == tmp_path / "run" / STATE_FILE_NAME

    def test_explicit_state_file(self, tmp_path):
        """Use an explicit state file when set."""
        config = Config(state_file=tmp_path / "state.json")

        assert config.state_path == tmp_path / "state.json"

    @pytest.mark.parametrize("interval,expected", [(1, 60), (2, 120), (15, 900)])
    def test_mail_timeout_scales_with_interval(self, interval, expected):
        """Derive the mail timeout from the check interval."""
        assert Config(check_interval_minutes=interval).mail_timeout_seconds == expected


class TestLoadConfig:
    """Test loading from the JSON config file."""

    def test_missing_file_uses_defaults(self, tmp_path):
        """Fall back to defaults when the file is absent."""
        config = load_config(tmp_path / "missing.json")

        assert config.check_interval_minutes == 15

    def test_reads_kindle_config_file(self, tmp_path):
        """Load every supported key from KindleConfig.json."""
        path = tmp_path / "KindleConfig.json"
        path.write_text(
            json.dumps(
                {
                    "sender": "me@example.com",
                    "receiver": "me@kindle.com",
                    "password": "secret",
                    "server": "smtp.example.com",
                    "port": 587,
                    "storepath": str(tmp_path / "store"),
                    "bookmark_path": str(tmp_path / "bookmarks"),
                    "check_interval_minutes": 30,
                    "daemon_enabled": True,
                    "log_path": "",
                    "pid_file": "",
                }
            ),
            encoding="utf-8",
        )

        config = load_config(path)

        assert config.store_path == tmp_path / "store"
        assert config.bookmark_path == tmp_path / "bookmarks"
        assert config.port == 587
        assert config.daemon_enabled is True
        assert config.pid_file == default_config_dir() / "kindle-send.pid"

    def test_overrides_take_precedence(self, tmp_path):
        """Keyword overrides beat file values."""
        path = tmp_path / "KindleConfig.json"
        path.write_text(json.dumps({"check_interval_minutes": 30}), encoding="utf-8")

        config = load_config(path, check_interval_minutes=5)

        assert config.check_interval_minutes == 5

    def test_file_takes_precedence_over_environment(self, tmp_path, monkeypatch):
        """File values beat environment variables."""
        monkeypatch.setenv("KINDLE_SEND_CHECK_INTERVAL_MINUTES", "5")
        path = tmp_path / "KindleConfig.json"
        path.write_text(json.dumps({"check_interval_minutes": 30}), encoding="utf-8")

        assert load_config(path).check_interval_minutes == 30

    def test_malformed_json_raises(self, tmp_path):
        """Raise ConfigInvalidError for broken JSON."""
        path = tmp_path / "KindleConfig.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(ConfigInvalidError):
            load_config(path)

    def test_non_object_raises(self, tmp_path):
        """Raise ConfigInvalidError when the top level is not an object."""
        path = tmp_path / "KindleConfig.json"
        path.write_text("[1, 2]", encoding="utf-8")

        with pytest.raises(ConfigInvalidError):
            read_config_file(path)

    def test_validation_error_is_wrapped(self, tmp_path):
        """Wrap pydantic validation errors."""
        path = tmp_path / "KindleConfig.json"
        path.write_text(json.dumps({"check_interval_minutes": 0}), encoding="utf-8")

        with pytest.raises(ConfigInvalidError) as exc_info:
            load_config(path)

        assert isinstance(exc_info.value.__cause__, ValidationError)
