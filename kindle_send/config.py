"""
Configuration management using Pydantic V2.
Validates the JSON config file plus environment variables and provides
type-safe, read-only access to settings.

Configuration sources, highest priority first:
- Values from the JSON config file (KindleConfig.json)
- Environment variables prefixed with KINDLE_SEND_ (or a .env file)
- Field defaults

There is deliberately no global instance: load a Config once per command and
pass it to the components that need it.

Usage:
    from kindle_send.config import load_config

    config = load_config()
    print(config.check_interval_minutes)  # 15
    print(config.state_path)  # ~/.config/kindle-send/processed_bookmarks.json
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, Literal, Optional

from pydantic import Field, SecretStr, ValidationError, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from kindle_send.exceptions import ConfigInvalidError

XDG_CONFIG_HOME = "XDG_CONFIG_HOME"
CONFIG_FOLDER_NAME = "kindle-send"
CONFIG_FILE_NAME = "KindleConfig.json"
STATE_FILE_NAME = "processed_bookmarks.json"

# Mail timeout used by one-shot commands when none is given.
DEFAULT_MAIL_TIMEOUT = 120

# Keys written by older releases of the config file.
_LEGACY_KEYS = {"storepath": "store_path", "pidfile": "pid_file"}


def default_config_dir() -> Path:
    """Return $XDG_CONFIG_HOME/kindle-send, falling back to ~/.config/kindle-send."""
    xdg_config_home = os.getenv(XDG_CONFIG_HOME)
    if xdg_config_home:
        return Path(xdg_config_home) / CONFIG_FOLDER_NAME
    return Path.home() / ".config" / CONFIG_FOLDER_NAME


def default_config_path() -> Path:
    return default_config_dir() / CONFIG_FILE_NAME


class Config(BaseSettings):
    """
    Application configuration.

    All settings are validated on instantiation and the instance is frozen,
    so a daemon run sees the same values from start to stop.

    Attributes:
        sender: Address documents are mailed from
        receiver: Device address documents are mailed to
        password: SMTP password for the sender
        server: SMTP server host
        port: SMTP server port (465 implies implicit TLS)
        store_path: Directory converted documents are written to
        bookmark_path: Bookmark file or folder monitored by the daemon
        check_interval_minutes: Minutes between bookmark checks
        daemon_enabled: Whether `daemon start` is allowed
        log_path: Daemon log file
        pid_file: Daemon PID marker file
        state_file: Processed-bookmark state (defaults next to pid_file)

    Example:
        >>> config = Config(bookmark_path="~/bookmarks.txt", daemon_enabled=True)
        >>> config.check_interval_minutes
        15
        >>> config.mail_timeout_seconds
        900
    """

    # === Mail Configuration ===
    sender: str = Field(default="", description="Sender email address")
    receiver: str = Field(default="", description="E-reader email address")
    password: SecretStr = Field(
        default=SecretStr(""),
        description="SMTP password for the sender account",
    )
    server: str = Field(default="smtp.gmail.com", description="SMTP server address")
    port: int = Field(default=465, description="SMTP server port", ge=1, le=65535)

    store_path: Optional[Path] = Field(
        default=None,
        description="Directory for converted documents (empty: current directory)",
    )

    # === Daemon Configuration ===
    bookmark_path: Optional[Path] = Field(
        default=None,
        description="Bookmark file or folder to monitor",
    )

    check_interval_minutes: int = Field(
        default=15,
        description="Minutes between bookmark checks",
        ge=1,
        le=10080,
    )

    daemon_enabled: bool = Field(
        default=False,
        description="Allow the background daemon to run",
    )

    pid_file: Optional[Path] = Field(default=None, description="Daemon PID file")

    state_file: Optional[Path] = Field(
        default=None,
        description="Processed bookmark state file (default: next to pid_file)",
    )

    # === Logging Configuration ===
    log_path: Optional[Path] = Field(default=None, description="Daemon log file")

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO",
        description="Logging level",
    )

    log_format: Literal["json", "text"] = Field(
        default="text",
        description="Log output format",
    )

    log_max_bytes: int = Field(
        default=10485760,  # 10MB
        description="Maximum log file size before rotation",
        ge=1048576,  # 1MB minimum
    )

    log_backup_count: int = Field(
        default=5,
        description="Number of backup log files to keep",
        ge=1,
        le=50,
    )

    @field_validator("store_path", "bookmark_path", "pid_file", "state_file", "log_path", mode="before")
    @classmethod
    def empty_path_is_unset(cls, v: Any) -> Any:
        """Treat "" (how the config file spells "not configured") as None."""
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return None
            return Path(v).expanduser()
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> Any:
        return v.upper() if isinstance(v, str) else v

    @model_validator(mode="before")
    @classmethod
    def apply_daemon_defaults(cls, values: Any) -> Any:
        """
        Accept legacy keys (e.g. "storepath") and place the log and PID
        files in the config directory when they are not configured.
        """
        if not isinstance(values, dict):
            return values
        for old, new in _LEGACY_KEYS.items():
            if old in values and new not in values:
                values[new] = values.pop(old)

        config_dir = default_config_dir()
        if not str(values.get("log_path") or "").strip():
            values["log_path"] = config_dir / "kindle-send.log"
        if not str(values.get("pid_file") or "").strip():
            values["pid_file"] = config_dir / "kindle-send.pid"
        return values

    # === Pydantic Configuration ===
    model_config = SettingsConfigDict(
        env_prefix="KINDLE_SEND_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        frozen=True,  # Immutable after instantiation
        extra="ignore",  # Ignore unknown keys in the config file
    )

    @property
    def state_path(self) -> Path:
        """Processed-bookmark state file."""
        if self.state_file is not None:
            return self.state_file
        return self.pid_file.parent / STATE_FILE_NAME

    @property
    def mail_timeout_seconds(self) -> int:
        """Daemon mail timeout: scales with the poll interval, never below 60s."""
        return max(self.check_interval_minutes * 60, 60)

    def __repr__(self) -> str:
        """Safe repr that never shows the SMTP password."""
        return (
            f"Config("
            f"sender={self.sender or '-'}, "
            f"receiver={self.receiver or '-'}, "
            f"server={self.server}:{self.port}, "
            f"bookmark_path={self.bookmark_path}, "
            f"interval={self.check_interval_minutes}m, "
            f"daemon_enabled={self.daemon_enabled}"
            f")"
        )


def read_config_file(path: Path) -> Dict[str, Any]:
    """
    Read the JSON config file.

    Returns:
        Raw key/value mapping; {} when the file does not exist

    Raises:
        ConfigInvalidError: If the file cannot be read or is not a JSON object
    """
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ConfigInvalidError(f"Cannot read config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigInvalidError(f"Config file {path} must contain a JSON object")
    return data


def load_config(path: Optional[Path] = None, **overrides: Any) -> Config:
    """
    Load and validate configuration.

    Args:
        path: JSON config file (default: $XDG_CONFIG_HOME/kindle-send/KindleConfig.json)
        **overrides: Values that take precedence over the file

    Returns:
        Validated and frozen Config instance

    Raises:
        ConfigInvalidError: If the file is malformed or validation fails

    Example:
        >>> config = load_config(Path("KindleConfig.json"), check_interval_minutes=5)
        >>> config.mail_timeout_seconds
        300
    """
    config_path = Path(path).expanduser() if path else default_config_path()
    values = read_config_file(config_path)
    values.update(overrides)
    try:
        return Config(**values)
    except ValidationError as e:
        raise ConfigInvalidError(f"Invalid configuration in {config_path}: {e}") from e
