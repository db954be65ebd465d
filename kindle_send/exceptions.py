"""Exception hierarchy for kindle-send."""

from __future__ import annotations

from pathlib import Path


class KindleSendError(Exception):
    """Base exception for all kindle-send errors."""

    pass


class ConfigInvalidError(KindleSendError):
    """Raised when configuration is missing, malformed or fails validation."""

    pass


# === Daemon lifecycle ===


class DaemonError(KindleSendError):
    """Base exception for daemon lifecycle failures."""

    pass


class AlreadyRunningError(DaemonError):
    """Raised on start when a live daemon already owns the PID marker."""

    def __init__(self, pid: int, pid_file: Path):
        self.pid = pid
        self.pid_file = pid_file
        super().__init__(f"Daemon is already running (PID {pid}, marker {pid_file})")


class NotRunningError(DaemonError):
    """Raised on stop/status when no live daemon is found at the PID marker."""

    def __init__(self, pid_file: Path):
        self.pid_file = pid_file
        super().__init__(f"Daemon is not running (marker {pid_file})")


class StopTimeoutError(DaemonError):
    """Raised when a signalled daemon does not remove its PID marker in time."""

    def __init__(self, pid: int, timeout: float):
        self.pid = pid
        self.timeout = timeout
        super().__init__(
            f"Daemon (PID {pid}) did not stop within {timeout:.1f} seconds"
        )


# === Bookmark sources ===


class SourceError(KindleSendError):
    """Base exception for bookmark source and registry errors."""

    pass


class SourceUnavailableError(SourceError):
    """Raised when a source cannot produce bookmarks this cycle."""

    pass


class DuplicateSourceError(SourceError):
    """Raised when a source name is registered twice."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Bookmark source '{name}' is already registered")


class SourceNotFoundError(SourceError):
    """Raised when configuring a source name that was never registered."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Bookmark source '{name}' not found")


class InvalidSourceConfigError(SourceError):
    """Raised by a source that rejects its settings."""

    pass


# === Pipeline collaborators ===


class StatePersistenceError(KindleSendError):
    """Raised when the processed-bookmark state cannot be written."""

    pass


class ConversionError(KindleSendError):
    """Raised when a webpage cannot be converted into a document."""

    pass


class MailError(KindleSendError):
    """Raised when documents cannot be mailed to the device."""

    pass
