"""
Bookmark polling daemon.

Checks the configured bookmark sources once at startup and then every
check_interval_minutes, mailing new bookmarks to the device. A PID file
guards against two daemons running at once; SIGTERM and SIGINT trigger a
graceful shutdown that removes the PID file.

Lifecycle:
    IDLE -> VALIDATING -> RUNNING -> STOPPED

`stop` works across processes: it reads the PID file, sends SIGTERM to that
process and waits for the PID file to disappear.
"""

from __future__ import annotations

import logging
import os
import signal
import threading
import time
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Optional

from kindle_send.bookmarks.providers.file import FileBookmarkSource
from kindle_send.bookmarks.registry import SourceRegistry
from kindle_send.config import Config
from kindle_send.exceptions import (
    AlreadyRunningError,
    ConfigInvalidError,
    DaemonError,
    NotRunningError,
    StopTimeoutError,
)
from kindle_send.handler import DocumentQueue, SnapshotConverter
from kindle_send.logging_config import LOGGER_NAME, close_logging
from kindle_send.mailer import SMTPMailSender
from kindle_send.processor import BookmarkProcessor, CycleStatus

DEFAULT_STOP_TIMEOUT = 10.0
STOP_POLL_INTERVAL = 0.2
HANDLED_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class DaemonState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass(frozen=True)
class DaemonStatus:
    """Snapshot reported by `daemon status`."""

    running: bool
    pid: Optional[int]
    pid_file: Path
    bookmark_path: Optional[Path]
    check_interval_minutes: int
    log_path: Optional[Path]


def read_pid(pid_file: Path) -> Optional[int]:
    """Return the PID stored in pid_file, or None if absent or unreadable."""
    try:
        return int(pid_file.read_text(encoding="utf-8").strip())
    except (OSError, ValueError):
        return None


def is_process_alive(pid: int) -> bool:
    """Probe pid with signal 0."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # exists, owned by another user
        return True
    except OSError:
        return False
    return True


def build_registry(config: Config, logger: Optional[logging.Logger] = None) -> SourceRegistry:
    """Registry with the file source, configured from config.bookmark_path."""
    registry = SourceRegistry(logger=logger)
    registry.register(FileBookmarkSource(logger=logger))
    if config.bookmark_path is not None:
        registry.configure("file", {"path": str(config.bookmark_path)})
    return registry


def build_processor(config: Config, logger: Optional[logging.Logger] = None) -> BookmarkProcessor:
    """Wire the default collaborators: file source, page snapshots, SMTP."""
    return BookmarkProcessor(
        config=config,
        registry=build_registry(config, logger),
        document_queue=DocumentQueue(SnapshotConverter(config.store_path, logger=logger), logger=logger),
        mailer=SMTPMailSender(config, logger=logger),
        logger=logger,
    )


class DaemonController:
    """
    Owns the polling loop, PID file and signal handling.

    Example:
        config = load_config()
        logger = setup_logging_from_config(config)
        DaemonController(config, logger=logger, close_logging_on_stop=True).start()
    """

    def __init__(
        self,
        config: Config,
        processor: Optional[BookmarkProcessor] = None,
        processor_factory: Optional[Callable[[], BookmarkProcessor]] = None,
        logger: Optional[logging.Logger] = None,
        close_logging_on_stop: bool = False,
    ):
        """
        Initialize the controller. Nothing is touched on disk until start().

        Args:
            config: Settings for this run
            processor: Processor to drive; built lazily when omitted
            processor_factory: Builds the processor on start (default: build_processor)
            logger: Logger for lifecycle events
            close_logging_on_stop: Close the logger's handlers when the loop exits
        """
        self.config = config
        self.pid_file: Path = config.pid_file
        self.logger = logger or logging.getLogger(f"{LOGGER_NAME}.daemon")
        self.close_logging_on_stop = close_logging_on_stop

        self._processor = processor
        self._processor_factory = processor_factory or (lambda: build_processor(config, self.logger))
        self._shutdown_event = threading.Event()
        self._state = DaemonState.IDLE

    @property
    def state(self) -> DaemonState:
        return self._state

    @property
    def interval_seconds(self) -> float:
        return self.config.check_interval_minutes * 60

    # === Validation and single-instance guard ===

    def validate(self) -> None:
        """
        Raises:
            ConfigInvalidError: If the daemon is disabled or has no bookmark path
        """
        if not self.config.daemon_enabled:
            raise ConfigInvalidError(
                "daemon is not enabled in configuration (set daemon_enabled to true)"
            )
        if self.config.bookmark_path is None:
            raise ConfigInvalidError("bookmark path is not configured")

    def running_pid(self) -> Optional[int]:
        """PID of a live daemon recorded in the PID file, else None."""
        pid = read_pid(self.pid_file)
        if pid is None or not is_process_alive(pid):
            return None
        return pid

    def check_single_instance(self) -> None:
        """
        Raises:
            AlreadyRunningError: If the PID file names another live process
        """
        pid = self.running_pid()
        if pid is not None and pid != os.getpid():
            raise AlreadyRunningError(pid, self.pid_file)

        if self.pid_file.exists():
            self.logger.info(
                f"Overwriting stale PID file {self.pid_file}",
                extra={"event": "stale_pid_file", "pid_file": str(self.pid_file)},
            )

    def write_pid_file(self) -> None:
        self.pid_file.parent.mkdir(parents=True, exist_ok=True)
        self.pid_file.write_text(str(os.getpid()), encoding="utf-8")

    def remove_pid_file(self) -> None:
        """Remove the PID file if it still belongs to this process."""
        if read_pid(self.pid_file) == os.getpid():
            self.pid_file.unlink(missing_ok=True)

    # === Signals ===

    def signal_handler(self, signum, frame):
        """Handle shutdown signals (SIGTERM, SIGINT)."""
        signal_name = signal.Signals(signum).name
        self.logger.info(
            f"Received {signal_name}, initiating graceful shutdown...",
            extra={"event": "signal_received", "signal": signal_name},
        )
        self._shutdown_event.set()

    def _install_signal_handlers(self) -> Dict[int, object]:
        if threading.current_thread() is not threading.main_thread():
            self.logger.debug("Not in main thread, signal handlers not installed")
            return {}
        previous = {}
        for sig in HANDLED_SIGNALS:
            previous[sig] = signal.signal(sig, self.signal_handler)
        return previous

    @staticmethod
    def _restore_signal_handlers(previous: Dict[int, object]) -> None:
        for sig, handler in previous.items():
            signal.signal(sig, handler)

    # === Lifecycle ===

    def request_stop(self) -> None:
        """Ask the loop to exit; takes effect before the next wait."""
        self._shutdown_event.set()

    def start(self) -> None:
        """
        Start the daemon and block until it is stopped.

        Raises:
            ConfigInvalidError: If validation fails
            AlreadyRunningError: If another daemon owns the PID file
        """
        if self._state is DaemonState.RUNNING:
            raise AlreadyRunningError(os.getpid(), self.pid_file)

        self._state = DaemonState.VALIDATING
        try:
            self.validate()
            self.check_single_instance()
            processor = self._processor or self._processor_factory()
            self._processor = processor
            self.write_pid_file()
        except Exception:
            self._state = DaemonState.IDLE
            raise

        self._shutdown_event.clear()
        previous_handlers = self._install_signal_handlers()
        self._state = DaemonState.RUNNING

        self.logger.info(
            f"Kindle-send daemon started with PID {os.getpid()}, "
            f"checking bookmarks every {self.config.check_interval_minutes} minutes",
            extra={
                "event": "daemon_started",
                "pid": os.getpid(),
                "interval_minutes": self.config.check_interval_minutes,
                "path": str(self.config.bookmark_path),
                "pid_file": str(self.pid_file),
            },
        )

        try:
            self._run_loop(processor)
        finally:
            self._restore_signal_handlers(previous_handlers)
            self._cleanup()

    def _run_loop(self, processor: BookmarkProcessor) -> None:
        """
        Run a cycle now, then one per interval until shutdown is requested.

        Cycles run to completion on this thread. Ticks missed while a cycle
        overruns collapse into a single pending tick, so the next cycle
        starts immediately and the schedule then resumes.
        """
        interval = self.interval_seconds
        self.run_cycle(processor)
        next_tick = time.monotonic() + interval

        while True:
            remaining = max(next_tick - time.monotonic(), 0.0)
            if self._shutdown_event.wait(timeout=remaining):
                self.logger.info("Shutdown requested", extra={"event": "daemon_stopping"})
                return

            self.logger.info("Starting bookmark check cycle", extra={"event": "cycle_tick"})
            self.run_cycle(processor)

            next_tick += interval
            now = time.monotonic()
            if next_tick <= now:
                missed = (now - next_tick) // interval
                next_tick += missed * interval

    def run_cycle(self, processor: BookmarkProcessor) -> None:
        """Run one cycle; nothing raised inside a cycle stops the daemon."""
        try:
            result = processor.run_cycle()
        except Exception as e:
            self.logger.error(
                f"Unexpected error in bookmark cycle: {e}",
                exc_info=True,
                extra={"event": "cycle_error", "error_type": type(e).__name__},
            )
            return

        if result.status is CycleStatus.SUCCESS and result.processed:
            self.logger.info(
                f"Successfully processed and sent {len(result.processed)} bookmarks",
                extra={
                    "event": "cycle_complete",
                    "cycle_status": result.status.value,
                    "bookmark_count": len(result.processed),
                    "duration_ms": int(result.duration_seconds * 1000),
                },
            )
        else:
            self.logger.debug(
                f"Cycle finished: {result.status.value}",
                extra={
                    "event": "cycle_complete",
                    "cycle_status": result.status.value,
                    "duration_ms": int(result.duration_seconds * 1000),
                },
            )

    def _cleanup(self) -> None:
        self.remove_pid_file()
        self._state = DaemonState.STOPPED
        self.logger.info("Daemon stopped successfully", extra={"event": "daemon_stopped"})
        if self.close_logging_on_stop:
            close_logging(self.logger)

    def stop(self, timeout: float = DEFAULT_STOP_TIMEOUT) -> None:
        """
        Stop the daemon recorded in the PID file.

        When that daemon is this process the loop is asked to exit; otherwise
        SIGTERM is sent and the PID file is polled until it disappears.

        Raises:
            NotRunningError: If no live daemon is recorded
            StopTimeoutError: If the daemon did not exit within timeout
            DaemonError: If the process cannot be signalled
        """
        pid = self.running_pid()
        if pid is None:
            raise NotRunningError(self.pid_file)

        if pid == os.getpid():
            self.logger.info("Stopping daemon...", extra={"event": "daemon_stop", "pid": pid})
            self.request_stop()
            return

        self.logger.info(
            f"Stopping daemon (PID {pid})...",
            extra={"event": "daemon_stop", "pid": pid},
        )
        try:
            os.kill(pid, signal.SIGTERM)
        except ProcessLookupError:
            return
        except PermissionError as e:
            raise DaemonError(f"Not permitted to signal daemon (PID {pid}): {e}") from e

        deadline = time.monotonic() + timeout
        while time.monotonic() < deadline:
            if not self.pid_file.exists():
                self.logger.info("Daemon stopped successfully", extra={"event": "daemon_stopped", "pid": pid})
                return
            if not is_process_alive(pid):
                # exited without cleanup
                self.pid_file.unlink(missing_ok=True)
                self.logger.info(
                    "Daemon exited, removed stale PID file",
                    extra={"event": "daemon_stopped", "pid": pid},
                )
                return
            time.sleep(STOP_POLL_INTERVAL)

        raise StopTimeoutError(pid, timeout)

    def status(self) -> DaemonStatus:
        """Report whether a daemon is running; never changes any state."""
        pid = self.running_pid()
        return DaemonStatus(
            running=pid is not None,
            pid=pid,
            pid_file=self.pid_file,
            bookmark_path=self.config.bookmark_path,
            check_interval_minutes=self.config.check_interval_minutes,
            log_path=self.config.log_path,
        )

    def restart(self, timeout: float = DEFAULT_STOP_TIMEOUT) -> None:
        """Stop the running daemon (if any), then start in this process."""
        if self.status().running:
            self.logger.info("Stopping existing daemon...", extra={"event": "daemon_restart"})
            self.stop(timeout=timeout)
        self.logger.info("Starting daemon...", extra={"event": "daemon_restart"})
        self.start()
