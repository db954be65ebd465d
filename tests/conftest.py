"""
Pytest configuration and shared fixtures for testing.

Provides:
- Config fixtures with every file path inside tmp_path
- Bookmark file and registry fixtures
- Fake converter and mailer collaborators
"""

import logging
import os
from pathlib import Path
from typing import List

import pytest

from kindle_send.bookmarks.providers.file import FileBookmarkSource
from kindle_send.bookmarks.registry import SourceRegistry
from kindle_send.config import Config
from kindle_send.dedupe import DedupeStore
from kindle_send.exceptions import ConversionError, MailError
from kindle_send.handler import DocumentQueue
from kindle_send.logging_config import LOGGER_NAME, close_logging
from kindle_send.processor import BookmarkProcessor


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path, monkeypatch):
    """Keep tests away from the real config directory and KINDLE_SEND_* env; reset app logging after."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    for key in list(os.environ):
        if key.upper().startswith("KINDLE_SEND_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
    yield
    app_logger = logging.getLogger(LOGGER_NAME)
    close_logging(app_logger)
    app_logger.setLevel(logging.NOTSET)


@pytest.fixture
def bookmark_file(tmp_path):
    """
    Bookmark file with two valid URLs among comments and junk.

    Returns:
        Path: Path to the bookmark file
    """
    path = tmp_path / "bookmarks.txt"
    path.write_text(
        "# reading list\n"
        "\n"
        "http://a.com\n"
        "ftp://b.com\n"
        "  https://c.com  \n",
        encoding="utf-8",
    )
    return path


@pytest.fixture
def make_config(tmp_path):
    """
    Factory for Config instances rooted in tmp_path.

    Returns:
        Callable[..., Config]
    """

    def _make(**overrides) -> Config:
        values = {
            "sender": "me@example.com",
            "receiver": "me@kindle.com",
            "password": "secret",
            "store_path": tmp_path / "store",
            "pid_file": tmp_path / "run" / "kindle-send.pid",
            "log_path": tmp_path / "logs" / "kindle-send.log",
            "check_interval_minutes": 15,
        }
        values.update(overrides)
        return Config(**values)

    return _make


@pytest.fixture
def config(make_config, bookmark_file):
    """Daemon-ready config pointing at bookmark_file."""
    return make_config(daemon_enabled=True, bookmark_path=bookmark_file)


@pytest.fixture
def logger():
    return logging.getLogger("kindle_send.tests")


@pytest.fixture
def registry(bookmark_file, logger):
    """Registry with the file source configured on bookmark_file."""
    registry = SourceRegistry(logger=logger)
    registry.register(FileBookmarkSource(logger=logger))
    registry.configure("file", {"path": str(bookmark_file)})
    return registry


class FakeConverter:
    """Records conversions and writes one small file per call."""

    def __init__(self, store_path: Path, fail_for=()):
        self.store_path = store_path
        self.fail_for = set(fail_for)
        self.calls: List[List[str]] = []

    def make(self, urls, title=""):
        self.calls.append(list(urls))
        if any(url in self.fail_for for url in urls):
            raise ConversionError(f"cannot convert {urls}")
        self.store_path.mkdir(parents=True, exist_ok=True)
        path = self.store_path / f"doc-{len(self.calls)}.html"
        path.write_text("<html></html>", encoding="utf-8")
        return path


class FakeMailer:
    """Records sends; raises MailError when fail is set."""

    def __init__(self, fail: bool = False):
        self.fail = fail
        self.sent: List[tuple] = []

    def send(self, files, timeout):
        self.sent.append((list(files), timeout))
        if self.fail:
            raise MailError("smtp unavailable")


@pytest.fixture
def converter(tmp_path):
    return FakeConverter(tmp_path / "store")


@pytest.fixture
def mailer():
    return FakeMailer()


@pytest.fixture
def failing_mailer():
    return FakeMailer(fail=True)


@pytest.fixture
def store(config, logger):
    return DedupeStore(config.state_path, logger=logger)


@pytest.fixture
def make_processor(config, registry, converter, mailer, store, logger):
    """
    Factory for BookmarkProcessor wired to fakes.

    Keyword arguments replace individual collaborators.
    """

    def _make(**overrides) -> BookmarkProcessor:
        parts = {
            "config": config,
            "registry": registry,
            "document_queue": DocumentQueue(converter, logger=logger),
            "mailer": mailer,
            "store": store,
            "logger": logger,
        }
        parts.update(overrides)
        return BookmarkProcessor(**parts)

    return _make
