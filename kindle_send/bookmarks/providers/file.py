"""
File-backed bookmark source.

Reads URLs from a plain-text file, or from every file directly inside a
folder. One URL per line; blank lines and lines starting with "#" are
skipped, and only http:// and https:// lines count as bookmarks.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, List, Mapping, Optional

from kindle_send.bookmarks.types import Bookmark, utcnow
from kindle_send.exceptions import InvalidSourceConfigError, SourceUnavailableError

URL_PREFIXES = ("http://", "https://")


def parse_bookmark_lines(lines) -> List[str]:
    """
    Extract bookmark URLs from an iterable of text lines.

    Example:
        >>> parse_bookmark_lines(["# reading list", "", "http://a.com", "ftp://b.com", "  https://c.com  "])
        ['http://a.com', 'https://c.com']
    """
    urls = []
    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith(URL_PREFIXES):
            urls.append(line)
    return urls


def read_bookmark_file(file_path: Path) -> List[str]:
    """
    Read bookmark URLs from one file.

    Bytes that are not valid UTF-8 decode as U+FFFD.

    Raises:
        OSError: If the file cannot be opened or read
    """
    with open(file_path, "r", encoding="utf-8", errors="replace") as f:
        return parse_bookmark_lines(f)


class FileBookmarkSource:
    """
    Bookmark source backed by a file or a folder of files.

    Settings:
        path: File or directory to read (required, non-empty)

    Example:
        source = FileBookmarkSource()
        source.configure({"path": "~/Dropbox/bookmarks"})
        urls = [b.url for b in source.get_bookmarks()]
    """

    name = "file"

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self.path: Optional[Path] = None

    def is_enabled(self) -> bool:
        return self.path is not None

    def configure(self, settings: Mapping[str, Any]) -> None:
        path = settings.get("path")
        if isinstance(path, Path):
            path = str(path)
        if not isinstance(path, str) or not path.strip():
            raise InvalidSourceConfigError("file source requires a non-empty 'path' setting")
        self.path = Path(path.strip()).expanduser()

    def get_bookmarks(self) -> List[Bookmark]:
        """
        Read every bookmark under the configured path.

        A directory is scanned one level deep in name order; a file inside it
        that cannot be read is logged and skipped.

        Raises:
            SourceUnavailableError: If the source is disabled, the path does
                not exist, or a single configured file cannot be read
        """
        if not self.is_enabled():
            raise SourceUnavailableError("file source is not enabled or configured")

        if not self.path.exists():
            raise SourceUnavailableError(f"bookmark path does not exist: {self.path}")

        if self.path.is_dir():
            urls = self._read_directory(self.path)
        else:
            try:
                urls = read_bookmark_file(self.path)
            except OSError as e:
                raise SourceUnavailableError(
                    f"error reading bookmark file {self.path}: {e}"
                ) from e

        now = utcnow()
        return [Bookmark(url=url, source=self.name, observed_at=now) for url in urls]

    def _read_directory(self, directory: Path) -> List[str]:
        try:
            entries = sorted(directory.iterdir())
        except OSError as e:
            raise SourceUnavailableError(
                f"error reading bookmark directory {directory}: {e}"
            ) from e

        urls: List[str] = []
        for file_path in entries:
            if file_path.is_dir():
                continue
            try:
                urls.extend(read_bookmark_file(file_path))
            except OSError as e:
                self.logger.warning(
                    f"Error reading bookmark file {file_path}: {e}",
                    extra={
                        "event": "bookmark_file_skipped",
                        "source": self.name,
                        "path": str(file_path),
                        "error": str(e),
                    },
                )
        return urls
