"""
Unit tests for the file-backed bookmark source.

Tests cover:
- Line parsing rules (comments, blanks, schemes, whitespace)
- Single file and directory reads
- Configuration and unavailable-source errors
"""

import logging

import pytest

from kindle_send.bookmarks.providers import file as file_module
from kindle_send.bookmarks.providers.file import (
    FileBookmarkSource,
    parse_bookmark_lines,
)
from kindle_send.exceptions import InvalidSourceConfigError, SourceUnavailableError


def configured(path):
    source = FileBookmarkSource()
    source.configure({"path": str(path)})
    return source


class TestParseBookmarkLines:
    """Test suite for bookmark line parsing."""

    def test_filtering(self):
        """Skip comments, blanks and non-http schemes."""
        lines = ["# comment", "", "http://a.com", "ftp://b.com", "  https://c.com  "]

        assert parse_bookmark_lines(lines) == ["http://a.com", "https://c.com"]

    def test_indented_comment_is_skipped(self):
        """Skip comments after leading whitespace."""
        assert parse_bookmark_lines(["   # http://a.com"]) == []

    def test_bare_domain_is_ignored(self):
        """Ignore lines without an http or https prefix."""
        assert parse_bookmark_lines(["example.com", "httpx://a.com"]) == []

    def test_duplicates_are_kept(self):
        """Keep repeated URLs."""
        assert parse_bookmark_lines(["http://a.com", "http://a.com"]) == [
            "http://a.com",
            "http://a.com",
        ]


class TestConfigure:
    """Test suite for file source configuration."""

    def test_disabled_until_configured(self):
        """A fresh source is disabled."""
        assert FileBookmarkSource().is_enabled() is False

    def test_accepts_path_object(self, bookmark_file):
        """Accept a Path as the path setting."""
        source = FileBookmarkSource()
        source.configure({"path": bookmark_file})

        assert source.is_enabled()
        assert source.path == bookmark_file

    @pytest.mark.parametrize("settings", [{}, {"path": ""}, {"path": "   "}, {"path": 42}])
    def test_invalid_settings(self, settings):
        """Reject a missing, blank or non-string path."""
        source = FileBookmarkSource()

        with pytest.raises(InvalidSourceConfigError):
            source.configure(settings)

        assert source.is_enabled() is False


class TestGetBookmarks:
    """Test suite for reading bookmarks from disk."""

    def test_single_file(self, bookmark_file):
        """Read tagged bookmarks from one file."""
        bookmarks = configured(bookmark_file).get_bookmarks()

        assert [b.url for b in bookmarks] == ["http://a.com", "https://c.com"]
        assert all(b.source == "file" for b in bookmarks)
        assert all(b.title == "" for b in bookmarks)
        assert bookmarks[0].observed_at.tzinfo is not None

    def test_disabled_source(self):
        """Raise SourceUnavailableError before configure."""
        with pytest.raises(SourceUnavailableError):
            FileBookmarkSource().get_bookmarks()

    def test_missing_path(self, tmp_path):
        """Raise SourceUnavailableError for a missing path."""
        with pytest.raises(SourceUnavailableError):
            configured(tmp_path / "nope.txt").get_bookmarks()

    def test_unreadable_single_file(self, bookmark_file, monkeypatch):
        """Surface an OS error on the configured file as an unavailable source."""

        def deny(file_path):
            raise PermissionError(13, "Permission denied", str(file_path))

        monkeypatch.setattr(file_module, "read_bookmark_file", deny)

        with pytest.raises(SourceUnavailableError):
            configured(bookmark_file).get_bookmarks()

    def test_non_utf8_comment_in_single_file(self, tmp_path):
        """Read URLs around a Latin-1 byte in a comment line."""
        path = tmp_path / "bookmarks.txt"
        path.write_bytes(b"# caf\xe9 reading\nhttps://a.com\nhttps://b.com\n")

        urls = [b.url for b in configured(path).get_bookmarks()]

        assert urls == ["https://a.com", "https://b.com"]

    def test_directory_in_name_order(self, tmp_path):
        """Read top-level folder files in name order."""
        folder = tmp_path / "bookmarks"
        folder.mkdir()
        (folder / "b.txt").write_text("https://b.com\n", encoding="utf-8")
        (folder / "a.txt").write_text("https://a.com\n# skip\n", encoding="utf-8")
        (folder / "nested").mkdir()
        (folder / "nested" / "c.txt").write_text("https://c.com\n", encoding="utf-8")

        urls = [b.url for b in configured(folder).get_bookmarks()]

        assert urls == ["https://a.com", "https://b.com"]

    def test_directory_skips_unreadable_file(self, tmp_path, monkeypatch, caplog):
        """Log and skip a folder entry that cannot be opened."""
        caplog.set_level(logging.WARNING)
        folder = tmp_path / "bookmarks"
        folder.mkdir()
        (folder / "a.txt").write_text("https://a.com\n", encoding="utf-8")
        (folder / "b.txt").write_text("https://b.com\n", encoding="utf-8")
        read = file_module.read_bookmark_file

        def deny_a(file_path):
            if file_path.name == "a.txt":
                raise PermissionError(13, "Permission denied", str(file_path))
            return read(file_path)

        monkeypatch.setattr(file_module, "read_bookmark_file", deny_a)

        urls = [b.url for b in configured(folder).get_bookmarks()]

        assert urls == ["https://b.com"]
        assert any("a.txt" in r.getMessage() for r in caplog.records)

    def test_non_utf8_comment_in_directory_entry(self, tmp_path, caplog):
        """Keep every URL from a folder entry holding a Latin-1 comment byte."""
        caplog.set_level(logging.WARNING)
        folder = tmp_path / "bookmarks"
        folder.mkdir()
        (folder / "a.txt").write_bytes(b"# caf\xe9 reading\nhttps://a.com\nhttps://b.com\n")

        urls = [b.url for b in configured(folder).get_bookmarks()]

        assert urls == ["https://a.com", "https://b.com"]
        assert not any(r.levelno >= logging.WARNING for r in caplog.records)

    def test_empty_directory(self, tmp_path):
        """Return nothing for an empty folder."""
        folder = tmp_path / "bookmarks"
        folder.mkdir()

        assert configured(folder).get_bookmarks() == []

    def test_reads_fresh_each_call(self, bookmark_file):
        """Re-read the file on every call."""
        source = configured(bookmark_file)
        source.get_bookmarks()
        bookmark_file.write_text("https://new.com\n", encoding="utf-8")

        assert [b.url for b in source.get_bookmarks()] == ["https://new.com"]
