"""Concrete bookmark sources."""

from kindle_send.bookmarks.providers.file import FileBookmarkSource

__all__ = ["FileBookmarkSource"]
