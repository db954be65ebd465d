"""
Bookmark sources.

- types: Bookmark, SourceRegistration and the BookmarkSource interface
- registry: SourceRegistry (named, independently enabled sources)
- providers.file: FileBookmarkSource (file or folder of URL lists)
"""

from kindle_send.bookmarks.registry import SourceRegistry
from kindle_send.bookmarks.types import Bookmark, BookmarkSource, SourceRegistration

__all__ = ["Bookmark", "BookmarkSource", "SourceRegistration", "SourceRegistry"]
