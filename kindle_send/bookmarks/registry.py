"""
Registry of bookmark sources.

Holds named sources, reports which of them are enabled and routes settings
to them. Registration and configuration take the write side of a
reader/writer lock; lookups share the read side.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from kindle_send.bookmarks.types import BookmarkSource, SourceRegistration
from kindle_send.exceptions import DuplicateSourceError, SourceNotFoundError
from kindle_send.rwlock import RWLock


class SourceRegistry:
    """
    Named, independently enabled bookmark sources.

    Example:
        registry = SourceRegistry()
        registry.register(FileBookmarkSource())
        registry.configure("file", {"path": "~/bookmarks.txt"})

        for source in registry.list_enabled():
            bookmarks = source.get_bookmarks()
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)
        self._lock = RWLock()
        # dicts keep insertion order, so list_enabled() is registration order
        self._sources: Dict[str, BookmarkSource] = {}
        self._entries: Dict[str, SourceRegistration] = {}

    def register(self, source: BookmarkSource) -> None:
        """
        Add a source.

        Raises:
            DuplicateSourceError: If a source with the same name exists
        """
        name = source.name
        with self._lock.write():
            if name in self._sources:
                raise DuplicateSourceError(name)
            self._sources[name] = source
            self._entries[name] = SourceRegistration(name=name)

        self.logger.debug(
            f"Registered bookmark source: {name}",
            extra={"event": "source_registered", "source": name},
        )

    def get(self, name: str) -> Optional[BookmarkSource]:
        """Return the source registered under name, or None."""
        with self._lock.read():
            return self._sources.get(name)

    def names(self) -> List[str]:
        """Return every registered source name."""
        with self._lock.read():
            return list(self._sources)

    def list_enabled(self) -> List[BookmarkSource]:
        """Return the sources whose own is_enabled() reports True."""
        with self._lock.read():
            return [s for s in self._sources.values() if s.is_enabled()]

    def entry(self, name: str) -> Optional[SourceRegistration]:
        """Return the registration entry for name, or None."""
        with self._lock.read():
            return self._entries.get(name)

    def configure(self, name: str, settings: Mapping[str, Any]) -> None:
        """
        Apply settings to a registered source.

        Raises:
            SourceNotFoundError: If name is not registered
            InvalidSourceConfigError: If the source rejects the settings
        """
        with self._lock.write():
            source = self._sources.get(name)
            if source is None:
                raise SourceNotFoundError(name)

            source.configure(settings)
            self._entries[name] = SourceRegistration(
                name=name,
                enabled=source.is_enabled(),
                settings=dict(settings),
            )

        self.logger.info(
            f"Configured bookmark source: {name}",
            extra={"event": "source_configured", "source": name},
        )

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._sources)

    def __contains__(self, name: object) -> bool:
        with self._lock.read():
            return name in self._sources
