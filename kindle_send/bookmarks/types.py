"""
Bookmark data types and the source capability interface.

A source is anything with a name, an enabled flag, a way to accept settings
and a way to produce bookmarks. Sources are dispatched by name through the
registry; no common base class is required.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Protocol, runtime_checkable


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Bookmark:
    """
    A candidate URL read from a source, not yet deduplicated.

    Attributes:
        url: The bookmarked URL
        source: Name of the source that produced it
        title: Page title when the source knows it ("" otherwise)
        observed_at: When the source read it
    """

    url: str
    source: str
    title: str = ""
    observed_at: datetime = field(default_factory=utcnow)


@dataclass
class SourceRegistration:
    """Registry entry: the settings a source last accepted."""

    name: str
    enabled: bool = False
    settings: Dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class BookmarkSource(Protocol):
    """Capability interface every bookmark source implements."""

    @property
    def name(self) -> str:
        """Unique registry name of this source."""
        ...

    def is_enabled(self) -> bool:
        """Return True once the source is configured and usable."""
        ...

    def configure(self, settings: Mapping[str, Any]) -> None:
        """
        Apply settings.

        Raises:
            InvalidSourceConfigError: If the settings are rejected
        """
        ...

    def get_bookmarks(self) -> List[Bookmark]:
        """
        Read the current bookmarks.

        Raises:
            SourceUnavailableError: If the source cannot be read this cycle
        """
        ...
