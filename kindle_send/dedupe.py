"""
Bookmark deduplication using URL fingerprints.
Prevents sending the same bookmark to the device twice.

The store keeps one record per processed URL (fingerprint + timestamp) in a
JSON file that survives daemon restarts:

    {
      "bookmarks": [
        {"url": "https://...", "hash": "9e10...", "timestamp": "2024-05-01T10:00:00Z"}
      ],
      "last_check": "2024-05-01T10:00:00Z"
    }

Retention is capped at MAX_PROCESSED_RECORDS; the oldest records are dropped
first.
"""

from __future__ import annotations

import hashlib
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from kindle_send.bookmarks.types import utcnow
from kindle_send.exceptions import StatePersistenceError
from kindle_send.rwlock import RWLock

MAX_PROCESSED_RECORDS = 1000
STATE_FILE_MODE = 0o644


def fingerprint(url: str) -> str:
    """
    Compute the dedup identity of a URL.

    MD5 hex digest of the UTF-8 URL. Identity key only, not a security
    boundary, and compatible with state files written by earlier releases.

    Example:
        >>> len(fingerprint("https://example.com"))
        32
        >>> fingerprint("https://example.com") == fingerprint("https://example.com")
        True
    """
    return hashlib.md5(url.encode("utf-8"), usedforsecurity=False).hexdigest()


class ProcessedRecord(BaseModel):
    """One processed bookmark. Immutable once written."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str
    fingerprint: str = Field(alias="hash")
    processed_at: datetime = Field(alias="timestamp")

    @field_validator("processed_at")
    @classmethod
    def assume_utc(cls, v: datetime) -> datetime:
        """Naive timestamps are UTC, so records always sort together."""
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)


class ProcessedState(BaseModel):
    """Everything persisted by the store."""

    model_config = ConfigDict(populate_by_name=True)

    records: List[ProcessedRecord] = Field(default_factory=list, alias="bookmarks")
    last_check: Optional[datetime] = None


class DedupeStore:
    """
    Persisted set of processed bookmark fingerprints.

    Example:
        store = DedupeStore(Path("processed_bookmarks.json"))
        store.load()

        new_urls = store.filter_new(urls)
        # ... send new_urls ...
        store.record_processed(new_urls)
        store.trim_to_capacity()
        store.save()
    """

    def __init__(
        self,
        state_path: Path,
        capacity: int = MAX_PROCESSED_RECORDS,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize an empty store; call load() to read the state file.

        Args:
            state_path: JSON state file
            capacity: Maximum number of records kept by trim_to_capacity()
            logger: Logger for load/save diagnostics
        """
        self.state_path = Path(state_path)
        self.capacity = capacity
        self.logger = logger or logging.getLogger(__name__)
        self._lock = RWLock()
        self._state = ProcessedState()

    # === Queries ===

    def filter_new(self, urls: Iterable[str]) -> List[str]:
        """
        Return the urls whose fingerprint has not been recorded.

        Order is preserved and repeats inside urls are kept.
        """
        with self._lock.read():
            seen = {record.fingerprint for record in self._state.records}
        return [url for url in urls if fingerprint(url) not in seen]

    def is_processed(self, url: str) -> bool:
        return not self.filter_new([url])

    @property
    def records(self) -> List[ProcessedRecord]:
        with self._lock.read():
            return list(self._state.records)

    @property
    def last_check(self) -> Optional[datetime]:
        with self._lock.read():
            return self._state.last_check

    def __len__(self) -> int:
        with self._lock.read():
            return len(self._state.records)

    # === Mutations ===

    def record_processed(self, urls: Iterable[str], at: Optional[datetime] = None) -> None:
        """
        Append one record per url and stamp last_check.

        Repeats inside urls each get their own record.
        """
        at = at or utcnow()
        new_records = [
            ProcessedRecord(url=url, fingerprint=fingerprint(url), processed_at=at)
            for url in urls
        ]
        with self._lock.write():
            self._state.records.extend(new_records)
            self._state.last_check = at

    def trim_to_capacity(self) -> int:
        """
        Keep only the most recently processed records.

        Returns:
            Number of records evicted
        """
        with self._lock.write():
            excess = len(self._state.records) - self.capacity
            if excess <= 0:
                return 0
            self._state.records.sort(key=lambda r: r.processed_at, reverse=True)
            del self._state.records[self.capacity:]

        self.logger.info(
            f"Trimmed {excess} oldest processed bookmarks",
            extra={"event": "state_trimmed", "record_count": self.capacity},
        )
        return excess

    # === Persistence ===

    def load(self) -> None:
        """
        Load state from disk, best effort.

        A missing file leaves the store empty; an unreadable or malformed
        file is logged and the store is reset to empty. Never raises.
        """
        if not self.state_path.exists():
            self.logger.debug(
                f"No processed state at {self.state_path}, starting empty",
                extra={"event": "state_missing", "path": str(self.state_path)},
            )
            with self._lock.write():
                self._state = ProcessedState()
            return

        try:
            raw = self.state_path.read_text(encoding="utf-8")
            state = ProcessedState.model_validate_json(raw)
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            self.logger.warning(
                f"Failed to load processed state, starting empty: {e}",
                extra={
                    "event": "state_load_failed",
                    "path": str(self.state_path),
                    "error_type": type(e).__name__,
                },
            )
            state = ProcessedState()

        with self._lock.write():
            self._state = state

        self.logger.info(
            f"Loaded {len(state.records)} processed bookmarks",
            extra={
                "event": "state_loaded",
                "path": str(self.state_path),
                "record_count": len(state.records),
            },
        )

    def save(self) -> None:
        """
        Write state to disk atomically (temp file + rename).

        Raises:
            StatePersistenceError: If the file cannot be written
        """
        with self._lock.read():
            payload = self._state.model_dump_json(by_alias=True, indent=2)

        directory = self.state_path.parent
        tmp_name = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.state_path.name}.", suffix=".tmp", dir=directory
            )
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_name, STATE_FILE_MODE)
            os.replace(tmp_name, self.state_path)
        except OSError as e:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            raise StatePersistenceError(
                f"Failed to save processed state to {self.state_path}: {e}"
            ) from e

        self.logger.debug(
            "Saved processed state",
            extra={"event": "state_saved", "path": str(self.state_path)},
        )
