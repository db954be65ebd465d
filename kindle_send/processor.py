"""
Bookmark processing cycle.
Orchestrates source collection, deduplication, conversion, delivery and
state commit.

One cycle runs four steps, each with its own failure boundary:

1. Collect:  read every enabled source; a failing source contributes nothing
2. Filter:   drop URLs already recorded in the dedup store (empty: no-op)
3. Convert:  classify and convert the new URLs (nothing produced: soft failure)
4. Deliver:  mail the documents, then record the bookmark URLs as processed,
             trim the store and save it

Step 4 commits on best-effort delivery. When the mail send fails the URLs
are still recorded, so a transient SMTP error never causes the same bookmark
to be re-sent on the next cycle. The price is that such a bookmark is
silently dropped (at-most-once delivery).
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence

from kindle_send.bookmarks.registry import SourceRegistry
from kindle_send.bookmarks.types import Bookmark
from kindle_send.classifier import Request, classify
from kindle_send.config import Config
from kindle_send.dedupe import DedupeStore
from kindle_send.exceptions import MailError, SourceError, StatePersistenceError
from kindle_send.handler import DocumentQueue
from kindle_send.logging_config import LOGGER_NAME
from kindle_send.mailer import MailSender


class CycleStatus(str, Enum):
    NO_OP = "no_op"
    SOFT_FAILURE = "soft_failure"
    SUCCESS = "success"


@dataclass
class CycleResult:
    """
    Outcome of one processing cycle.

    Attributes:
        status: NO_OP (nothing new), SOFT_FAILURE (nothing to send) or SUCCESS
        new_urls: URLs that passed the dedup filter
        artifacts: Documents produced for delivery
        processed: URLs recorded in the dedup store
        mail_sent: True if the mail collaborator reported success
        state_saved: True if the dedup store was written to disk
        error: Description of the failure that ended or degraded the cycle
        duration_seconds: Wall-clock time of the cycle
    """

    status: CycleStatus
    new_urls: List[str] = field(default_factory=list)
    artifacts: List[Path] = field(default_factory=list)
    processed: List[str] = field(default_factory=list)
    mail_sent: bool = False
    state_saved: bool = False
    error: Optional[str] = None
    duration_seconds: float = 0.0


class BookmarkProcessor:
    """
    Runs bookmark processing cycles.

    Example:
        processor = BookmarkProcessor(
            config=config,
            registry=registry,
            document_queue=DocumentQueue(SnapshotConverter(config.store_path)),
            mailer=SMTPMailSender(config),
        )
        result = processor.run_cycle()
        if result.status is CycleStatus.SUCCESS:
            print(f"Sent {len(result.processed)} bookmarks")
    """

    def __init__(
        self,
        config: Config,
        registry: SourceRegistry,
        document_queue: DocumentQueue,
        mailer: MailSender,
        store: Optional[DedupeStore] = None,
        classifier: Callable[[Sequence[str]], List[Request]] = classify,
        logger: Optional[logging.Logger] = None,
    ):
        """
        Initialize the processor.

        Args:
            config: Settings for this run (interval drives the mail timeout)
            registry: Bookmark sources to poll
            document_queue: Converts classified requests into files
            mailer: Delivers files to the device
            store: Dedup store; when omitted one is created at
                config.state_path and loaded from disk
            classifier: Maps URLs to typed requests
            logger: Logger for cycle events
        """
        self.config = config
        self.registry = registry
        self.document_queue = document_queue
        self.mailer = mailer
        self.classifier = classifier
        self.logger = logger or logging.getLogger(f"{LOGGER_NAME}.processor")

        if store is None:
            store = DedupeStore(config.state_path, logger=self.logger)
            store.load()
        self.store = store

    @property
    def mail_timeout(self) -> int:
        """Seconds allowed for the mail send: interval-scaled, at least 60."""
        return self.config.mail_timeout_seconds

    def collect(self) -> List[Bookmark]:
        """Read every enabled source; failures are logged and skipped."""
        bookmarks: List[Bookmark] = []
        for source in self.registry.list_enabled():
            try:
                found = source.get_bookmarks()
            except SourceError as e:
                self.logger.warning(
                    f"Bookmark source '{source.name}' unavailable: {e}",
                    extra={"event": "source_failed", "source": source.name, "error": str(e)},
                )
                continue
            except Exception as e:
                self.logger.error(
                    f"Unexpected error reading bookmark source '{source.name}': {e}",
                    exc_info=True,
                    extra={
                        "event": "source_failed",
                        "source": source.name,
                        "error_type": type(e).__name__,
                    },
                )
                continue

            self.logger.debug(
                f"Read {len(found)} bookmarks from '{source.name}'",
                extra={"event": "source_read", "source": source.name, "bookmark_count": len(found)},
            )
            bookmarks.extend(found)
        return bookmarks

    def run_cycle(self) -> CycleResult:
        """
        Run one collect, filter, convert, deliver, commit pass.

        Never raises for failures inside the cycle; the outcome is reported
        through the returned CycleResult.
        """
        start_time = time.time()

        def finish(result: CycleResult) -> CycleResult:
            result.duration_seconds = time.time() - start_time
            return result

        # Step 1: Collect
        bookmarks = self.collect()
        urls = [b.url for b in bookmarks]

        # Step 2: Filter
        new_urls = self.store.filter_new(urls)
        if not new_urls:
            self.logger.info(
                "No new bookmarks found",
                extra={"event": "cycle_no_op", "bookmark_count": len(urls)},
            )
            return finish(CycleResult(status=CycleStatus.NO_OP))

        self.logger.info(
            f"Found {len(new_urls)} new bookmarks to process",
            extra={"event": "bookmarks_found", "new_count": len(new_urls), "bookmark_count": len(urls)},
        )

        # Step 3: Convert + classify
        try:
            requests = self.classifier(new_urls)
            if not requests:
                self.logger.info(
                    "No valid bookmarks to process",
                    extra={"event": "cycle_soft_failure", "new_count": len(new_urls)},
                )
                return finish(
                    CycleResult(
                        status=CycleStatus.SOFT_FAILURE,
                        new_urls=new_urls,
                        error="no valid bookmarks to process",
                    )
                )

            self.logger.info(
                f"Classified {len(requests)} bookmarks for processing",
                extra={"event": "bookmarks_classified", "request_count": len(requests)},
            )
            artifacts = self.document_queue.queue(requests)
        except Exception as e:
            self.logger.error(
                f"Conversion step failed: {e}",
                exc_info=True,
                extra={"event": "cycle_soft_failure", "error_type": type(e).__name__},
            )
            return finish(
                CycleResult(status=CycleStatus.SOFT_FAILURE, new_urls=new_urls, error=str(e))
            )

        if not artifacts:
            self.logger.warning(
                "No bookmarks were successfully downloaded",
                extra={"event": "cycle_soft_failure", "request_count": len(requests)},
            )
            return finish(
                CycleResult(
                    status=CycleStatus.SOFT_FAILURE,
                    new_urls=new_urls,
                    error="no bookmarks were successfully downloaded",
                )
            )

        self.logger.info(
            f"Successfully downloaded {len(artifacts)} bookmarks",
            extra={"event": "bookmarks_converted", "artifact_count": len(artifacts)},
        )

        # Step 4: Deliver + commit
        result = CycleResult(status=CycleStatus.SUCCESS, new_urls=new_urls, artifacts=artifacts)
        timeout = self.mail_timeout
        self.logger.info(
            f"Sending {len(artifacts)} bookmarks via email with timeout {timeout} seconds",
            extra={"event": "mail_start", "artifact_count": len(artifacts), "timeout_seconds": timeout},
        )
        try:
            self.mailer.send(artifacts, timeout)
            result.mail_sent = True
        except MailError as e:
            result.error = str(e)
            self.logger.error(
                f"Failed to send mail, bookmarks are still marked processed: {e}",
                extra={"event": "mail_failed", "error": str(e)},
            )
        except Exception as e:
            result.error = str(e)
            self.logger.error(
                f"Unexpected error sending mail, bookmarks are still marked processed: {e}",
                exc_info=True,
                extra={"event": "mail_failed", "error_type": type(e).__name__},
            )

        self.store.record_processed(new_urls)
        self.store.trim_to_capacity()
        result.processed = list(new_urls)

        try:
            self.store.save()
            result.state_saved = True
        except StatePersistenceError as e:
            self.logger.warning(
                f"Failed to save processed state: {e}",
                extra={"event": "state_save_failed", "error": str(e)},
            )

        return finish(result)
