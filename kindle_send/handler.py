"""
Document queue: turns classified requests into files ready to mail.

Local documents pass through unchanged. Webpages and link files are handed
to a DocumentConverter, which writes one document per request. A request
that fails to convert is logged and dropped; the rest of the batch carries on.

SnapshotConverter is the bundled converter: it downloads each page, strips
scripts, styles and navigation chrome, and stitches the page bodies into a
single self-contained HTML document that e-readers accept as mail
attachment.
"""

from __future__ import annotations

import html
import logging
import re
from pathlib import Path
from typing import List, Optional, Protocol, Sequence

import requests
from bs4 import BeautifulSoup

from kindle_send.classifier import Request, RequestType
from kindle_send.exceptions import ConversionError

REQUEST_TIMEOUT = 30
USER_AGENT = "Mozilla/5.0 (compatible; kindle-send/1.0)"
STRIP_TAGS = ["script", "style", "noscript", "iframe", "nav", "footer", "form"]

logger = logging.getLogger(__name__)


class DocumentConverter(Protocol):
    """Converts one or more webpages into a single local document."""

    def make(self, urls: Sequence[str], title: str = "") -> Path:
        """
        Build a document from urls.

        Raises:
            ConversionError: If no page could be converted
        """
        ...


def extract_links(file_path: str) -> List[str]:
    """Return the non-empty lines of a link file (empty list if unreadable)."""
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            return [line.strip() for line in f if line.strip()]
    except (OSError, UnicodeDecodeError):
        logger.error(f"Error opening link file {file_path}", extra={"path": file_path})
        return []


def slugify(text: str, max_length: int = 80) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", text.lower()).strip("-")
    return slug[:max_length].rstrip("-") or "document"


class SnapshotConverter:
    """
    Save webpages as a single readable HTML document.

    Example:
        converter = SnapshotConverter(store_path=Path("~/kindle"))
        path = converter.make(["http://paulgraham.com/alien.html"])
    """

    def __init__(
        self,
        store_path: Optional[Path] = None,
        session: Optional[requests.Session] = None,
        timeout: int = REQUEST_TIMEOUT,
        logger: Optional[logging.Logger] = None,
    ):
        self.store_path = Path(store_path).expanduser() if store_path else Path.cwd()
        self.session = session or requests.Session()
        self.session.headers.setdefault("User-Agent", USER_AGENT)
        self.timeout = timeout
        self.logger = logger or logging.getLogger(__name__)

    def fetch(self, url: str) -> tuple[str, str]:
        """
        Download url and return (title, cleaned body HTML).

        Raises:
            requests.RequestException: On network or HTTP errors
        """
        response = self.session.get(url, timeout=self.timeout)
        response.raise_for_status()

        soup = BeautifulSoup(response.text, "html.parser")
        title = url
        if soup.title and soup.title.string:
            title = soup.title.get_text().strip() or url

        for element in soup(STRIP_TAGS):
            element.decompose()

        body = soup.find("article") or soup.body or soup
        return title, body.decode_contents()

    def make(self, urls: Sequence[str], title: str = "") -> Path:
        sections = []
        for url in urls:
            try:
                page_title, body = self.fetch(url)
            except requests.RequestException as e:
                self.logger.warning(
                    f"Skipping {url}: {e}",
                    extra={"event": "page_fetch_failed", "url": url, "error": str(e)},
                )
                continue
            sections.append((url, page_title, body))

        if not sections:
            raise ConversionError(f"No pages could be downloaded from {len(urls)} link(s)")

        if not title:
            title = sections[0][1] if len(sections) == 1 else f"{sections[0][1]} and {len(sections) - 1} more"

        document = self._render(title, sections)
        self.store_path.mkdir(parents=True, exist_ok=True)
        path = self.store_path / f"{slugify(title)}.html"
        try:
            path.write_text(document, encoding="utf-8")
        except OSError as e:
            raise ConversionError(f"Cannot write {path}: {e}") from e

        self.logger.info(
            f"Saved {len(sections)} page(s) to {path.name}",
            extra={"event": "document_created", "path": str(path)},
        )
        return path

    @staticmethod
    def _render(title: str, sections: List[tuple[str, str, str]]) -> str:
        parts = [
            "<!DOCTYPE html>",
            '<html><head><meta charset="utf-8">',
            f"<title>{html.escape(title)}</title></head><body>",
        ]
        for url, page_title, body in sections:
            parts.append("<section>")
            parts.append(f"<h1>{html.escape(page_title)}</h1>")
            parts.append(f'<p><a href="{html.escape(url, quote=True)}">{html.escape(url)}</a></p>')
            parts.append(body)
            parts.append("</section>")
        parts.append("</body></html>")
        return "\n".join(parts)


class DocumentQueue:
    """
    Resolve classified requests into local files.

    Example:
        queue = DocumentQueue(SnapshotConverter(store_path))
        paths = queue.queue(classify(urls))
    """

    def __init__(self, converter: DocumentConverter, logger: Optional[logging.Logger] = None):
        self.converter = converter
        self.logger = logger or logging.getLogger(__name__)

    def queue(self, batch: Sequence[Request]) -> List[Path]:
        """Return one produced file per request that succeeded, in order."""
        produced: List[Path] = []
        for req in batch:
            if req.type is RequestType.FILE:
                produced.append(Path(req.path))
                continue

            links = [req.path] if req.type is RequestType.URL else extract_links(req.path)
            try:
                produced.append(self.converter.make(links))
            except ConversionError as e:
                self.logger.warning(
                    f"SKIPPING {req.path}: {e}",
                    extra={"event": "conversion_failed", "url": req.path, "error": str(e)},
                )
        return produced
