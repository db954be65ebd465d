"""
Classify command-line arguments and bookmarks into delivery requests.

An argument is one of:
- a webpage URL (http:// or https://)
- a text file whose lines are all links (a reading list)
- a local document the device can open (.epub, .pdf, ...)
Anything else is dropped.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Iterable, List

URL_PREFIXES = ("http://", "https://")
BOOK_EXTENSIONS = {".mobi", ".pdf", ".epub", ".azw3", ".txt"}

# Only the head of a candidate link file is inspected.
URL_FILE_PROBE_BYTES = 1024


class RequestType(str, Enum):
    URL = "url"
    URL_FILE = "url_file"
    FILE = "file"


@dataclass(frozen=True)
class Request:
    """A unit of work for the document queue."""

    path: str
    type: RequestType


def is_url(arg: str) -> bool:
    return arg.startswith(URL_PREFIXES)


def is_url_file(arg: str) -> bool:
    """True if arg is a readable file whose non-blank lines all start with "http"."""
    try:
        with open(arg, "rb") as f:
            head = f.read(URL_FILE_PROBE_BYTES)
    except OSError:
        return False

    content = head.decode("utf-8", errors="ignore")
    for line in content.split("\n"):
        line = line.strip()
        if not line:
            continue
        if not line.startswith("http"):
            return False
    return True


def is_book(arg: str) -> bool:
    path = Path(arg)
    return path.is_file() and path.suffix in BOOK_EXTENSIONS


def classify(args: Iterable[str]) -> List[Request]:
    """
    Turn arguments into typed requests, preserving order.

    Example:
        >>> classify(["https://example.com/post"])
        [Request(path='https://example.com/post', type=<RequestType.URL: 'url'>)]
    """
    requests: List[Request] = []
    for arg in args:
        if is_url(arg):
            requests.append(Request(arg, RequestType.URL))
        elif is_url_file(arg):
            requests.append(Request(arg, RequestType.URL_FILE))
        elif is_book(arg):
            requests.append(Request(arg, RequestType.FILE))
    return requests
