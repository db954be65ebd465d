"""kindle-send: forward new bookmarks to an e-reader by email."""

__version__ = "1.0.0"
