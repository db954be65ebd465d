#!/usr/bin/env python3
"""
kindle-send daemon entry point.

Monitors the configured bookmark file or folder and mails new bookmarks to
the e-reader every check_interval_minutes.

Usage:
    export KINDLE_SEND_DAEMON_ENABLED=true
    export KINDLE_SEND_BOOKMARK_PATH=~/bookmarks.txt  # or set bookmark_path in KindleConfig.json
    python run_daemon.py

For Linux systemd:
    ExecStart=/usr/bin/python3 /opt/kindle-send/run_daemon.py
    ExecStop=/usr/local/bin/kindle-send daemon stop
"""

from __future__ import annotations

import sys
from pathlib import Path

# Add the repository root to Python path if running directly
if __name__ == "__main__":
    repo_root = Path(__file__).parent.resolve()
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))

from kindle_send.cli import main

if __name__ == "__main__":
    sys.exit(main(sys.argv[1:] + ["daemon", "start"]))
