"""
kindle-send command line.

Usage:
    kindle-send send https://example.com/post reading-list.txt book.epub
    kindle-send download https://example.com/post
    kindle-send daemon start
    kindle-send daemon stop
    kindle-send daemon status
    kindle-send daemon restart

Every command reads KindleConfig.json from the config directory unless
--config points elsewhere. Exit code is 0 on success and 1 on failure.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional, Sequence

from kindle_send import __version__
from kindle_send.classifier import classify
from kindle_send.config import DEFAULT_MAIL_TIMEOUT, Config, load_config
from kindle_send.daemon import DEFAULT_STOP_TIMEOUT, DaemonController
from kindle_send.exceptions import KindleSendError, NotRunningError
from kindle_send.handler import DocumentQueue, SnapshotConverter
from kindle_send.logging_config import close_logging, setup_logging_from_config
from kindle_send.mailer import SMTPMailSender


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="kindle-send",
        description="Send webpages and documents to your e-reader.",
    )
    parser.add_argument("-c", "--config", type=Path, help="Path to KindleConfig.json")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    commands = parser.add_subparsers(dest="command", required=True)

    send = commands.add_parser("send", help="Convert and mail webpages, link files or documents")
    send.add_argument("items", nargs="+", help="URLs, link files or document paths")
    send.add_argument(
        "-m",
        "--mail-timeout",
        type=int,
        default=DEFAULT_MAIL_TIMEOUT,
        help=f"Seconds allowed for the mail send (default: {DEFAULT_MAIL_TIMEOUT})",
    )

    download = commands.add_parser("download", help="Convert webpages without mailing them")
    download.add_argument("items", nargs="+", help="URLs or link files")

    daemon = commands.add_parser("daemon", help="Manage the bookmark monitoring daemon")
    daemon.add_argument("action", choices=["start", "stop", "status", "restart"])
    daemon.add_argument(
        "--timeout",
        type=float,
        default=DEFAULT_STOP_TIMEOUT,
        help="Seconds to wait for a running daemon to exit on stop/restart",
    )

    return parser.parse_args(argv)


def convert(config: Config, items: Sequence[str], logger: logging.Logger) -> List[Path]:
    requests = classify(items)
    if not requests:
        logger.info("No valid arguments to process", extra={"event": "nothing_to_do"})
        return []
    queue = DocumentQueue(SnapshotConverter(config.store_path, logger=logger), logger=logger)
    return queue.queue(requests)


def run_send(config: Config, args: argparse.Namespace, logger: logging.Logger) -> int:
    files = convert(config, args.items, logger)
    if not files:
        print("Nothing to send.", file=sys.stderr)
        return 1
    SMTPMailSender(config, logger=logger).send(files, args.mail_timeout)
    return 0


def run_download(config: Config, args: argparse.Namespace, logger: logging.Logger) -> int:
    files = convert(config, args.items, logger)
    for path in files:
        print(path)
    return 0 if files else 1


def print_status(controller: DaemonController) -> bool:
    """Print the status block; return whether a daemon is running."""
    status = controller.status()
    if status.running:
        print(f"Daemon is running (PID {status.pid})")
    else:
        print("Daemon is not running")
    print(f"  Bookmark path: {status.bookmark_path or '(not configured)'}")
    print(f"  Check interval: {status.check_interval_minutes} minutes")
    print(f"  PID file: {status.pid_file}")
    print(f"  Log file: {status.log_path}")
    return status.running


def run_daemon(config: Config, args: argparse.Namespace) -> int:
    action = args.action
    if action in ("start", "restart"):
        logger = setup_logging_from_config(config)
        controller = DaemonController(config, logger=logger, close_logging_on_stop=True)
        try:
            if action == "restart":
                controller.restart(timeout=args.timeout)
            else:
                controller.start()
        except KindleSendError:
            close_logging(logger)
            raise
        return 0

    logger = setup_logging_from_config(config, to_file=False)
    controller = DaemonController(config, logger=logger)
    try:
        if action == "status":
            return 0 if print_status(controller) else 1
        try:
            controller.stop(timeout=args.timeout)
        except NotRunningError:
            print("Daemon is not running", file=sys.stderr)
            return 1
        print("Daemon stopped")
        return 0
    finally:
        close_logging(logger)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the kindle-send console script."""
    args = parse_args(argv)

    try:
        config = load_config(args.config)
    except KindleSendError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    try:
        if args.command == "daemon":
            return run_daemon(config, args)

        logger = setup_logging_from_config(config, to_file=False)
        try:
            if args.command == "send":
                return run_send(config, args, logger)
            return run_download(config, args, logger)
        finally:
            close_logging(logger)
    except KindleSendError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
