"""
Mail documents to the e-reader's email address over SMTP.

Port 465 uses implicit TLS (SMTP_SSL); any other port upgrades the
connection with STARTTLS before logging in.
"""

from __future__ import annotations

import logging
import mimetypes
import smtplib
import ssl
from email.message import EmailMessage
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Union

from kindle_send.exceptions import MailError

IMPLICIT_TLS_PORT = 465


class MailSender(Protocol):
    """Sends local files to the configured device address."""

    def send(self, files: Sequence[Union[str, Path]], timeout: int) -> None:
        """
        Attach every existing file and send one message.

        Raises:
            MailError: If no file could be attached or sending failed
        """
        ...


class SMTPMailSender:
    """
    MailSender backed by smtplib.

    Example:
        mailer = SMTPMailSender(config)
        mailer.send([Path("article.html")], timeout=120)
    """

    def __init__(self, config, logger: Optional[logging.Logger] = None):
        self.sender = config.sender
        self.receiver = config.receiver
        self.password = config.password.get_secret_value()
        self.server = config.server
        self.port = config.port
        self.logger = logger or logging.getLogger(__name__)

    def build_message(self, files: Sequence[Union[str, Path]]) -> tuple[EmailMessage, List[Path]]:
        """Return the message and the files actually attached."""
        msg = EmailMessage()
        msg["From"] = self.sender
        msg["To"] = self.receiver
        msg["Subject"] = "kindle-send"
        msg.set_content("")

        attached: List[Path] = []
        for file in files:
            path = Path(file)
            if not path.is_file():
                self.logger.error(
                    f"Couldn't find file {path}, skipping",
                    extra={"event": "attachment_missing", "path": str(path)},
                )
                continue

            ctype, encoding = mimetypes.guess_type(path.name)
            if ctype is None or encoding is not None:
                ctype = "application/octet-stream"
            maintype, subtype = ctype.split("/", 1)
            msg.add_attachment(
                path.read_bytes(),
                maintype=maintype,
                subtype=subtype,
                filename=path.name,
            )
            attached.append(path)
        return msg, attached

    def send(self, files: Sequence[Union[str, Path]], timeout: int) -> None:
        msg, attached = self.build_message(files)
        if not attached:
            self.logger.info("No files to send", extra={"event": "mail_skipped"})
            raise MailError("no valid files to send")

        self.logger.info(
            f"Sending {len(attached)} file(s) to {self.receiver}: "
            + ", ".join(p.name for p in attached),
            extra={
                "event": "mail_sending",
                "receiver": self.receiver,
                "attachment_count": len(attached),
                "timeout_seconds": timeout,
            },
        )

        context = ssl.create_default_context()
        try:
            if self.port == IMPLICIT_TLS_PORT:
                smtp = smtplib.SMTP_SSL(self.server, self.port, timeout=timeout, context=context)
            else:
                smtp = smtplib.SMTP(self.server, self.port, timeout=timeout)
            with smtp:
                if self.port != IMPLICIT_TLS_PORT:
                    smtp.starttls(context=context)
                if self.password:
                    smtp.login(self.sender, self.password)
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as e:
            self.logger.error(
                f"Failed to send mail: {e}",
                extra={"event": "mail_failed", "error": str(e), "error_type": type(e).__name__},
            )
            raise MailError(f"failed to send mail: {e}") from e

        self.logger.info(
            f"Mailed {len(attached)} file(s) to {self.receiver}",
            extra={"event": "mail_sent", "receiver": self.receiver, "attachment_count": len(attached)},
        )
