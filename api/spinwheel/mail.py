"""Outbound mail transport.

Transports are built once at startup and reused; each send opens its own
SMTP connection bounded by ``timeout``.
"""

from __future__ import annotations

import logging
import mimetypes
import smtplib
import ssl
from dataclasses import dataclass, field
from email.message import EmailMessage
from email.utils import formataddr
from pathlib import Path
from typing import Optional, Protocol

from .exceptions import DispatchError

logger = logging.getLogger(__name__)

# (filename on disk, content id referenced from the HTML templates)
BRAND_IMAGES = (
    ("logo.png", "logo"),
    ("footer.png", "footer"),
    ("facebook.png", "facebook"),
    ("twitter.png", "twitter"),
    ("instagram.png", "instagram"),
    ("linked.png", "linkedin"),
)


@dataclass(frozen=True)
class InlineImage:
    filename: str
    path: Path
    cid: str


@dataclass
class OutboundEmail:
    sender: str
    to: str
    subject: str
    text: str
    html: Optional[str] = None
    attachments: list[InlineImage] = field(default_factory=list)


class MailTransport(Protocol):
    def send(self, message: OutboundEmail) -> None:
        """Deliver ``message`` or raise :class:`DispatchError`."""


def brand_images(assets_dir: str | Path) -> list[InlineImage]:
    """Inline images found under ``assets_dir``; missing files are skipped."""
    base = Path(assets_dir)
    images = []
    for filename, cid in BRAND_IMAGES:
        path = base / filename
        if path.is_file():
            images.append(InlineImage(filename=filename, path=path, cid=cid))
        else:
            logger.debug("Mail asset %s not found, sending without it", path)
    return images


def sender_address(display_name: str, address: str) -> str:
    return formataddr((display_name, address))


def build_message(message: OutboundEmail) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = message.sender
    msg["To"] = message.to
    msg["Subject"] = message.subject
    msg.set_content(message.text)
    if message.html is None:
        return msg

    msg.add_alternative(message.html, subtype="html")
    html_part = msg.get_payload()[-1]
    for image in message.attachments:
        ctype, _ = mimetypes.guess_type(image.filename)
        maintype, subtype = (ctype or "application/octet-stream").split("/", 1)
        html_part.add_related(
            image.path.read_bytes(),
            maintype=maintype,
            subtype=subtype,
            cid=f"<{image.cid}>",
            filename=image.filename,
        )
    return msg


class SmtpMailTransport:
    """SMTP with login; implicit TLS on port 465, STARTTLS otherwise."""

    def __init__(
        self,
        username: str,
        password: str,
        host: str = "smtp.gmail.com",
        port: int = 465,
        timeout: float = 15,
    ):
        self.username = username
        self.password = password
        self.host = host
        self.port = port
        self.timeout = timeout

    def __repr__(self) -> str:
        return f"<SmtpMailTransport {self.username}@{self.host}:{self.port}>"

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self.port == 465:
            return smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout, context=context)
        server = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
        try:
            server.starttls(context=context)
        except (smtplib.SMTPException, OSError):
            server.close()
            raise
        return server

    def send(self, message: OutboundEmail) -> None:
        try:
            msg = build_message(message)
            with self._connect() as server:
                server.login(self.username, self.password)
                server.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise DispatchError(f"Sending to {message.to} failed: {exc}") from exc
