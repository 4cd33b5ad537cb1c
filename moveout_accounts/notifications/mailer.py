"""Mail transports used by the notifier."""

from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr, parseaddr
from typing import Protocol

from ..domain.errors import NotificationError
from .templates import EmailContent

logger = logging.getLogger(__name__)


class Mailer(Protocol):
    def send(self, to_addr: str, content: EmailContent) -> None: ...


class SmtpMailer:
    """Deliver messages over SMTP with optional STARTTLS and login."""

    def __init__(
        self,
        *,
        host: str,
        port: int,
        sender: str,
        username: str = "",
        password: str = "",
        use_tls: bool = True,
        timeout: float = 30,
    ) -> None:
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._use_tls = use_tls
        self._timeout = timeout
        name, address = parseaddr(sender)
        self._sender_addr = address
        self._sender = formataddr((name or "MoveOut", address))

    def build_message(self, to_addr: str, content: EmailContent) -> EmailMessage:
        msg = EmailMessage()
        msg["Subject"] = content.subject
        msg["From"] = self._sender
        msg["To"] = to_addr
        msg.set_content(content.text)
        msg.add_alternative(content.html, subtype="html")
        return msg

    def send(self, to_addr: str, content: EmailContent) -> None:
        msg = self.build_message(to_addr, content)
        try:
            with smtplib.SMTP(self._host, self._port, timeout=self._timeout) as smtp:
                if self._use_tls:
                    smtp.starttls()
                if self._username:
                    smtp.login(self._username, self._password)
                smtp.send_message(msg, from_addr=self._sender_addr, to_addrs=[to_addr])
        except (smtplib.SMTPException, OSError) as exc:
            raise NotificationError(f"smtp delivery to {to_addr} failed: {exc}") from exc
        logger.debug("sent %r to %s", content.subject, to_addr)


class LoggingMailer:
    """Development transport that only logs outgoing messages."""

    def send(self, to_addr: str, content: EmailContent) -> None:
        logger.info("mail transport not configured, would send %r to %s", content.subject, to_addr)
