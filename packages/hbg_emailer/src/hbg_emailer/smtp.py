import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr, formatdate, make_msgid
from typing import Any, Callable, Protocol

import aiosmtplib
from hbg_core.config import hbg_settings

from .models import Receiver, Sender

logger = logging.getLogger(__name__)


class Mailer(Protocol):
    """An open mail session: entered once per batch, then `send` per email."""

    async def __aenter__(self) -> "Mailer": ...

    async def __aexit__(self, *exc_info: Any) -> None: ...

    async def send(self, message: MIMEMultipart) -> None: ...


MailerFactory = Callable[[Sender], Mailer]


def build_message(
    sender: Sender, receiver: Receiver, subject: str, html: str
) -> MIMEMultipart:
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = formataddr((sender.name, sender.address))
    msg["To"] = formataddr((receiver.name, receiver.address))
    msg["Date"] = formatdate(localtime=True)
    domain = sender.address.rpartition("@")[2] or "localhost"
    msg["Message-ID"] = make_msgid(domain=domain)
    msg.attach(MIMEText(html, "html", "utf-8"))
    return msg


class SmtpMailer:
    """
    One aiosmtplib session for a sender.

    Port 465 uses implicit TLS, 587 upgrades with STARTTLS. The login falls
    back to the sender address when no explicit login is stored.
    """

    def __init__(
        self,
        hostname: str,
        username: str,
        password: str,
        *,
        port: int | None = None,
        timeout: float | None = None,
    ):
        self.hostname = hostname
        self.username = username
        self.password = password
        self.port = port or hbg_settings.SMTP_PORT
        self.timeout = timeout or hbg_settings.SMTP_TIMEOUT
        self._smtp: aiosmtplib.SMTP | None = None

    @classmethod
    def for_sender(
        cls,
        sender: Sender,
        *,
        port: int | None = None,
        timeout: float | None = None,
    ) -> "SmtpMailer":
        return cls(
            sender.server_address,
            sender.login or sender.address,
            sender.passcode,
            port=port,
            timeout=timeout,
        )

    async def __aenter__(self) -> "SmtpMailer":
        smtp = aiosmtplib.SMTP(
            hostname=self.hostname,
            port=self.port,
            timeout=self.timeout,
            use_tls=self.port == 465,
            start_tls=self.port == 587,
        )
        await smtp.connect()
        try:
            if self.password:
                await smtp.login(self.username, self.password)
        except aiosmtplib.SMTPException:
            smtp.close()
            raise
        self._smtp = smtp
        logger.debug("SMTP session opened on %s:%s", self.hostname, self.port)
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        smtp, self._smtp = self._smtp, None
        if smtp is None:
            return
        try:
            await smtp.quit()
        except aiosmtplib.SMTPException:
            logger.warning("SMTP session on %s did not close cleanly", self.hostname)
            smtp.close()

    async def send(self, message: MIMEMultipart) -> None:
        if self._smtp is None:
            msg = "SMTP session is not open"
            raise RuntimeError(msg)
        await self._smtp.send_message(message)
