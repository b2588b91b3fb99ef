from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from email.utils import formataddr, make_msgid

from ..config import Settings
from ..errors import ConfigurationError, DownstreamProviderError
from .base import OutboundEmail

log = logging.getLogger(__name__)


class SmtpMailer:
    """Plain SMTP transport (STARTTLS on 587, implicit TLS when EMAIL_SECURE=true)."""

    name = "smtp"

    def __init__(self, settings: Settings, *, timeout_s: float | None = None) -> None:
        self.host = settings.smtp_host
        self.port = settings.smtp_port
        self.secure = settings.smtp_secure
        self.user = settings.smtp_user
        self.password = settings.smtp_password
        self.timeout_s = float(timeout_s if timeout_s is not None else settings.side_effect_timeout_s)

    def _connect(self) -> smtplib.SMTP:
        if self.secure:
            return smtplib.SMTP_SSL(self.host, self.port, timeout=self.timeout_s)
        conn = smtplib.SMTP(self.host, self.port, timeout=self.timeout_s)
        conn.ehlo()
        if conn.has_extn("starttls"):
            conn.starttls()
            conn.ehlo()
        return conn

    def _build(self, message: OutboundEmail) -> EmailMessage:
        msg = EmailMessage()
        msg["From"] = formataddr((message.from_name, message.from_email)) if message.from_name else message.from_email
        msg["To"] = message.to
        msg["Subject"] = message.subject
        msg["Message-ID"] = make_msgid()
        if message.reply_to:
            msg["Reply-To"] = message.reply_to
        msg.set_content("This message requires an HTML-capable mail client.")
        msg.add_alternative(message.html, subtype="html")
        return msg

    def send(self, message: OutboundEmail) -> str | None:
        if not self.user or not self.password:
            raise ConfigurationError("EMAIL_USER / EMAIL_PASS are not set")

        msg = self._build(message)
        try:
            with self._connect() as conn:
                conn.login(self.user, self.password)
                conn.send_message(msg)
        except smtplib.SMTPAuthenticationError as e:
            raise ConfigurationError(f"SMTP login rejected for {self.user}: {e.smtp_code}") from e
        except (smtplib.SMTPException, OSError) as e:
            raise DownstreamProviderError(f"SMTP send failed: {type(e).__name__}: {e}") from e

        log.info("[email] sent via smtp host=%s msg_id=%s", self.host, msg["Message-ID"])
        return str(msg["Message-ID"])
