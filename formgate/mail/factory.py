from __future__ import annotations

from ..config import Settings
from .base import MailTransport
from .sendgrid_provider import SendGridMailer
from .smtp_provider import SmtpMailer


def get_mailer(settings: Settings) -> MailTransport:
    if settings.mail_provider == "sendgrid":
        return SendGridMailer(settings)
    return SmtpMailer(settings)
