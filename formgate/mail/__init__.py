from .base import MailTransport, OutboundEmail, deliver_all
from .factory import get_mailer
from .sendgrid_provider import SendGridMailer
from .smtp_provider import SmtpMailer
from .templates import Sender

__all__ = [
    "MailTransport",
    "OutboundEmail",
    "Sender",
    "SendGridMailer",
    "SmtpMailer",
    "deliver_all",
    "get_mailer",
]
