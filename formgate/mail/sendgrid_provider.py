from __future__ import annotations

import logging

from ..config import Settings
from ..errors import ConfigurationError, DownstreamProviderError
from .base import OutboundEmail

log = logging.getLogger(__name__)


def _extract_msg_id(resp) -> str | None:
    try:
        headers = getattr(resp, "headers", {}) or {}
        return headers.get("X-Message-Id") or headers.get("x-message-id")
    except Exception:
        return None


class SendGridMailer:
    name = "sendgrid"

    def __init__(self, settings: Settings) -> None:
        self.api_key = settings.sendgrid_api_key
        self._client = None

    def _sg(self):
        if not self.api_key:
            raise ConfigurationError("Missing SENDGRID_API_KEY")
        if self._client is None:
            from sendgrid import SendGridAPIClient

            self._client = SendGridAPIClient(self.api_key)
        return self._client

    def send(self, message: OutboundEmail) -> str | None:
        from sendgrid.helpers.mail import Content, Email, Mail, To

        client = self._sg()
        msg = Mail(
            from_email=Email(message.from_email, message.from_name or None),
            to_emails=To(message.to),
            subject=message.subject,
            html_content=Content("text/html", message.html),
        )
        if message.reply_to:
            msg.reply_to = Email(message.reply_to)

        try:
            resp = client.send(msg)
        except Exception as e:
            # python-http-client raises HTTPError subclasses carrying the API response body.
            status = getattr(e, "status_code", None)
            if status in (401, 403):
                raise ConfigurationError(f"SendGrid rejected credentials (status={status})") from e
            raise DownstreamProviderError(f"SendGrid send failed: {type(e).__name__} status={status}") from e

        msg_id = _extract_msg_id(resp)
        log.info("[email] sent via sendgrid status=%s sg_msg_id=%s", getattr(resp, "status_code", "?"), msg_id)
        return msg_id
