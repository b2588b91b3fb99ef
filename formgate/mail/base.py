from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol


@dataclass(frozen=True)
class OutboundEmail:
    to: str
    subject: str
    html: str
    from_email: str
    from_name: str = ""
    reply_to: str | None = None


class MailTransport(Protocol):
    name: str

    def send(self, message: OutboundEmail) -> str | None:
        """Deliver one message. Returns a provider message id when one is available."""
        ...


def deliver_all(transport: MailTransport, messages: list[OutboundEmail]) -> list[str | None]:
    """Send messages in order; the first failure stops the batch."""
    return [transport.send(m) for m in messages]
