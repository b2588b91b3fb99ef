"""HTML notification bodies for each form.

Every user-supplied value goes through `escape_html` here, even though it has
already been validated upstream.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from ..sanitize import escape_html
from .base import OutboundEmail


@dataclass(frozen=True)
class Sender:
    email: str
    brand: str
    admin_email: str

    def named(self, suffix: str) -> str:
        return f"{self.brand} {suffix}".strip()


def _subject(text: str) -> str:
    # Header values must stay on one line.
    return " ".join(text.split())


def _year() -> int:
    return datetime.now(timezone.utc).year


def _rows(pairs: list[tuple[str, str | None]]) -> str:
    out = []
    for label, value in pairs:
        if not value:
            continue
        out.append(
            '<tr><td style="padding:8px;font-weight:bold;color:#374151;">'
            f"{escape_html(label)}</td>"
            f'<td style="padding:8px;color:#111827;">{escape_html(value)}</td></tr>'
        )
    return '<table style="width:100%;border-collapse:collapse;margin-top:15px;">' + "".join(out) + "</table>"


def _layout(title: str, body: str, footer: str) -> str:
    return f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><meta name="viewport" content="width=device-width, initial-scale=1.0"></head>
<body style="margin:0;padding:0;background-color:#f4f4f7;font-family:Arial,Helvetica,sans-serif;">
  <div style="max-width:600px;margin:30px auto;background:#ffffff;border-radius:8px;overflow:hidden;">
    <div style="background:linear-gradient(135deg,#667eea 0%,#764ba2 100%);padding:30px;text-align:center;">
      <h1 style="margin:0;color:#ffffff;font-size:24px;">{title}</h1>
    </div>
    <div style="padding:30px;color:#333;">{body}</div>
    <div style="background:#f1f5f9;text-align:center;padding:12px;font-size:12px;color:#666;">{footer}</div>
  </div>
</body>
</html>"""


def _brochure_button(url: str | None) -> str:
    if not url:
        return ""
    return (
        f'<p style="margin-top:20px;"><a href="{escape_html(url)}" '
        'style="display:inline-block;padding:12px 22px;background:#667eea;color:#ffffff;'
        'text-decoration:none;border-radius:6px;font-weight:bold;">Download Brochure</a></p>'
    )


def _copyright(sender: Sender) -> str:
    return f"&copy; {_year()} {escape_html(sender.brand)}. All rights reserved."


def newsletter_messages(sender: Sender, *, email: str) -> list[OutboundEmail]:
    admin = OutboundEmail(
        to=sender.admin_email,
        subject="New Newsletter Subscription",
        html=_layout("New Newsletter Subscription", f"<p>New subscriber: <b>{escape_html(email)}</b></p>", "Automated notification"),
        from_email=sender.email,
        from_name=sender.named("Newsletter"),
        reply_to=email,
    )
    welcome = OutboundEmail(
        to=email,
        subject=f"Welcome to the {sender.brand} Newsletter!",
        html=_layout(
            "Welcome aboard!",
            "<p>You've successfully subscribed to our newsletter.</p>",
            _copyright(sender),
        ),
        from_email=sender.email,
        from_name=sender.named("Team"),
    )
    return [admin, welcome]


def lead_messages(
    sender: Sender,
    *,
    full_name: str,
    email: str,
    phone: str | None,
    course: str,
    brochure_url: str | None,
    source: str = "Course Inquiry",
) -> list[OutboundEmail]:
    admin = OutboundEmail(
        to=sender.admin_email,
        subject=_subject(f"{source}: {course}"),
        html=_layout(
            f"New {escape_html(source)}",
            "<p>You have received a new course inquiry.</p>"
            + _rows([("Course", course), ("Name", full_name), ("Email", email), ("Phone", phone or "Not provided")]),
            "Automated notification",
        ),
        from_email=sender.email,
        from_name=sender.named("Courses"),
        reply_to=email,
    )
    user = OutboundEmail(
        to=email,
        subject=_subject(f"We Received Your Inquiry: {course}"),
        html=_layout(
            "Thanks for your interest!",
            f"<p>Hi {escape_html(full_name)},</p>"
            f"<p>Thank you for your interest in our <b>{escape_html(course)}</b> course. "
            "Our team will reach out within 24 hours.</p>" + _brochure_button(brochure_url),
            _copyright(sender),
        ),
        from_email=sender.email,
        from_name=sender.named("Team"),
    )
    return [admin, user]


def contact_messages(
    sender: Sender,
    *,
    first_name: str,
    last_name: str,
    email: str,
    phone: str,
    message: str | None,
) -> list[OutboundEmail]:
    full_name = f"{first_name} {last_name}"
    quoted = f'<p style="font-style:italic;">"{escape_html(message)}"</p>' if message else ""
    admin = OutboundEmail(
        to=sender.admin_email,
        subject=_subject(f"New Contact from {full_name}"),
        html=_layout(
            "New Lead Received",
            _rows([("Full Name", full_name), ("Email", email), ("Phone", phone), ("Message", message)]),
            f"Sent from the {escape_html(sender.brand)} contact form",
        ),
        from_email=sender.email,
        from_name=sender.named("Contact"),
        reply_to=email,
    )
    user = OutboundEmail(
        to=email,
        subject=f"Thanks for contacting {sender.brand}",
        html=_layout(
            "Message Received!",
            f"<p>Hi {escape_html(first_name)},</p>"
            "<p>We've received your message and typically respond within 24 hours.</p>" + quoted,
            _copyright(sender),
        ),
        from_email=sender.email,
        from_name=sender.named("Team"),
    )
    return [admin, user]


def interviewer_messages(
    sender: Sender,
    *,
    full_name: str,
    email: str,
    phone: str,
    company_name: str,
    designation: str,
    experience: str | None,
    expertise: str | None,
) -> list[OutboundEmail]:
    admin = OutboundEmail(
        to=sender.admin_email,
        subject=_subject(f"Interviewer Registration: {full_name}"),
        html=_layout(
            "New Interviewer Registration",
            _rows(
                [
                    ("Full Name", full_name),
                    ("Email", email),
                    ("Phone", phone),
                    ("Company Name", company_name),
                    ("Designation", designation),
                    ("Years of Experience", experience),
                    ("Expertise", expertise),
                ]
            ),
            "This registration was submitted from the website.",
        ),
        from_email=sender.email,
        from_name=sender.named("Job Fair"),
        reply_to=email,
    )
    user = OutboundEmail(
        to=email,
        subject=_subject(f"Thank you for registering as an Interviewer, {full_name}!"),
        html=_layout(
            "Registration Confirmed!",
            f"<p>Hi {escape_html(full_name)},</p>"
            "<p>Thank you for registering to be an interviewer. We will contact you soon with more information.</p>",
            _copyright(sender),
        ),
        from_email=sender.email,
        from_name=sender.named("Job Fair"),
    )
    return [admin, user]


def candidate_messages(sender: Sender, *, full_name: str, email: str, phone: str) -> list[OutboundEmail]:
    admin = OutboundEmail(
        to=sender.admin_email,
        subject=_subject(f"New Student Registration: {full_name}"),
        html=_layout(
            "New Student Registration",
            _rows([("Full Name", full_name), ("Email", email), ("Phone", phone)]),
            "Automated notification",
        ),
        from_email=sender.email,
        from_name=sender.named("Registration"),
        reply_to=email,
    )
    user = OutboundEmail(
        to=email,
        subject="Registration Received",
        html=_layout(
            "Registration Received",
            f"<p>Dear {escape_html(full_name)},</p>"
            "<p>Thank you for registering for the Job Fair. Our team will review your application and get back to you soon.</p>",
            _copyright(sender),
        ),
        from_email=sender.email,
        from_name=sender.named("Team"),
    )
    return [admin, user]


def check_message(sender: Sender, *, to: str, environment: str) -> OutboundEmail:
    return OutboundEmail(
        to=to,
        subject=f"{sender.brand} mail check",
        html=_layout("Mail check", "<p>Mail transport is configured correctly.</p>", escape_html(environment)),
        from_email=sender.email,
        from_name=sender.named("Ops"),
    )
