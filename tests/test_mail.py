from __future__ import annotations

import smtplib

import pytest

from conftest import FakeMailer, make_settings
from formgate.errors import ConfigurationError, DownstreamProviderError
from formgate.mail import SendGridMailer, Sender, SmtpMailer, deliver_all, get_mailer
from formgate.mail.templates import candidate_messages, contact_messages, newsletter_messages


def _sender() -> Sender:
    return Sender(email="noreply@newus.in", brand="Newus", admin_email="admin@newus.in")


def test_factory_selects_transport():
    assert isinstance(get_mailer(make_settings(mail_provider="smtp")), SmtpMailer)
    assert isinstance(get_mailer(make_settings(mail_provider="sendgrid")), SendGridMailer)


def test_every_form_notifies_admin_then_user():
    messages = newsletter_messages(_sender(), email="reader@example.com")

    assert [m.to for m in messages] == ["admin@newus.in", "reader@example.com"]
    assert messages[0].reply_to == "reader@example.com"
    assert messages[1].from_name == "Newus Team"


def test_subjects_stay_on_one_line():
    messages = candidate_messages(_sender(), full_name="Kiran\r\nBcc: x@evil.example", email="k@example.com", phone="9876543210")

    assert "\n" not in messages[0].subject
    assert "\r" not in messages[0].subject


def test_user_values_are_escaped():
    messages = contact_messages(
        _sender(),
        first_name="Ravi",
        last_name="Kumar",
        email="ravi@example.com",
        phone="9876543210",
        message='<img src=x onerror="alert(1)">',
    )

    for m in messages:
        assert "<img" not in m.html
        assert "&lt;img" in m.html


def test_deliver_all_stops_at_first_failure():
    mailer = FakeMailer(fail=DownstreamProviderError("down"))

    with pytest.raises(DownstreamProviderError):
        deliver_all(mailer, newsletter_messages(_sender(), email="a@example.com"))

    assert mailer.sent == []


def test_smtp_requires_credentials():
    mailer = SmtpMailer(make_settings(smtp_user=None, smtp_password=None))

    with pytest.raises(ConfigurationError):
        mailer.send(newsletter_messages(_sender(), email="a@example.com")[0])


class _FakeSMTP:
    instances: list["_FakeSMTP"] = []

    def __init__(self, host, port, timeout=None):
        self.host, self.port, self.timeout = host, port, timeout
        self.sent: list = []
        self.logged_in = None
        self.tls = False
        self.auth_error = False
        _FakeSMTP.instances.append(self)

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def ehlo(self):
        pass

    def has_extn(self, name):
        return name == "starttls"

    def starttls(self):
        self.tls = True

    def login(self, user, password):
        if password == "wrong":
            raise smtplib.SMTPAuthenticationError(535, b"bad credentials")
        self.logged_in = (user, password)

    def send_message(self, msg):
        self.sent.append(msg)


def test_smtp_sends_over_starttls(monkeypatch: pytest.MonkeyPatch):
    _FakeSMTP.instances = []
    monkeypatch.setattr(smtplib, "SMTP", _FakeSMTP)
    settings = make_settings(smtp_host="smtp.test", smtp_port=587, smtp_secure=False, smtp_user="u@newus.in", smtp_password="pw")

    msg_id = SmtpMailer(settings).send(newsletter_messages(_sender(), email="a@example.com")[1])

    conn = _FakeSMTP.instances[-1]
    assert msg_id
    assert conn.tls is True
    assert conn.logged_in == ("u@newus.in", "pw")
    sent = conn.sent[0]
    assert sent["To"] == "a@example.com"
    assert "Newus Team" in sent["From"]


def test_smtp_auth_failure_is_configuration_error(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(smtplib, "SMTP", _FakeSMTP)
    settings = make_settings(smtp_user="u@newus.in", smtp_password="wrong", smtp_secure=False)

    with pytest.raises(ConfigurationError):
        SmtpMailer(settings).send(newsletter_messages(_sender(), email="a@example.com")[0])


def test_sendgrid_requires_api_key():
    pytest.importorskip("sendgrid")
    mailer = SendGridMailer(make_settings(sendgrid_api_key=None))

    with pytest.raises(ConfigurationError):
        mailer.send(newsletter_messages(_sender(), email="a@example.com")[0])
