"""pytest configuration.

This repo is intentionally usable without installing the package into a virtualenv.

When running `pytest` directly from the repo root, we want `import formgate` to resolve to
`./formgate`. Some environments / runners do not automatically add the repo root to
`sys.path` (notably certain CI wrappers and tracing/instrumentation layers), so we
force it here.
"""

from __future__ import annotations

import dataclasses
import sys
import time
from pathlib import Path
from typing import Any

import pytest


REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from formgate.chat import ChatReply, ChatTurn  # noqa: E402
from formgate.config import Settings, load_settings  # noqa: E402
from formgate.mail import OutboundEmail  # noqa: E402
from formgate.ratelimit import RateLimitPolicy  # noqa: E402


class FakeClock:
    def __init__(self, start: float = 1_700_000_040.0) -> None:
        self.now = float(start)

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeMailer:
    name = "fake"

    def __init__(self, *, fail: Exception | None = None, delay_s: float = 0.0) -> None:
        self.sent: list[OutboundEmail] = []
        self.fail = fail
        self.delay_s = delay_s

    def send(self, message: OutboundEmail) -> str | None:
        if self.delay_s:
            time.sleep(self.delay_s)
        if self.fail is not None:
            raise self.fail
        self.sent.append(message)
        return f"fake-{len(self.sent)}"

    def to(self, address: str) -> list[OutboundEmail]:
        return [m for m in self.sent if m.to == address]


class FakeChat:
    name = "fake-chat"

    def __init__(self, reply: str = "We offer 8 courses.", *, fail: Exception | None = None) -> None:
        self.reply = reply
        self.fail = fail
        self.calls: list[tuple[str, list[ChatTurn]]] = []

    def complete(self, message: str, history: list[ChatTurn]) -> ChatReply:
        self.calls.append((message, list(history)))
        if self.fail is not None:
            raise self.fail
        return ChatReply(text=self.reply, provider=self.name)


def make_settings(**overrides: Any) -> Settings:
    base = dataclasses.replace(
        load_settings(),
        is_production=False,
        frontend_url=None,
        production_origins=("https://newus.in", "https://www.newus.in"),
        development_origins=("http://localhost:5173",),
        admin_email="admin@newus.in",
        brand_name="Newus",
        mail_provider="smtp",
        mail_from_email="noreply@newus.in",
        chat_api_key="test-key",
        chat_max_history=10,
        max_chat_message_chars=2000,
        rate_limit_enabled=True,
        general_limit=RateLimitPolicy(name="general", limit=10, window_s=60.0, key="ip"),
        newsletter_limit=RateLimitPolicy(name="newsletter", limit=5, window_s=60.0, key="email"),
        registration_limit=RateLimitPolicy(name="registration", limit=5, window_s=900.0, key="ip"),
        chat_limit=RateLimitPolicy(name="chat", limit=20, window_s=60.0, key="ip"),
        dedup_ttl_s=60.0,
        side_effect_timeout_s=5.0,
        sweep_interval_s=300.0,
        otel_enabled=False,
    )
    return dataclasses.replace(base, **overrides)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def mailer() -> FakeMailer:
    return FakeMailer()


@pytest.fixture
def chat() -> FakeChat:
    return FakeChat()
