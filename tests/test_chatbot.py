from __future__ import annotations

import json
from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from conftest import FakeChat, FakeClock, FakeMailer, make_settings
from formgate.chat import history_from_payload
from formgate.chat.openai_provider import OpenRouterChat, system_prompt
from formgate.courses import COURSES, course_context_json
from formgate.errors import ConfigurationError, DownstreamProviderError
from formgate.governance import GovernanceService
from formgate.main import create_app
from formgate.ratelimit import RateLimitPolicy


def _client(chat: FakeChat, settings=None) -> TestClient:
    settings = settings or make_settings()
    gov = GovernanceService(settings, clock=FakeClock())
    return TestClient(create_app(settings, governance=gov, mailer=FakeMailer(), chat=chat))


def test_chatbot_answers_with_timestamp(chat):
    client = _client(chat)

    resp = client.post(
        "/api/chatbot",
        json={
            "message": "Which courses include placement?",
            "conversationHistory": [
                {"sender": "user", "text": "Hi"},
                {"sender": "bot", "text": "Hello! How can I help?"},
            ],
        },
    )

    assert resp.status_code == 200
    body = resp.json()
    assert body["ok"] is True
    assert body["response"] == "We offer 8 courses."
    assert body["timestamp"].endswith("Z")
    message, history = chat.calls[0]
    assert message == "Which courses include placement?"
    assert [(t.role, t.content) for t in history] == [("user", "Hi"), ("assistant", "Hello! How can I help?")]


def test_chatbot_requires_message(chat):
    client = _client(chat)

    missing = client.post("/api/chatbot", json={"conversationHistory": []})
    too_long = client.post("/api/chatbot", json={"message": "x" * 2001})

    assert missing.status_code == 400
    assert missing.json() == {"ok": False, "error": "Message is required"}
    assert too_long.status_code == 400
    assert chat.calls == []


def test_chatbot_is_not_deduplicated(chat):
    client = _client(chat)

    for _ in range(2):
        assert client.post("/api/chatbot", json={"message": "hello"}).json().get("isDuplicate") is None

    assert len(chat.calls) == 2


def test_chatbot_rate_limit(chat):
    settings = make_settings(chat_limit=RateLimitPolicy(name="chat", limit=1, window_s=60.0, key="ip"))
    client = _client(chat, settings)

    assert client.post("/api/chatbot", json={"message": "one"}).status_code == 200
    assert client.post("/api/chatbot", json={"message": "two"}).status_code == 429
    assert len(chat.calls) == 1


def test_chatbot_provider_rate_limit_maps_to_429():
    chat = FakeChat(fail=DownstreamProviderError("upstream 429", status_code=429, public_message="busy"))
    client = _client(chat)

    resp = client.post("/api/chatbot", json={"message": "hello"})

    assert resp.status_code == 429
    assert resp.json() == {"ok": False, "error": "busy"}


def test_history_is_trimmed_and_cleaned():
    raw = [{"sender": "user", "text": f"m{i}"} for i in range(15)] + [{"sender": "user"}, "junk"]

    turns = history_from_payload(raw, 10)

    assert [t.content for t in turns] == [f"m{i}" for i in range(7, 15)]
    assert history_from_payload(None, 10) == []
    assert history_from_payload(raw, 0) == []


def test_course_context_is_compact_catalog_json():
    data = json.loads(course_context_json())

    assert len(data) == len(COURSES) == 8
    assert set(data[0]) == {"name", "description", "duration", "placement", "type", "coursetype"}
    assert course_context_json() in system_prompt("Newus")


class _FakeCompletions:
    def __init__(self, content):
        self.content = content
        self.kwargs = None

    def create(self, **kwargs):
        self.kwargs = kwargs
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _provider_with(content, settings=None) -> tuple[OpenRouterChat, _FakeCompletions]:
    provider = OpenRouterChat(settings or make_settings())
    completions = _FakeCompletions(content)
    provider._client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    provider._errors = pytest.importorskip("openai")
    return provider, completions


def test_openrouter_builds_messages_and_parameters():
    provider, completions = _provider_with("  Try Python Programming.  ")

    reply = provider.complete("short course?", history_from_payload([{"sender": "bot", "text": "Hi"}], 10))

    assert reply.text == "Try Python Programming."
    kwargs = completions.kwargs
    assert kwargs["model"] == "meta-llama/llama-3.3-70b-instruct:free"
    assert kwargs["temperature"] == 0.6
    assert kwargs["max_tokens"] == 700
    roles = [m["role"] for m in kwargs["messages"]]
    assert roles == ["system", "assistant", "user"]
    assert kwargs["messages"][-1]["content"] == "short course?"


def test_openrouter_empty_completion_is_provider_error():
    provider, _ = _provider_with(None)

    with pytest.raises(DownstreamProviderError):
        provider.complete("hello", [])


def test_openrouter_without_key_is_configuration_error():
    provider = OpenRouterChat(make_settings(chat_api_key=None))

    with pytest.raises(ConfigurationError):
        provider.complete("hello", [])
