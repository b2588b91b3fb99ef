from __future__ import annotations

import json
import logging

import pytest
from fastapi.testclient import TestClient

import formgate.main as main
from conftest import FakeClock, FakeMailer, make_settings
from formgate.governance import GovernanceService
from formgate.observability import (
    LOGGER_NAME,
    client_ip_from_headers,
    configure_logging,
    log_event,
    log_exception,
    request_id_from_headers,
)
from formgate.ratelimit import RateLimitPolicy


def test_request_id_preference_order():
    assert request_id_from_headers({"x-request-id": "a", "x-correlation-id": "b"}) == "a"
    assert request_id_from_headers({"x-correlation-id": "b", "x-vercel-id": "c"}) == "b"
    assert request_id_from_headers({"x-vercel-id": "c"}) == "c"
    generated = request_id_from_headers({})
    assert len(generated) == 36


def test_client_ip_resolution():
    assert client_ip_from_headers({"x-forwarded-for": " 1.1.1.1 , 2.2.2.2"}, "3.3.3.3") == "1.1.1.1"
    assert client_ip_from_headers({}, "3.3.3.3") == "3.3.3.3"
    assert client_ip_from_headers({"x-forwarded-for": ""}, None) == "unknown"


def test_configure_logging_replaces_handlers():
    configure_logging()
    configure_logging()

    logger = logging.getLogger(LOGGER_NAME)
    assert len(logger.handlers) == 1
    assert logger.propagate is False


def test_log_event_emits_json(capsys):
    configure_logging()

    log_event("dedup.hit", request_type="newsletter", request_id=None, count=2)

    line = capsys.readouterr().err.strip().splitlines()[-1]
    payload = json.loads(line)
    assert payload == {"severity": "INFO", "event": "dedup.hit", "request_type": "newsletter", "count": 2}


def test_log_exception_keeps_traceback_inside_the_json_line(capsys):
    configure_logging()

    try:
        raise KeyError("template bug")
    except KeyError as e:
        log_exception("http.unhandled_error", e, request_id="r9", path="/api/lead")

    lines = capsys.readouterr().err.strip().splitlines()
    assert len(lines) == 1
    payload = json.loads(lines[0])
    assert payload["severity"] == "ERROR"
    assert payload["event"] == "http.unhandled_error"
    assert payload["error_type"] == "KeyError"
    assert payload["path"] == "/api/lead"
    assert "Traceback" in payload["traceback"]


def test_request_logs_flag_limited_requests(monkeypatch: pytest.MonkeyPatch):
    captured: list[dict[str, object]] = []
    monkeypatch.setattr(main, "log_http_request", lambda **kw: captured.append(dict(kw)))

    settings = make_settings(chat_limit=RateLimitPolicy(name="chat", limit=1, window_s=60.0, key="ip"))
    app = main.create_app(settings, governance=GovernanceService(settings, clock=FakeClock()), mailer=FakeMailer())
    client = TestClient(app)
    client.post("/api/chatbot", json={}, headers={"Origin": "http://localhost:5173", "X-Request-Id": "r1"})
    client.post("/api/chatbot", json={}, headers={"X-Request-Id": "r2"})

    first, second = captured[-2:]
    assert first["request_id"] == "r1"
    assert first["status"] == 400
    assert first["origin"] == "http://localhost:5173"
    assert first["limited"] is False
    assert second["status"] == 429
    assert second["limited"] is True
    assert second["severity"] == "WARNING"
