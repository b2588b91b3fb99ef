from __future__ import annotations

from typing import Any

from scripts.deploy_smoke import HttpResponse, run_smoke


def _path(url: str) -> str:
    marker = "://"
    if marker in url:
        rest = url.split(marker, 1)[1]
        slash = rest.find("/")
        return "/" if slash < 0 else rest[slash:]
    return url


def _fake_fetch(responses: dict[tuple[str, str], HttpResponse], calls: list[tuple[str, str, Any, dict[str, str]]]):
    def fetch(method: str, url: str, payload: dict[str, Any] | None, headers: dict[str, str], timeout_s: float) -> HttpResponse:
        calls.append((method, _path(url), payload, headers))
        return responses[(method, _path(url))]

    return fetch


def _healthy() -> dict[tuple[str, str], HttpResponse]:
    return {
        ("GET", "/api/health"): HttpResponse(
            status=200,
            json_body={"ok": True, "status": "OK", "version": "0.1.0"},
            text='{"status":"OK"}',
        ),
        ("OPTIONS", "/api/newsletter"): HttpResponse(
            status=200,
            json_body=None,
            text="",
            headers={
                "access-control-allow-origin": "https://newus.in",
                "access-control-allow-credentials": "true",
            },
        ),
        ("POST", "/api/newsletter"): HttpResponse(
            status=200,
            json_body={"ok": True, "emailSent": True},
            text='{"ok":true,"emailSent":true}',
        ),
    }


def test_run_smoke_success_without_newsletter():
    calls: list[tuple[str, str, Any, dict[str, str]]] = []

    checks, ok = run_smoke(
        base_url="https://api.newus.in/",
        origin="https://newus.in",
        timeout_s=3.0,
        fetch=_fake_fetch(_healthy(), calls),
    )

    assert ok is True
    assert [c.name for c in checks] == ["GET /api/health", "OPTIONS /api/newsletter"]
    assert [(m, p) for m, p, _, _ in calls] == [("GET", "/api/health"), ("OPTIONS", "/api/newsletter")]
    assert calls[1][3]["Origin"] == "https://newus.in"


def test_run_smoke_with_newsletter_submission():
    calls: list[tuple[str, str, Any, dict[str, str]]] = []

    checks, ok = run_smoke(
        base_url="https://api.newus.in",
        origin="https://newus.in",
        timeout_s=3.0,
        newsletter_email="smoke@newus.in",
        fetch=_fake_fetch(_healthy(), calls),
    )

    assert ok is True
    assert checks[-1].name == "POST /api/newsletter"
    assert calls[-1][2] == {"email": "smoke@newus.in"}


def test_run_smoke_fails_when_origin_not_echoed():
    responses = _healthy()
    responses[("OPTIONS", "/api/newsletter")] = HttpResponse(
        status=200,
        json_body=None,
        text="",
        headers={"access-control-allow-origin": "null", "access-control-allow-credentials": "false"},
    )

    checks, ok = run_smoke(
        base_url="https://api.newus.in",
        origin="https://newus.in",
        timeout_s=3.0,
        fetch=_fake_fetch(responses, []),
    )

    assert ok is False
    failed = [c for c in checks if not c.ok]
    assert [c.name for c in failed] == ["OPTIONS /api/newsletter"]
    assert "allow-origin=null" in failed[0].detail


def test_run_smoke_fails_on_unhealthy_service():
    responses = _healthy()
    responses[("GET", "/api/health")] = HttpResponse(status=503, json_body=None, text="Service Unavailable")

    checks, ok = run_smoke(
        base_url="https://api.newus.in",
        origin="https://newus.in",
        timeout_s=3.0,
        fetch=_fake_fetch(responses, []),
    )

    assert ok is False
    assert checks[0].ok is False
    assert checks[0].status == 503
