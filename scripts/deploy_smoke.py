from __future__ import annotations

import argparse
import json
import time
from dataclasses import dataclass, field
from typing import Any, Callable
from urllib import error, request


DEFAULT_SMOKE_ORIGIN = "https://newus.in"


@dataclass(frozen=True)
class HttpResponse:
    status: int
    json_body: Any | None
    text: str
    headers: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class CheckResult:
    name: str
    ok: bool
    status: int
    detail: str


FetchFn = Callable[[str, str, dict[str, Any] | None, dict[str, str], float], HttpResponse]


def _fetch_http(method: str, url: str, payload: dict[str, Any] | None, headers: dict[str, str], timeout_s: float) -> HttpResponse:
    body: bytes | None = None
    req_headers = dict(headers)
    if payload is not None:
        body = json.dumps(payload, ensure_ascii=False).encode("utf-8")
        req_headers.setdefault("Content-Type", "application/json")

    req = request.Request(url=url, method=method.upper(), data=body, headers=req_headers)

    raw = ""
    status = 0
    resp_headers: dict[str, str] = {}
    try:
        with request.urlopen(req, timeout=timeout_s) as resp:
            status = int(resp.status)
            resp_headers = {k.lower(): v for k, v in resp.headers.items()}
            raw = resp.read().decode("utf-8", errors="replace")
    except error.HTTPError as e:
        status = int(e.code)
        resp_headers = {k.lower(): v for k, v in e.headers.items()}
        raw = e.read().decode("utf-8", errors="replace")
    except Exception as e:  # pragma: no cover - network failures are environment-specific
        return HttpResponse(status=0, json_body=None, text=f"{type(e).__name__}: {e}")

    parsed: Any | None = None
    if raw.strip():
        try:
            parsed = json.loads(raw)
        except Exception:
            parsed = None

    return HttpResponse(status=status, json_body=parsed, text=raw, headers=resp_headers)


def _short_text(value: str, *, max_len: int = 180) -> str:
    text = " ".join((value or "").split())
    if len(text) <= max_len:
        return text
    return text[: max_len - 3] + "..."


def _result(name: str, ok: bool, status: int, detail: str) -> CheckResult:
    return CheckResult(name=name, ok=ok, status=int(status), detail=detail)


def run_smoke(
    *,
    base_url: str,
    origin: str,
    timeout_s: float,
    newsletter_email: str | None = None,
    fetch: FetchFn | None = None,
) -> tuple[list[CheckResult], bool]:
    do_fetch = fetch or _fetch_http
    url_base = base_url.rstrip("/")

    checks: list[CheckResult] = []

    def call(method: str, path: str, payload: dict[str, Any] | None = None, headers: dict[str, str] | None = None) -> HttpResponse:
        return do_fetch(method, f"{url_base}{path}", payload, dict(headers or {}), timeout_s)

    health = call("GET", "/api/health")
    if health.status == 200 and isinstance(health.json_body, dict) and health.json_body.get("status") == "OK":
        checks.append(_result("GET /api/health", True, health.status, f"version={health.json_body.get('version')}"))
    else:
        checks.append(
            _result(
                "GET /api/health",
                False,
                health.status,
                f"expected 200 + {{status:OK}}, got body={_short_text(health.text)}",
            )
        )

    preflight = call(
        "OPTIONS",
        "/api/newsletter",
        headers={"Origin": origin, "Access-Control-Request-Method": "POST"},
    )
    allow_origin = preflight.headers.get("access-control-allow-origin")
    allow_credentials = preflight.headers.get("access-control-allow-credentials")
    if preflight.status == 200 and allow_origin == origin and allow_credentials == "true":
        checks.append(_result("OPTIONS /api/newsletter", True, preflight.status, f"origin echoed: {origin}"))
    else:
        checks.append(
            _result(
                "OPTIONS /api/newsletter",
                False,
                preflight.status,
                f"expected 200 + echoed origin {origin}, got allow-origin={allow_origin} credentials={allow_credentials}",
            )
        )

    if newsletter_email:
        sub = call("POST", "/api/newsletter", payload={"email": newsletter_email}, headers={"Origin": origin})
        body = sub.json_body if isinstance(sub.json_body, dict) else {}
        if sub.status == 200 and body.get("ok") is True and body.get("emailSent") is True:
            detail = "duplicate (cached)" if body.get("isDuplicate") else "emailSent=true"
            checks.append(_result("POST /api/newsletter", True, sub.status, detail))
        else:
            checks.append(
                _result(
                    "POST /api/newsletter",
                    False,
                    sub.status,
                    f"expected 200 + {{ok:true, emailSent:true}}, got body={_short_text(sub.text)}",
                )
            )

    ok = all(c.ok for c in checks)
    return checks, ok


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run post-deploy smoke checks.")
    parser.add_argument("--base-url", required=True, help="Base service URL (for example https://api.example.com)")
    parser.add_argument("--origin", default=DEFAULT_SMOKE_ORIGIN, help="Allow-listed Origin used for the CORS preflight.")
    parser.add_argument(
        "--newsletter-email",
        default=None,
        help="If set, submit one newsletter sign-up for this address (sends real email).",
    )
    parser.add_argument("--timeout-s", type=float, default=8.0, help="Per-request timeout in seconds.")
    parser.add_argument("--retries", type=int, default=1, help="Retry full smoke suite up to N times on failure.")
    parser.add_argument("--retry-delay-s", type=float, default=2.0, help="Delay between retry attempts.")
    args = parser.parse_args(argv)

    print(f"Smoke target URL: {args.base_url.rstrip('/')}")
    print(f"Smoke origin: {args.origin}")

    attempts = max(1, int(args.retries))
    last_checks: list[CheckResult] = []
    for idx in range(1, attempts + 1):
        checks, ok = run_smoke(
            base_url=args.base_url,
            origin=args.origin,
            timeout_s=float(args.timeout_s),
            newsletter_email=args.newsletter_email,
        )
        last_checks = checks
        if ok:
            break
        if idx < attempts:
            time.sleep(max(0.0, float(args.retry_delay_s)))

    passed = sum(1 for c in last_checks if c.ok)
    total = len(last_checks)
    for check in last_checks:
        label = "PASS" if check.ok else "FAIL"
        print(f"[{label}] {check.name}: status={check.status} {check.detail}")

    print(f"Smoke summary: {passed}/{total} checks passed")
    if passed != total:
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
