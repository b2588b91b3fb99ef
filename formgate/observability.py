from __future__ import annotations

import json
import logging
import os
import time
import traceback
import uuid
from typing import Any, Mapping, Optional

LOGGER_NAME = "formgate"


def configure_logging() -> None:
    """Configure application logging.

    We emit **JSON lines** so hosted log viewers (Vercel, Cloud Logging, ...)
    parse them into structured fields, filterable by request_id, status,
    event name and so on.

    Module loggers (`formgate.*`) propagate into this one.
    """

    level_name = os.getenv("LOG_LEVEL", "INFO").upper().strip()
    level = getattr(logging, level_name, logging.INFO)

    # Configure a dedicated logger so Uvicorn's logging config doesn't clobber
    # our JSON formatting.
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))

    # Replace handlers so repeated app construction doesn't duplicate logs.
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.propagate = False


def request_id_from_headers(headers: Mapping[str, str]) -> str:
    """Determine a request ID.

    Preference order:
      1) X-Request-Id (reverse proxies)
      2) X-Correlation-Id (some enterprise setups)
      3) X-Vercel-Id (Vercel edge)
      4) generated UUID4
    """

    rid = headers.get("x-request-id") or headers.get("x-correlation-id") or headers.get("x-vercel-id")
    return (rid.strip() if rid else "") or str(uuid.uuid4())


def client_ip_from_headers(headers: Mapping[str, str], peer: Optional[str]) -> str:
    """Caller IP: first X-Forwarded-For hop, then the socket peer, then 'unknown'."""

    xff = headers.get("x-forwarded-for")
    first = xff.split(",")[0].strip() if xff else ""
    return first or (peer or "").strip() or "unknown"


def _severity_level(severity: str) -> int:
    return {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
    }.get(severity.upper(), logging.INFO)


def log_event(event: str, *, severity: str = "INFO", **fields: Any) -> None:
    """Emit a structured governance/application event (ratelimit.blocked, dedup.hit, ...)."""

    logger = logging.getLogger(LOGGER_NAME)
    payload: dict[str, Any] = {"severity": severity, "event": event}
    for k, v in fields.items():
        if v is None:
            continue
        payload[k] = v if isinstance(v, (str, bool, int, float)) else str(v)
    logger.log(_severity_level(severity), json.dumps(payload, ensure_ascii=False))


def log_exception(event: str, exc: BaseException, *, severity: str = "ERROR", **fields: Any) -> None:
    """Like `log_event`, with the exception type and traceback as fields of the same JSON line."""

    tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    log_event(event, severity=severity, error_type=type(exc).__name__, error=str(exc), traceback=tb, **fields)


def log_http_request(
    *,
    request_id: str,
    method: str,
    url: str,
    path: str,
    status: int,
    latency_ms: float,
    remote_ip: str,
    user_agent: str,
    origin: Optional[str] = None,
    limited: bool = False,
    error_type: Optional[str] = None,
    severity: str = "INFO",
) -> None:
    """Emit a structured request log."""

    logger = logging.getLogger(LOGGER_NAME)

    payload: dict[str, Any] = {
        "severity": severity,
        "message": "http_request",
        "service": os.getenv("VERCEL_PROJECT_NAME") or os.getenv("K_SERVICE") or "formgate",
        "request_id": request_id,
        "path": path,
        "limited": limited,
        "latency_ms": round(latency_ms, 2),
        "httpRequest": {
            "requestMethod": method,
            "requestUrl": url,
            "status": status,
            "latency": f"{latency_ms / 1000.0:.3f}s",
            "remoteIp": remote_ip,
            "userAgent": user_agent,
        },
    }

    if origin:
        payload["origin"] = origin
    if error_type:
        payload["error_type"] = error_type

    logger.log(_severity_level(severity), json.dumps(payload, ensure_ascii=False))


class Timer:
    """Tiny helper for timing blocks."""

    def __init__(self) -> None:
        self._t0 = time.perf_counter()

    def ms(self) -> float:
        return (time.perf_counter() - self._t0) * 1000.0
