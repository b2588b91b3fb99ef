"""Request governance: origin guard, rate limiting and duplicate suppression.

One `GovernanceService` is built per app (see `main.create_app`) and shared by
all handlers. Its stores are in-memory and per-instance. `start()` launches the
periodic expiry sweep and `shutdown()` cancels it; both run from the app
lifespan.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Awaitable, Callable, Mapping
from datetime import datetime, timezone
from typing import Any

from .config import Settings
from .cors import CorsDecision, OriginGuard, OriginPolicy
from .dedup import UNKNOWN_KEY, DedupCheck, RequestDeduplicator
from .errors import ConfigurationError, RateLimitExceeded
from .observability import client_ip_from_headers, log_event, log_exception
from .otel import record_governance_decision
from .ratelimit import FixedWindowRateLimiter, RateLimitPolicy, RateLimitResult
from .sanitize import validate_email


def iso_utc(ts: float) -> str:
    dt = datetime.fromtimestamp(ts, tz=timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def rate_limit_headers(result: RateLimitResult) -> dict[str, str]:
    return {
        "X-RateLimit-Limit": str(result.limit),
        "X-RateLimit-Remaining": str(max(0, result.remaining)),
        "X-RateLimit-Reset": iso_utc(result.reset_at),
    }


def email_identity(payload: Mapping[str, Any] | None) -> str:
    raw = (payload or {}).get("email")
    if isinstance(raw, str) and raw.strip():
        return raw.strip().lower()
    return "unknown"


class GovernanceService:
    def __init__(
        self,
        settings: Settings,
        *,
        clock: Callable[[], float] = time.time,
        limiter: FixedWindowRateLimiter | None = None,
        deduplicator: RequestDeduplicator | None = None,
    ) -> None:
        self.settings = settings
        self.clock = clock
        self.origin_guard = OriginGuard(OriginPolicy.from_settings(settings))
        self.limiter = limiter or FixedWindowRateLimiter(clock=clock)
        self.deduplicator = deduplicator or RequestDeduplicator(clock=clock)
        self._sweeper: asyncio.Task[None] | None = None
        # Dedup keys whose side effect is running; touched only from the event loop.
        self._inflight: dict[str, asyncio.Future[dict[str, Any] | None]] = {}

    # ---- lifecycle ----

    @property
    def running(self) -> bool:
        return self._sweeper is not None and not self._sweeper.done()

    def start(self) -> None:
        """Start periodic housekeeping. Must be called from a running event loop."""
        if self.running:
            return
        self._sweeper = asyncio.get_running_loop().create_task(self._sweep_loop(), name="formgate-sweeper")

    async def shutdown(self) -> None:
        task, self._sweeper = self._sweeper, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _sweep_loop(self) -> None:
        interval = max(0.01, float(self.settings.sweep_interval_s))
        while True:
            await asyncio.sleep(interval)
            try:
                self.sweep()
            except Exception as e:
                # A failed sweep only delays reclamation; lazy expiry keeps answers correct.
                log_exception("housekeeping.sweep_failed", e)

    def sweep(self) -> tuple[int, int]:
        buckets = self.limiter.sweep()
        entries = self.deduplicator.sweep()
        if buckets or entries:
            log_event("housekeeping.sweep", severity="DEBUG", buckets_removed=buckets, dedup_removed=entries)
        return buckets, entries

    # ---- origin guard ----

    def decide_cors(self, origin: str | None, method: str) -> CorsDecision:
        return self.origin_guard.decide(origin, method)

    # ---- rate limiting ----

    def policy(self, name: str) -> RateLimitPolicy:
        policies = {
            "general": self.settings.general_limit,
            "newsletter": self.settings.newsletter_limit,
            "registration": self.settings.registration_limit,
            "chat": self.settings.chat_limit,
        }
        return policies[name]

    def rate_limit_key(
        self,
        policy: RateLimitPolicy,
        *,
        headers: Mapping[str, str],
        peer: str | None,
        payload: Mapping[str, Any] | None = None,
    ) -> str:
        if policy.key == "email":
            identity = email_identity(payload)
        else:
            identity = client_ip_from_headers(headers, peer)
        # Policies keep independent counters for the same caller.
        return f"{policy.name}:{identity}"

    def enforce_rate_limit(self, policy: RateLimitPolicy, key: str, *, request_id: str | None = None) -> dict[str, str]:
        """Consume one unit of quota for `key`.

        Returns the X-RateLimit-* headers to attach to the response, or raises
        `RateLimitExceeded`. Accounting bugs fail open: the request goes through
        without headers.
        """
        if not self.settings.rate_limit_enabled:
            return {}

        try:
            result = self.limiter.is_allowed(key, policy.limit, policy.window_s)
        except Exception as e:
            log_exception("ratelimit.fail_open", e, policy=policy.name, request_id=request_id)
            record_governance_decision(kind="ratelimit", outcome="fail_open", policy=policy.name)
            return {}

        headers = rate_limit_headers(result)
        if result.allowed:
            record_governance_decision(kind="ratelimit", outcome="allowed", policy=policy.name)
            return headers

        retry_after = result.retry_after_s(self.clock())
        record_governance_decision(kind="ratelimit", outcome="blocked", policy=policy.name)
        raise RateLimitExceeded(retry_after_s=retry_after, policy=policy.name, rate_headers=headers)

    # ---- deduplication ----

    def check_duplicate(self, request_type: str, identifier: str | None, *, request_id: str | None = None) -> DedupCheck:
        check = self.deduplicator.check_duplicate(request_type, identifier, self.settings.dedup_ttl_s)
        if check.is_duplicate:
            log_event("dedup.hit", request_type=request_type, request_id=request_id)
            record_governance_decision(kind="dedup", outcome="duplicate", policy=request_type)
        return check

    def remember_response(self, check: DedupCheck, response: dict[str, Any]) -> None:
        self.deduplicator.store_response(check.key, dict(response), self.settings.dedup_ttl_s)

    async def run_once(
        self,
        request_type: str,
        identifier: str | None,
        send: Callable[[], Awaitable[dict[str, Any]]],
        *,
        request_id: str | None = None,
    ) -> dict[str, Any]:
        """Run `send` at most once per dedup key.

        A repeat of a stored submission gets the stored response back. A repeat
        that arrives while the first one is still sending waits for it and shares
        its response. If the first one fails nothing is stored, the key is
        released and a waiter re-checks (and may send itself).
        """
        while True:
            check = self.check_duplicate(request_type, identifier, request_id=request_id)
            if check.is_duplicate and isinstance(check.response, dict):
                return {**check.response, "isDuplicate": True}
            if check.key == UNKNOWN_KEY:
                return await send()

            pending = self._inflight.get(check.key)
            if pending is None:
                break
            log_event("dedup.in_flight", request_type=request_type, request_id=request_id)
            shared = await asyncio.shield(pending)
            if shared is not None:
                record_governance_decision(kind="dedup", outcome="duplicate", policy=request_type)
                return {**shared, "isDuplicate": True}

        claim: asyncio.Future[dict[str, Any] | None] = asyncio.get_running_loop().create_future()
        self._inflight[check.key] = claim
        response: dict[str, Any] | None = None
        try:
            response = await send()
            self.remember_response(check, response)
            return response
        finally:
            self._inflight.pop(check.key, None)
            # None tells waiters the send failed.
            claim.set_result(dict(response) if response is not None else None)

    # ---- configuration gates ----

    def require_admin_email(self) -> str:
        admin = validate_email(self.settings.admin_email)
        if admin is None:
            raise ConfigurationError("ADMIN_EMAIL is missing or invalid")
        return admin

    def require_sender_email(self) -> str:
        sender = validate_email(self.settings.mail_from_email)
        if sender is None:
            raise ConfigurationError("MAIL_FROM_EMAIL / EMAIL_USER is missing or invalid")
        return sender
