from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TypeVar

from .errors import DownstreamTimeout
from .observability import Timer
from .otel import record_side_effect_metric, span

T = TypeVar("T")


async def run_side_effect(
    fn: Callable[[], T],
    *,
    operation: str,
    timeout_s: float,
    request_id: str | None = None,
) -> T:
    """Run a blocking side effect (SMTP send, chat completion) off the event loop.

    The call is raced against `timeout_s`. On timeout the caller gets a
    `DownstreamTimeout`; the worker thread is not interrupted, so a slow email
    may still be delivered after the client has been answered.
    """

    timer = Timer()
    outcome = "ok"
    with span(f"side_effect.{operation}", {"side_effect.timeout_s": timeout_s, "request_id": request_id}):
        try:
            return await asyncio.wait_for(asyncio.to_thread(fn), timeout=timeout_s)
        except asyncio.TimeoutError as e:
            outcome = "timeout"
            raise DownstreamTimeout(f"{operation} exceeded {timeout_s}s") from e
        except Exception:
            outcome = "error"
            raise
        finally:
            record_side_effect_metric(operation=operation, latency_ms=timer.ms(), outcome=outcome)
