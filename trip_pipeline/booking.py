"""
Booking side effect: POST the full trip state to the booking endpoint.

Stateless and single-shot. 2xx is success; any other status, a connection
error or a timeout is a failure. Retry decisions belong to the conversation
(the caller confirming again), never to this client.
"""
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Optional

from logging_setup import get_logger, Component
from .errors import classify_error, redact_detail
from .http_pool import HttpPool, timeout
from .state import TripState

logger = get_logger(Component.BOOKING)


@dataclass(frozen=True)
class BookingOutcome:
    ok: bool
    status: Optional[int] = None
    category: Optional[str] = None
    latency_ms: int = 0


class BookingClient:
    def __init__(self, *, pool: HttpPool, url: str, timeout_seconds: float = 5.0):
        self._pool = pool
        self.url = url
        self._timeout = timeout_seconds

    async def create_trip(self, state: TripState) -> BookingOutcome:
        t_start = time.perf_counter()
        session_logger = logger.with_session(state.user.phone)
        session_logger.info("Requesting trip creation", endpoint=self.url)
        try:
            session = self._pool.session()
            async with session.post(
                self.url,
                json=state.to_dict(),
                timeout=timeout(self._timeout),
            ) as resp:
                ok = 200 <= resp.status < 300
                latency_ms = int((time.perf_counter() - t_start) * 1000)
                log = session_logger.info if ok else session_logger.error
                log(
                    "Trip creation response",
                    endpoint=self.url,
                    status=resp.status,
                    ok=ok,
                    latency_ms=latency_ms,
                )
                return BookingOutcome(
                    ok=ok,
                    status=resp.status,
                    category=None if ok else "booking.rejected",
                    latency_ms=latency_ms,
                )
        except Exception as e:
            latency_ms = int((time.perf_counter() - t_start) * 1000)
            category = classify_error(e)
            session_logger.error(
                "Trip creation request failed",
                endpoint=self.url,
                category=category,
                error=redact_detail(e),
                error_type=type(e).__name__,
                latency_ms=latency_ms,
            )
            return BookingOutcome(ok=False, category=category, latency_ms=latency_ms)
