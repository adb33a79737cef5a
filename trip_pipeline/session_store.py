"""
Session store: one TripState per caller phone, expiring after an idle window.

Contract:
- get(phone) -> TripState | None  (None means "new session", not an error)
- put(phone, state, ttl_seconds)  (last write wins per key)

Backend failures raise SessionStoreError; the orchestrator treats that as
fatal to the turn and never fabricates a state in its place.
"""
from __future__ import annotations

import time
from typing import Callable, Dict, Optional, Tuple

from pydantic import ValidationError
from redis import asyncio as aioredis
from redis.exceptions import RedisError

from logging_setup import get_logger, Component
from .errors import SessionStoreError
from .state import TripState

logger = get_logger(Component.SESSION_STORE)

KEY_PREFIX = "trip_state:"


def session_key(phone: str) -> str:
    return f"{KEY_PREFIX}{phone}"


class SessionStore:
    """Interface for session persistence."""

    async def get(self, phone: str) -> Optional[TripState]:
        raise NotImplementedError

    async def put(self, phone: str, state: TripState, ttl_seconds: int) -> None:
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


class RedisSessionStore(SessionStore):
    """Sessions as JSON strings under trip_state:<phone> with a Redis TTL (SET ... EX)."""

    def __init__(self, client: aioredis.Redis):
        self._redis = client

    @classmethod
    def from_url(cls, url: str, timeout: float = 3.0) -> "RedisSessionStore":
        client = aioredis.from_url(
            url,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
            decode_responses=True,
        )
        return cls(client)

    async def get(self, phone: str) -> Optional[TripState]:
        try:
            raw = await self._redis.get(session_key(phone))
        except (RedisError, OSError) as e:
            logger.error("Session load failed", error=str(e), error_type=type(e).__name__)
            raise SessionStoreError(f"Session load failed: {e}") from e

        if raw is None:
            return None

        try:
            return TripState.from_json(raw)
        except ValidationError as e:
            # Treated like an unreachable store: the turn fails, the caller is not reset to GREET
            logger.error(
                "Stored session state is unreadable",
                error_count=e.error_count(),
            )
            raise SessionStoreError(f"Stored session state is unreadable ({e.error_count()} errors)") from e

    async def put(self, phone: str, state: TripState, ttl_seconds: int) -> None:
        try:
            await self._redis.set(session_key(phone), state.to_json(), ex=ttl_seconds)
        except (RedisError, OSError) as e:
            logger.error("Session save failed", error=str(e), error_type=type(e).__name__)
            raise SessionStoreError(f"Session save failed: {e}") from e

    async def aclose(self) -> None:
        await self._redis.aclose()


class InMemorySessionStore(SessionStore):
    """
    Process-local session store with TTL semantics.

    For local development and tests. Expired entries are dropped lazily on
    read. `clock` is injectable so expiry can be tested without sleeping.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: Dict[str, Tuple[str, float]] = {}

    async def get(self, phone: str) -> Optional[TripState]:
        entry = self._entries.get(phone)
        if entry is None:
            return None
        raw, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[phone]
            return None
        return TripState.from_json(raw)

    async def put(self, phone: str, state: TripState, ttl_seconds: int) -> None:
        self._entries[phone] = (state.to_json(), self._clock() + ttl_seconds)

    def __len__(self) -> int:
        return len(self._entries)
