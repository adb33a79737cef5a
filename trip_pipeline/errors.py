"""
Turn failure taxonomy and provider error classification.

Fatal-to-turn failures are raised as TurnError subclasses and abort the turn
before anything is persisted. Degradable failures (knowledge retrieval,
synthesis, signaling, booking) never raise past their adapter; their
exceptions are only classified for logs and events.
"""
from __future__ import annotations

import asyncio
from typing import Optional

import aiohttp


class TurnError(Exception):
    """Base class for fatal-to-turn failures."""

    category = "turn.failed"
    public_message = "Could not process this turn"
    http_status = 502

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.public_message)


class InvalidTurnInput(TurnError):
    category = "turn.invalid_input"
    public_message = "Invalid turn input"
    http_status = 400


class SessionStoreError(TurnError):
    category = "session_store.unavailable"
    public_message = "Session store unavailable"


class TranscriptionError(TurnError):
    category = "stt.failed"
    public_message = "Could not transcribe audio"


class ReasoningError(TurnError):
    category = "reasoning.invalid_output"
    public_message = "Could not understand the request"


class ProviderError(Exception):
    """Raised by HTTP adapters on a non-success provider response."""

    def __init__(self, provider: str, status: Optional[int], detail: str = ""):
        self.provider = provider
        self.status = status
        self.detail = detail
        super().__init__(f"{provider} error: {status} {detail}".strip())


class ProviderErrorCategory:
    """Stable categories for external-call failures."""

    TIMEOUT = "provider.timeout"
    NETWORK_ERROR = "provider.network_error"
    AUTH_FAILED = "provider.auth_failed"
    RATE_LIMITED = "provider.rate_limited"
    SERVER_ERROR = "provider.server_error"
    BAD_RESPONSE = "provider.bad_response"
    UNKNOWN_ERROR = "provider.unknown_error"


def classify_error(error: BaseException) -> str:
    """Map an exception from an external call onto a ProviderErrorCategory."""
    if isinstance(error, (asyncio.TimeoutError, TimeoutError)):
        return ProviderErrorCategory.TIMEOUT

    status = getattr(error, "status", None)
    if isinstance(status, int):
        if status in (401, 403):
            return ProviderErrorCategory.AUTH_FAILED
        if status == 429:
            return ProviderErrorCategory.RATE_LIMITED
        if status >= 500:
            return ProviderErrorCategory.SERVER_ERROR
        return ProviderErrorCategory.BAD_RESPONSE

    if isinstance(error, (aiohttp.ClientConnectionError, ConnectionError, OSError)):
        return ProviderErrorCategory.NETWORK_ERROR

    error_str = str(error).lower()
    if "timeout" in error_str or "timed out" in error_str:
        return ProviderErrorCategory.TIMEOUT
    if "connection" in error_str or "network" in error_str:
        return ProviderErrorCategory.NETWORK_ERROR
    if "unauthorized" in error_str or "401" in error_str:
        return ProviderErrorCategory.AUTH_FAILED
    if "rate limit" in error_str or "429" in error_str:
        return ProviderErrorCategory.RATE_LIMITED

    return ProviderErrorCategory.UNKNOWN_ERROR


def redact_detail(error: BaseException) -> str:
    """Error text safe for logs: anything mentioning secrets is dropped."""
    detail = str(error)
    lowered = detail.lower()
    if "secret" in lowered or "password" in lowered or "key=" in lowered or "api_key" in lowered:
        return "[redacted: potential secret]"
    return detail[:300]
