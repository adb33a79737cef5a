"""
Shared aiohttp session for provider REST calls.

One pooled ClientSession per process, created on first use and reused so
that every turn does not pay TCP/TLS setup for STT, LLM, embeddings, TTS
and booking. Individual calls pass their own ClientTimeout.
"""
from __future__ import annotations

import os
from typing import Optional

import aiohttp

from logging_setup import get_logger, Component

logger = get_logger(Component.ORCHESTRATOR)


class HttpPool:
    def __init__(self, pool_size: Optional[int] = None):
        self._pool_size = pool_size or int(os.getenv("HTTP_CONNECTION_POOL_SIZE", "20"))
        self._session: Optional[aiohttp.ClientSession] = None

    def session(self) -> aiohttp.ClientSession:
        """Get or create the shared session."""
        if self._session is None or self._session.closed:
            connector = aiohttp.TCPConnector(
                limit=self._pool_size,
                ttl_dns_cache=300,
                force_close=False,
            )
            self._session = aiohttp.ClientSession(connector=connector)
            logger.info("HTTP connection pool created", pool_size=self._pool_size)
        return self._session

    async def aclose(self) -> None:
        """Close the pooled session. Safe to call multiple times."""
        if self._session is not None:
            try:
                await self._session.close()
                logger.info("HTTP connection pool closed")
            except Exception as e:
                logger.warning(
                    "Error closing HTTP session",
                    error=str(e),
                    error_type=type(e).__name__,
                )
            finally:
                self._session = None


def timeout(total: float) -> aiohttp.ClientTimeout:
    return aiohttp.ClientTimeout(total=total, connect=min(total, 3.0))
