"""
Text embeddings via the Google Generative Language REST API (API key auth).

Output: fixed-dimension float vector (768 for text-embedding-004).
"""
from __future__ import annotations

import time
from typing import List

from logging_setup import get_logger, Component
from .errors import ProviderError
from .http_pool import HttpPool, timeout

logger = get_logger(Component.EMBEDDINGS)

EMBED_URL = "https://generativelanguage.googleapis.com/v1beta/models/{model}:embedContent"


class GoogleEmbeddingClient:
    def __init__(
        self,
        *,
        pool: HttpPool,
        api_key: str,
        model: str = "text-embedding-004",
        dim: int = 768,
        timeout_seconds: float = 5.0,
    ):
        if not api_key:
            raise ValueError("Google embeddings require GOOGLE_API_KEY")
        self._pool = pool
        self._api_key = api_key
        self._model = model
        self.dim = dim
        self._timeout = timeout_seconds

    async def embed(self, text: str) -> List[float]:
        url = EMBED_URL.format(model=self._model)
        payload = {
            "model": f"models/{self._model}",
            "content": {"parts": [{"text": text}]},
        }
        t_start = time.perf_counter()
        session = self._pool.session()
        async with session.post(
            url,
            params={"key": self._api_key},
            json=payload,
            timeout=timeout(self._timeout),
        ) as response:
            if response.status != 200:
                error_text = await response.text()
                raise ProviderError("google_embeddings", response.status, error_text[:200])
            data = await response.json()

        values = (data.get("embedding") or {}).get("values")
        if not values:
            raise ProviderError("google_embeddings", 200, "no embedding values in response")
        if len(values) != self.dim:
            raise ProviderError(
                "google_embeddings", 200, f"expected {self.dim} dimensions, got {len(values)}"
            )

        logger.debug(
            "Embedding computed",
            text_length=len(text),
            latency_ms=int((time.perf_counter() - t_start) * 1000),
        )
        return [float(v) for v in values]
