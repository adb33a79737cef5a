"""
Knowledge index: short text documents retrievable by embedding similarity.

- upsert(id, text): embed text, store {content, vector} under id (replacing any
  previous value). Failures propagate; ingestion is an explicit, retryable
  admin action.
- search(query, k): embed query, return contents of the k nearest documents
  by cosine distance (ascending), joined with blank lines. Never raises;
  any failure yields "" which callers read as "no relevant knowledge".
"""
from __future__ import annotations

import math
import struct
import time
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from redis import asyncio as aioredis
from redis.exceptions import ResponseError

from logging_setup import get_logger, Component
from .errors import classify_error, redact_detail

logger = get_logger(Component.KNOWLEDGE)

DOC_PREFIX = "doc:"
SEPARATOR = "\n\n"


class Embedder(Protocol):
    dim: int

    async def embed(self, text: str) -> List[float]:
        ...


class VectorBackend:
    """Storage for documents and KNN search over their vectors."""

    async def ensure_index(self) -> None:
        raise NotImplementedError

    async def upsert(self, doc_id: str, content: str, vector: Sequence[float]) -> None:
        raise NotImplementedError

    async def knn(self, vector: Sequence[float], k: int) -> List[str]:
        """Contents of the k nearest documents, nearest first."""
        raise NotImplementedError

    async def aclose(self) -> None:
        return None


def pack_vector(vector: Sequence[float]) -> bytes:
    """FLOAT32 little-endian blob as RediSearch expects."""
    return struct.pack(f"<{len(vector)}f", *vector)


def _to_str(value) -> str:
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


class RedisVectorBackend(VectorBackend):
    """
    RediSearch FLAT vector index over HASH keys doc:<id> with fields
    content (TEXT) and vector (FLOAT32, COSINE).
    """

    def __init__(self, client: aioredis.Redis, index_name: str, dim: int):
        self._redis = client
        self.index_name = index_name
        self.dim = dim

    @classmethod
    def from_url(cls, url: str, index_name: str, dim: int, timeout: float = 3.0) -> "RedisVectorBackend":
        # Binary-safe client: vectors are raw bytes
        client = aioredis.from_url(
            url,
            socket_timeout=timeout,
            socket_connect_timeout=timeout,
            decode_responses=False,
        )
        return cls(client, index_name, dim)

    async def ensure_index(self) -> None:
        try:
            await self._redis.execute_command(
                "FT.CREATE", self.index_name,
                "ON", "HASH",
                "PREFIX", "1", DOC_PREFIX,
                "SCHEMA",
                "content", "TEXT",
                "vector", "VECTOR", "FLAT", "6",
                "TYPE", "FLOAT32",
                "DIM", str(self.dim),
                "DISTANCE_METRIC", "COSINE",
            )
            logger.info("Vector index created", index=self.index_name, dim=self.dim)
        except ResponseError as e:
            if "already exists" in str(e).lower():
                logger.info("Vector index already exists", index=self.index_name)
                return
            raise

    async def upsert(self, doc_id: str, content: str, vector: Sequence[float]) -> None:
        await self._redis.hset(
            f"{DOC_PREFIX}{doc_id}",
            mapping={"content": content, "vector": pack_vector(vector)},
        )

    async def knn(self, vector: Sequence[float], k: int) -> List[str]:
        reply = await self._redis.execute_command(
            "FT.SEARCH", self.index_name,
            f"*=>[KNN {int(k)} @vector $BLOB AS score]",
            "PARAMS", "2", "BLOB", pack_vector(vector),
            "SORTBY", "score", "ASC",
            "RETURN", "2", "content", "score",
            "DIALECT", "2",
        )
        return parse_search_reply(reply)

    async def aclose(self) -> None:
        await self._redis.aclose()


def parse_search_reply(reply) -> List[str]:
    """
    Extract content fields from a RESP2 FT.SEARCH reply:
        [total, key1, [field, value, ...], key2, [field, value, ...], ...]
    """
    contents: List[str] = []
    if not isinstance(reply, (list, tuple)) or len(reply) < 3:
        return contents
    for fields in reply[2::2]:
        if not isinstance(fields, (list, tuple)):
            continue
        names = [_to_str(f) for f in fields[::2]]
        if "content" in names:
            contents.append(_to_str(fields[2 * names.index("content") + 1]))
    return contents


def cosine_distance(a: Sequence[float], b: Sequence[float]) -> float:
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 1.0
    return 1.0 - dot / (norm_a * norm_b)


class InMemoryVectorBackend(VectorBackend):
    """Brute-force cosine KNN in process memory (local development, tests)."""

    def __init__(self, dim: int):
        self.dim = dim
        self._docs: Dict[str, Tuple[str, List[float]]] = {}

    async def ensure_index(self) -> None:
        return None

    async def upsert(self, doc_id: str, content: str, vector: Sequence[float]) -> None:
        if len(vector) != self.dim:
            raise ValueError(f"expected {self.dim} dimensions, got {len(vector)}")
        self._docs[doc_id] = (content, list(vector))

    async def knn(self, vector: Sequence[float], k: int) -> List[str]:
        ranked = sorted(
            self._docs.values(),
            key=lambda doc: cosine_distance(vector, doc[1]),
        )
        return [content for content, _ in ranked[:k]]

    def __len__(self) -> int:
        return len(self._docs)


class KnowledgeIndex:
    def __init__(self, embedder: Embedder, backend: VectorBackend, default_k: int = 2):
        self._embedder = embedder
        self._backend = backend
        self.default_k = default_k

    async def ensure_index(self) -> None:
        """Create the index if missing ("already exists" is not an error)."""
        await self._backend.ensure_index()

    async def upsert(self, doc_id: str, text: str) -> None:
        if not doc_id or not text:
            raise ValueError("document id and text are required")
        vector = await self._embedder.embed(text)
        await self._backend.upsert(doc_id, text, vector)
        logger.info("Document saved", doc_id=doc_id, text_length=len(text))

    async def search(self, query: str, k: Optional[int] = None) -> str:
        if not query or not query.strip():
            return ""
        k = self.default_k if k is None else k
        if k <= 0:
            return ""
        t_start = time.perf_counter()
        try:
            vector = await self._embedder.embed(query)
            contents = await self._backend.knn(vector, k)
        except Exception as e:
            logger.warning(
                "Knowledge search failed; continuing without context",
                category=classify_error(e),
                error=redact_detail(e),
                error_type=type(e).__name__,
            )
            return ""

        context = SEPARATOR.join(c.strip() for c in contents if c and c.strip())
        logger.debug(
            "Knowledge search completed",
            hits=len(contents),
            latency_ms=int((time.perf_counter() - t_start) * 1000),
        )
        return context

    async def aclose(self) -> None:
        await self._backend.aclose()
