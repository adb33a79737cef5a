"""
Tests for the knowledge index.

Verifies:
- Empty index and empty query give ""
- Upserted documents are retrievable, nearest first
- Search never raises; upsert failures propagate
- RediSearch reply parsing and command layout
"""
import pytest
from redis.exceptions import ResponseError

from conftest import EMBED_DIM, FakeEmbedder
from trip_pipeline.knowledge import (
    InMemoryVectorBackend,
    KnowledgeIndex,
    RedisVectorBackend,
    cosine_distance,
    pack_vector,
    parse_search_reply,
)


@pytest.mark.asyncio
async def test_empty_index_returns_empty_context(knowledge):
    assert await knowledge.search("How much is an SUV?") == ""


@pytest.mark.asyncio
async def test_empty_query_skips_embedding(knowledge, embedder):
    await knowledge.upsert("pricing_suv", "SUV costs 18rs/km.")
    embedder.calls.clear()

    assert await knowledge.search("   ") == ""
    assert embedder.calls == []


@pytest.mark.asyncio
async def test_upserted_document_is_found(knowledge):
    await knowledge.upsert("pricing_suv", "SUV costs 18rs/km.")

    context = await knowledge.search("What does an SUV cost?")

    assert "SUV costs 18rs/km." in context


@pytest.mark.asyncio
async def test_search_returns_at_most_k_joined(knowledge):
    await knowledge.upsert("pricing_suv", "SUV costs 18rs/km.")
    await knowledge.upsert("pricing_sedan", "Sedan costs 12rs/km.")
    await knowledge.upsert("pets", "Pets are allowed in SUVs only.")

    context = await knowledge.search("SUV costs", k=2)

    parts = context.split("\n\n")
    assert len(parts) == 2
    assert parts[0] == "SUV costs 18rs/km."


@pytest.mark.asyncio
async def test_explicit_k_is_respected(knowledge, embedder):
    await knowledge.upsert("pricing_suv", "SUV costs 18rs/km.")
    await knowledge.upsert("pricing_sedan", "Sedan costs 12rs/km.")
    embedder.calls.clear()

    assert await knowledge.search("SUV price", k=0) == ""
    assert embedder.calls == []
    assert knowledge.default_k == 2
    assert "\n\n" not in await knowledge.search("SUV price", k=1)


@pytest.mark.asyncio
async def test_upsert_replaces_previous_text(knowledge):
    await knowledge.upsert("pricing_suv", "SUV costs 18rs/km.")
    await knowledge.upsert("pricing_suv", "SUV costs 20rs/km.")

    context = await knowledge.search("SUV costs", k=5)

    assert "20rs/km" in context
    assert "18rs/km" not in context


@pytest.mark.asyncio
async def test_search_failure_degrades_to_empty(knowledge, embedder):
    await knowledge.upsert("pricing_suv", "SUV costs 18rs/km.")
    embedder.fail = True

    assert await knowledge.search("SUV costs") == ""


@pytest.mark.asyncio
async def test_upsert_failure_propagates():
    index = KnowledgeIndex(FakeEmbedder(fail=True), InMemoryVectorBackend(dim=EMBED_DIM))

    with pytest.raises(ConnectionError):
        await index.upsert("pricing_suv", "SUV costs 18rs/km.")


@pytest.mark.asyncio
async def test_upsert_requires_id_and_text(knowledge):
    with pytest.raises(ValueError):
        await knowledge.upsert("", "text")
    with pytest.raises(ValueError):
        await knowledge.upsert("id", "")


def test_cosine_distance():
    assert cosine_distance([1.0, 0.0], [1.0, 0.0]) == pytest.approx(0.0)
    assert cosine_distance([1.0, 0.0], [0.0, 1.0]) == pytest.approx(1.0)
    assert cosine_distance([0.0, 0.0], [1.0, 0.0]) == 1.0


def test_pack_vector_is_float32_little_endian():
    assert pack_vector([1.0, 2.0]) == b"\x00\x00\x80?\x00\x00\x00@"


def test_parse_search_reply():
    reply = [
        2,
        b"doc:pricing_suv", [b"content", b"SUV costs 18rs/km.", b"score", b"0.1"],
        b"doc:pricing_sedan", [b"score", b"0.4", b"content", b"Sedan costs 12rs/km."],
    ]
    assert parse_search_reply(reply) == ["SUV costs 18rs/km.", "Sedan costs 12rs/km."]


def test_parse_search_reply_no_hits():
    assert parse_search_reply([0]) == []
    assert parse_search_reply(None) == []


class RecordingRedis:
    def __init__(self, create_error=None, search_reply=None):
        self.commands = []
        self.hashes = {}
        self.create_error = create_error
        self.search_reply = search_reply or [0]

    async def execute_command(self, *args):
        self.commands.append(args)
        if args[0] == "FT.CREATE" and self.create_error:
            raise self.create_error
        if args[0] == "FT.SEARCH":
            return self.search_reply
        return b"OK"

    async def hset(self, key, mapping):
        self.hashes[key] = mapping
        return len(mapping)


@pytest.mark.asyncio
async def test_redis_index_already_exists_is_tolerated():
    client = RecordingRedis(create_error=ResponseError("Index already exists"))
    backend = RedisVectorBackend(client, "idx:knowledge", dim=768)

    await backend.ensure_index()

    create = client.commands[0]
    assert create[:2] == ("FT.CREATE", "idx:knowledge")
    assert "768" in create
    assert "COSINE" in create


@pytest.mark.asyncio
async def test_redis_index_other_errors_propagate():
    client = RecordingRedis(create_error=ResponseError("unknown command 'FT.CREATE'"))

    with pytest.raises(ResponseError):
        await RedisVectorBackend(client, "idx:knowledge", dim=768).ensure_index()


@pytest.mark.asyncio
async def test_redis_upsert_and_knn_commands():
    client = RecordingRedis(search_reply=[1, b"doc:a", [b"content", b"A", b"score", b"0"]])
    backend = RedisVectorBackend(client, "idx:knowledge", dim=2)

    await backend.upsert("a", "A", [0.5, 0.5])
    hits = await backend.knn([0.5, 0.5], 2)

    assert client.hashes["doc:a"] == {"content": "A", "vector": pack_vector([0.5, 0.5])}
    search = client.commands[-1]
    assert search[0] == "FT.SEARCH"
    assert "*=>[KNN 2 @vector $BLOB AS score]" in search
    assert hits == ["A"]


@pytest.mark.asyncio
async def test_suv_price_scenario(knowledge):
    assert await knowledge.search("suv price", 2) == ""

    await knowledge.upsert("pricing_suv", "SUV costs 18rs/km.")

    assert "SUV costs 18rs/km." in await knowledge.search("suv price", 2)
