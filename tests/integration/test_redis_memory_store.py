"""Redis memory partition against a real Redis container."""

from __future__ import annotations

import pytest

from agentruntime.memory import DuplicateMemoryError
from agentruntime.memory import MemoryStore
from agentruntime.memory import RedisMemoryStore
from agentruntime.models import Attachment
from agentruntime.models import Content
from agentruntime.models import Memory

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _memory(
    text: str = "hello",
    *,
    id: str | None = None,
    room_id: str = "room-1",
    agent_id: str = "agent-1",
    created_at: int = 1_000,
    embedding: list[float] | None = None,
    **content,
) -> Memory:
    kwargs: dict = {
        "agent_id": agent_id,
        "user_id": "user-1",
        "room_id": room_id,
        "content": Content(text=text, embedding=embedding, **content),
        "created_at": created_at,
    }
    if id is not None:
        kwargs["id"] = id
    return Memory(**kwargs)


@pytest.fixture()
def store(redis_client) -> RedisMemoryStore:
    return RedisMemoryStore(redis_client, "messages")


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


class TestRedisCreateAndRead:
    async def test_satisfies_protocol(self, store):
        assert isinstance(store, MemoryStore)

    async def test_round_trips_nested_content(self, store):
        memory = _memory(
            "see attachment",
            id="m-1",
            embedding=[0.25, 0.75],
            attachments=[Attachment(id="a1", title="Plan", text="steps")],
            metadata={"chunk_index": 2},
        )
        await store.create_memory(memory)

        fetched = await store.get_memory_by_id("m-1")

        assert fetched == memory

    async def test_duplicate_id_rejected(self, store):
        await store.create_memory(_memory(id="m-1"))
        with pytest.raises(DuplicateMemoryError):
            await store.create_memory(_memory("again", id="m-1"))

    async def test_remove(self, store):
        await store.create_memory(_memory("gone", id="m-1", embedding=[1.0]))
        await store.remove_memory("m-1")

        assert await store.get_memory_by_id("m-1") is None
        assert await store.get_memories("room-1") == []
        assert await store.get_cached_embeddings("gone") == []

    async def test_partitions_are_isolated(self, redis_client, store):
        lore = RedisMemoryStore(redis_client, "lore")
        await store.create_memory(_memory(id="m-1"))

        assert await lore.get_memory_by_id("m-1") is None


class TestRedisGetMemories:
    async def test_recent_first_and_capped(self, store):
        for index in range(5):
            await store.create_memory(_memory(f"msg {index}", created_at=1_000 + index))

        memories = await store.get_memories("room-1", count=3, unique=False)

        assert [m.content.text for m in memories] == ["msg 4", "msg 3", "msg 2"]

    async def test_unique_and_window(self, store):
        vector = [1.0, 0.0]
        await store.create_memory(
            _memory("a", created_at=100, embedding=vector), unique=True
        )
        await store.create_memory(
            _memory("a again", created_at=200, embedding=vector), unique=True
        )
        await store.create_memory(_memory("b", created_at=300))

        unique = await store.get_memories("room-1")
        window = await store.get_memories("room-1", unique=False, start=150, end=300)

        assert [m.content.text for m in unique] == ["b", "a"]
        assert [m.content.text for m in window] == ["b", "a again"]

    async def test_by_room_ids(self, store):
        await store.create_memory(_memory("r1", room_id="r1", created_at=1))
        await store.create_memory(_memory("r2", room_id="r2", created_at=2))
        await store.create_memory(_memory("r3", room_id="r3", created_at=3))

        memories = await store.get_memories_by_room_ids(["r1", "r3"])

        assert [m.content.text for m in memories] == ["r3", "r1"]


class TestRedisSearch:
    async def test_threshold_count_and_agent_filter(self, store):
        await store.create_memory(_memory("exact", embedding=[1.0, 0.0], created_at=1))
        await store.create_memory(_memory("close", embedding=[1.0, 1.0], created_at=2))
        await store.create_memory(_memory("far", embedding=[0.0, 1.0], created_at=3))
        await store.create_memory(
            _memory("other agent", embedding=[1.0, 0.0], agent_id="agent-2")
        )

        results = await store.search_memories_by_embedding(
            [1.0, 0.0], room_id="room-1", match_threshold=0.5, agent_id="agent-1"
        )
        capped = await store.search_memories_by_embedding(
            [1.0, 0.0], room_id="room-1", count=1
        )

        assert [m.content.text for m in results] == ["exact", "close"]
        assert results[0].similarity == pytest.approx(1.0)
        assert len(capped) == 1

    async def test_cached_embeddings_by_exact_text(self, store):
        await store.create_memory(_memory("same", embedding=[0.5, 0.5]))
        await store.create_memory(_memory("same", embedding=[0.5, 0.5]))
        await store.create_memory(_memory("same"))

        assert await store.get_cached_embeddings("same") == [[0.5, 0.5]]
        assert await store.get_cached_embeddings("unknown") == []


class TestRedisClear:
    async def test_clear_only_touches_own_partition(self, redis_client, store):
        lore = RedisMemoryStore(redis_client, "lore")
        for index in range(150):
            await store.create_memory(_memory(f"m{index}", created_at=index))
        await lore.create_memory(_memory("kept", id="lore-1"))

        await store.clear()

        assert await store.get_memories("room-1", unique=False) == []
        assert await lore.get_memory_by_id("lore-1") is not None
