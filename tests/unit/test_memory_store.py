"""Unit tests for the in-process memory partition."""

from __future__ import annotations

import math

import pytest

from agentruntime.memory import create_memory
from agentruntime.memory import DEFAULT_PARTITIONS
from agentruntime.memory import DuplicateMemoryError
from agentruntime.memory import InMemoryMemoryStore
from agentruntime.memory import MemoryStore
from agentruntime.memory.store import cosine_similarity
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
) -> Memory:
    kwargs: dict = {
        "agent_id": agent_id,
        "user_id": "user-1",
        "room_id": room_id,
        "content": Content(text=text, embedding=embedding),
        "created_at": created_at,
    }
    if id is not None:
        kwargs["id"] = id
    return Memory(**kwargs)


@pytest.fixture()
def store() -> InMemoryMemoryStore:
    return InMemoryMemoryStore("messages")


# ---------------------------------------------------------------------------
# Cosine similarity
# ---------------------------------------------------------------------------


class TestCosineSimilarity:
    def test_identical_vectors(self):
        assert cosine_similarity([1.0, 2.0], [1.0, 2.0]) == pytest.approx(1.0)

    def test_orthogonal_vectors(self):
        assert cosine_similarity([1.0, 0.0], [0.0, 1.0]) == 0.0

    def test_opposite_vectors(self):
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_zero_vector_is_zero(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 1.0]) == 0.0

    def test_length_mismatch_is_zero(self):
        assert cosine_similarity([1.0], [1.0, 0.0]) == 0.0

    def test_empty_is_zero(self):
        assert cosine_similarity([], []) == 0.0


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------


class TestCreateAndRead:
    async def test_satisfies_protocol(self, store):
        assert isinstance(store, MemoryStore)
        assert store.table_name == "messages"

    async def test_create_then_get(self, store):
        memory = _memory("stored text", id="m-1")
        await store.create_memory(memory)

        fetched = await store.get_memory_by_id("m-1")
        assert fetched is not None
        assert fetched.content.text == "stored text"

    async def test_get_missing_returns_none(self, store):
        assert await store.get_memory_by_id("absent") is None

    async def test_duplicate_id_rejected(self, store):
        await store.create_memory(_memory(id="m-1"))
        with pytest.raises(DuplicateMemoryError):
            await store.create_memory(_memory("other", id="m-1"))
        assert len(store) == 1

    async def test_remove(self, store):
        await store.create_memory(_memory(id="m-1"))
        await store.remove_memory("m-1")
        await store.remove_memory("m-1")
        assert await store.get_memory_by_id("m-1") is None


class TestGetMemories:
    async def test_recent_first_and_capped(self, store):
        for index in range(5):
            await store.create_memory(_memory(f"msg {index}", created_at=1_000 + index))

        memories = await store.get_memories("room-1", count=3)

        assert [m.content.text for m in memories] == ["msg 4", "msg 3", "msg 2"]

    async def test_scoped_to_room(self, store):
        await store.create_memory(_memory("here", room_id="room-1"))
        await store.create_memory(_memory("there", room_id="room-2"))

        memories = await store.get_memories("room-1")

        assert [m.content.text for m in memories] == ["here"]

    async def test_time_window_is_inclusive(self, store):
        for created_at in (100, 200, 300, 400):
            await store.create_memory(_memory(str(created_at), created_at=created_at))

        memories = await store.get_memories("room-1", start=200, end=300)

        assert [m.content.text for m in memories] == ["300", "200"]

    async def test_unique_filter(self, store):
        vector = [1.0, 0.0, 0.0]
        await store.create_memory(
            _memory("original", created_at=1, embedding=vector), unique=True
        )
        await store.create_memory(
            _memory("near copy", created_at=2, embedding=vector), unique=True
        )

        only_unique = await store.get_memories("room-1", unique=True)
        everything = await store.get_memories("room-1", unique=False)

        assert [m.content.text for m in only_unique] == ["original"]
        assert [m.content.text for m in everything] == ["near copy", "original"]

    async def test_by_room_ids(self, store):
        await store.create_memory(_memory("a", room_id="r1", created_at=1))
        await store.create_memory(_memory("b", room_id="r2", created_at=2))
        await store.create_memory(_memory("c", room_id="r3", created_at=3))

        memories = await store.get_memories_by_room_ids(["r1", "r2"])
        limited = await store.get_memories_by_room_ids(["r1", "r2", "r3"], limit=1)

        assert [m.content.text for m in memories] == ["b", "a"]
        assert [m.content.text for m in limited] == ["c"]


# ---------------------------------------------------------------------------
# Embedding search
# ---------------------------------------------------------------------------


class TestSearchByEmbedding:
    async def test_threshold_and_ordering(self, store):
        await store.create_memory(_memory("exact", embedding=[1.0, 0.0]))
        await store.create_memory(_memory("close", embedding=[1.0, 1.0]))
        await store.create_memory(_memory("far", embedding=[0.0, 1.0]))

        results = await store.search_memories_by_embedding(
            [1.0, 0.0], room_id="room-1", match_threshold=0.5
        )

        assert [m.content.text for m in results] == ["exact", "close"]
        assert results[0].similarity == pytest.approx(1.0)
        assert results[1].similarity == pytest.approx(1 / math.sqrt(2))

    async def test_count_caps_results(self, store):
        for index in range(4):
            await store.create_memory(_memory(f"m{index}", embedding=[1.0, 0.0]))

        results = await store.search_memories_by_embedding(
            [1.0, 0.0], room_id="room-1", count=2
        )

        assert len(results) == 2

    async def test_ties_prefer_recent(self, store):
        await store.create_memory(_memory("old", created_at=1, embedding=[1.0, 0.0]))
        await store.create_memory(_memory("new", created_at=2, embedding=[1.0, 0.0]))

        results = await store.search_memories_by_embedding(
            [1.0, 0.0], room_id="room-1", count=1
        )

        assert [m.content.text for m in results] == ["new"]

    async def test_agent_filter(self, store):
        await store.create_memory(
            _memory("mine", agent_id="agent-1", embedding=[1.0, 0.0])
        )
        await store.create_memory(
            _memory("theirs", agent_id="agent-2", embedding=[1.0, 0.0])
        )

        results = await store.search_memories_by_embedding(
            [1.0, 0.0], room_id="room-1", agent_id="agent-2"
        )

        assert [m.content.text for m in results] == ["theirs"]

    async def test_memories_without_embedding_are_ignored(self, store):
        await store.create_memory(_memory("no vector"))

        assert (
            await store.search_memories_by_embedding([1.0, 0.0], room_id="room-1")
            == []
        )

    async def test_stored_records_keep_no_similarity(self, store):
        await store.create_memory(_memory("exact", id="m-1", embedding=[1.0, 0.0]))
        await store.search_memories_by_embedding([1.0, 0.0], room_id="room-1")

        stored = await store.get_memory_by_id("m-1")
        assert stored is not None
        assert stored.similarity is None


class TestCachedEmbeddings:
    async def test_returns_vectors_for_exact_text(self, store):
        await store.create_memory(_memory("same text", embedding=[1.0, 0.0]))
        await store.create_memory(_memory("same text", embedding=[1.0, 0.0]))
        await store.create_memory(_memory("other text", embedding=[0.0, 1.0]))

        assert await store.get_cached_embeddings("same text") == [[1.0, 0.0]]

    async def test_unknown_or_empty_text(self, store):
        await store.create_memory(_memory("same text", embedding=[1.0, 0.0]))

        assert await store.get_cached_embeddings("different") == []
        assert await store.get_cached_embeddings("") == []


class TestPartitions:
    def test_default_partitions(self):
        assert set(DEFAULT_PARTITIONS) == {
            "messages",
            "descriptions",
            "lore",
            "documents",
            "fragments",
        }

    def test_create_memory_builds_a_message(self):
        memory = create_memory(
            "hi", agent_id="a", user_id="u", room_id="r", action="CONTINUE"
        )
        assert memory.id
        assert memory.content.text == "hi"
        assert memory.content.action == "CONTINUE"
        assert memory.content.attachments == []

    def test_create_memory_honours_explicit_fields(self):
        memory = create_memory(
            "hi", agent_id="a", user_id="u", room_id="r", created_at=5, memory_id="m-9"
        )
        assert memory.id == "m-9"
        assert memory.created_at == 5
