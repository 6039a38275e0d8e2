"""Memory store contract and the in-process implementation.

A store is one named partition (``messages``, ``documents``,
``fragments`` ...).  Every partition shares the same contract:
append-only records, recent-first reads, and cosine-similarity search
filtered by a lower bound and capped by count.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from typing import Protocol
from typing import runtime_checkable

from agentruntime.models.memory import Memory

logger = logging.getLogger(__name__)

# Above this similarity a new memory is considered a duplicate of an old one.
DUPLICATE_SIMILARITY = 0.95


class DuplicateMemoryError(KeyError):
    """Raised when a memory id is already present in the partition."""


@runtime_checkable
class MemoryStore(Protocol):
    """Queryable, append-only store of memories for one partition."""

    table_name: str

    async def create_memory(self, memory: Memory, *, unique: bool = False) -> None: ...

    async def get_memory_by_id(self, memory_id: str) -> Memory | None: ...

    async def get_memories(
        self,
        room_id: str,
        *,
        count: int = 10,
        unique: bool = True,
        start: int | None = None,
        end: int | None = None,
    ) -> list[Memory]: ...

    async def get_memories_by_room_ids(
        self, room_ids: Sequence[str], *, limit: int | None = None
    ) -> list[Memory]: ...

    async def search_memories_by_embedding(
        self,
        embedding: Sequence[float],
        *,
        room_id: str,
        match_threshold: float = 0.1,
        count: int = 10,
        agent_id: str | None = None,
        unique: bool = False,
    ) -> list[Memory]: ...

    async def get_cached_embeddings(self, text: str) -> list[list[float]]: ...

    async def remove_memory(self, memory_id: str) -> None: ...


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors; 0.0 when undefined."""
    if len(a) != len(b) or not a:
        return 0.0
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (norm_a * norm_b)


def rank_by_similarity(
    candidates: Sequence[Memory],
    embedding: Sequence[float],
    *,
    match_threshold: float,
    count: int,
) -> list[Memory]:
    """Score, filter and order *candidates* for an embedding search.

    Ordering is similarity descending, ties broken by recency (newest
    first).  Returned memories carry their ``similarity``.
    """
    scored: list[Memory] = []
    for memory in candidates:
        vector = memory.content.embedding
        if not vector:
            continue
        score = cosine_similarity(embedding, vector)
        if score >= match_threshold:
            scored.append(memory.model_copy(update={"similarity": score}))
    scored.sort(key=lambda m: (m.similarity or 0.0, m.created_at), reverse=True)
    return scored[:count]


def filter_by_window(
    memories: Sequence[Memory], *, start: int | None, end: int | None
) -> list[Memory]:
    return [
        m
        for m in memories
        if (start is None or m.created_at >= start)
        and (end is None or m.created_at <= end)
    ]


class InMemoryMemoryStore:
    """Process-local memory partition, mainly for tests and single-node use."""

    def __init__(self, table_name: str) -> None:
        self.table_name = table_name
        self._memories: dict[str, Memory] = {}

    async def create_memory(self, memory: Memory, *, unique: bool = False) -> None:
        if memory.id in self._memories:
            raise DuplicateMemoryError(memory.id)
        is_unique = True
        if unique and memory.content.embedding:
            similar = rank_by_similarity(
                [m for m in self._memories.values() if m.room_id == memory.room_id],
                memory.content.embedding,
                match_threshold=DUPLICATE_SIMILARITY,
                count=1,
            )
            is_unique = not similar
        self._memories[memory.id] = memory.model_copy(update={"unique": is_unique})
        logger.debug("stored memory %s in %s", memory.id, self.table_name)

    async def get_memory_by_id(self, memory_id: str) -> Memory | None:
        return self._memories.get(memory_id)

    async def get_memories(
        self,
        room_id: str,
        *,
        count: int = 10,
        unique: bool = True,
        start: int | None = None,
        end: int | None = None,
    ) -> list[Memory]:
        in_room = [
            m
            for m in self._memories.values()
            if m.room_id == room_id and (m.unique or not unique)
        ]
        in_room = filter_by_window(in_room, start=start, end=end)
        in_room.sort(key=lambda m: m.created_at, reverse=True)
        return in_room[:count]

    async def get_memories_by_room_ids(
        self, room_ids: Sequence[str], *, limit: int | None = None
    ) -> list[Memory]:
        wanted = set(room_ids)
        matches = [m for m in self._memories.values() if m.room_id in wanted]
        matches.sort(key=lambda m: m.created_at, reverse=True)
        return matches if limit is None else matches[:limit]

    async def search_memories_by_embedding(
        self,
        embedding: Sequence[float],
        *,
        room_id: str,
        match_threshold: float = 0.1,
        count: int = 10,
        agent_id: str | None = None,
        unique: bool = False,
    ) -> list[Memory]:
        candidates = [
            m
            for m in self._memories.values()
            if m.room_id == room_id
            and (agent_id is None or m.agent_id == agent_id)
            and (m.unique or not unique)
        ]
        return rank_by_similarity(
            candidates, embedding, match_threshold=match_threshold, count=count
        )

    async def get_cached_embeddings(self, text: str) -> list[list[float]]:
        if not text:
            return []
        seen: list[list[float]] = []
        for memory in self._memories.values():
            vector = memory.content.embedding
            if memory.content.text == text and vector and vector not in seen:
                seen.append(list(vector))
        return seen

    async def remove_memory(self, memory_id: str) -> None:
        self._memories.pop(memory_id, None)

    def __len__(self) -> int:
        return len(self._memories)
