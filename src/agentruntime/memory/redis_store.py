"""Redis-backed memory partition.

Memories are JSON strings keyed by ``agentruntime:{table}:memory:{id}``.
A sorted set ``agentruntime:{table}:room:{room_id}`` orders each room's
memories by ``created_at``.  Sets ``agentruntime:{table}:text:{sha}``
index memories that carry an embedding by the hash of their exact text,
which backs the embedding cache.  Similarity is computed client-side.
"""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Sequence

from redis.asyncio import Redis  # type: ignore[import-untyped]

from agentruntime.memory.store import DUPLICATE_SIMILARITY
from agentruntime.memory.store import DuplicateMemoryError
from agentruntime.memory.store import filter_by_window
from agentruntime.memory.store import rank_by_similarity
from agentruntime.models.memory import Memory

logger = logging.getLogger(__name__)

_PREFIX = "agentruntime"
_CLEAR_BATCH_SIZE = 100


def _text_digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def _decode(raw: bytes | str) -> str:
    return raw.decode() if isinstance(raw, bytes) else raw


class RedisMemoryStore:
    """One named memory partition stored in Redis."""

    def __init__(self, redis: Redis, table_name: str) -> None:
        self._redis = redis
        self.table_name = table_name
        self._base = f"{_PREFIX}:{table_name}"

    # -- keys --

    def _memory_key(self, memory_id: str) -> str:
        return f"{self._base}:memory:{memory_id}"

    def _room_key(self, room_id: str) -> str:
        return f"{self._base}:room:{room_id}"

    def _text_key(self, text: str) -> str:
        return f"{self._base}:text:{_text_digest(text)}"

    # -- write --

    async def create_memory(self, memory: Memory, *, unique: bool = False) -> None:
        """Persist *memory*; raises ``DuplicateMemoryError`` on id reuse."""
        is_unique = True
        if unique and memory.content.embedding:
            similar = await self.search_memories_by_embedding(
                memory.content.embedding,
                room_id=memory.room_id,
                match_threshold=DUPLICATE_SIMILARITY,
                count=1,
            )
            is_unique = not similar

        stored = memory.model_copy(update={"unique": is_unique, "similarity": None})
        created = await self._redis.set(
            self._memory_key(memory.id), stored.model_dump_json(), nx=True
        )
        if not created:
            raise DuplicateMemoryError(memory.id)

        pipe = self._redis.pipeline()
        pipe.zadd(self._room_key(memory.room_id), {memory.id: memory.created_at})
        if memory.content.embedding and memory.content.text:
            pipe.sadd(self._text_key(memory.content.text), memory.id)
        await pipe.execute()

    async def remove_memory(self, memory_id: str) -> None:
        memory = await self.get_memory_by_id(memory_id)
        if memory is None:
            return
        pipe = self._redis.pipeline()
        pipe.delete(self._memory_key(memory_id))
        pipe.zrem(self._room_key(memory.room_id), memory_id)
        if memory.content.text:
            pipe.srem(self._text_key(memory.content.text), memory_id)
        await pipe.execute()

    # -- read --

    async def get_memory_by_id(self, memory_id: str) -> Memory | None:
        data = await self._redis.get(self._memory_key(memory_id))
        if data is None:
            return None
        return Memory.model_validate_json(data)

    async def _fetch(self, memory_ids: Sequence[str]) -> list[Memory]:
        """Batch-fetch memories via one pipeline, dropping missing ids."""
        if not memory_ids:
            return []
        pipe = self._redis.pipeline()
        for memory_id in memory_ids:
            pipe.get(self._memory_key(memory_id))
        raw_results = await pipe.execute()
        return [
            Memory.model_validate_json(raw) for raw in raw_results if raw is not None
        ]

    async def _room_ids(self, room_id: str, *, limit: int | None = None) -> list[str]:
        stop = -1 if limit is None else limit - 1
        raw_ids = await self._redis.zrevrange(self._room_key(room_id), 0, stop)
        return [_decode(raw) for raw in raw_ids]

    async def get_memories(
        self,
        room_id: str,
        *,
        count: int = 10,
        unique: bool = True,
        start: int | None = None,
        end: int | None = None,
    ) -> list[Memory]:
        """Most recent memories of a room, newest first."""
        # Filtering may discard entries, so read the whole room when filtering.
        needs_filter = unique or start is not None or end is not None
        ids = await self._room_ids(room_id, limit=None if needs_filter else count)
        memories = await self._fetch(ids)
        if unique:
            memories = [m for m in memories if m.unique]
        memories = filter_by_window(memories, start=start, end=end)
        return memories[:count]

    async def get_memories_by_room_ids(
        self, room_ids: Sequence[str], *, limit: int | None = None
    ) -> list[Memory]:
        memories: list[Memory] = []
        for room_id in room_ids:
            memories.extend(await self._fetch(await self._room_ids(room_id, limit=limit)))
        memories.sort(key=lambda m: m.created_at, reverse=True)
        return memories if limit is None else memories[:limit]

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
        candidates = await self._fetch(await self._room_ids(room_id))
        candidates = [
            m
            for m in candidates
            if (agent_id is None or m.agent_id == agent_id) and (m.unique or not unique)
        ]
        return rank_by_similarity(
            candidates, embedding, match_threshold=match_threshold, count=count
        )

    async def get_cached_embeddings(self, text: str) -> list[list[float]]:
        if not text:
            return []
        members = await self._redis.smembers(self._text_key(text))
        vectors: list[list[float]] = []
        for memory in await self._fetch([_decode(m) for m in members]):
            vector = memory.content.embedding
            if memory.content.text == text and vector and vector not in vectors:
                vectors.append(list(vector))
        return vectors

    async def clear(self) -> None:
        """Remove every key of this partition, in batches."""
        batch: list = []
        async for key in self._redis.scan_iter(match=f"{self._base}:*"):
            batch.append(key)
            if len(batch) >= _CLEAR_BATCH_SIZE:
                await self._redis.delete(*batch)
                batch.clear()
        if batch:
            await self._redis.delete(*batch)
