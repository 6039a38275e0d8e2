"""Memory domain — partitioned memory stores and record factory."""

from __future__ import annotations

import uuid

from agentruntime.memory.redis_store import RedisMemoryStore
from agentruntime.memory.store import cosine_similarity
from agentruntime.memory.store import DuplicateMemoryError
from agentruntime.memory.store import InMemoryMemoryStore
from agentruntime.memory.store import MemoryStore
from agentruntime.models.memory import Attachment
from agentruntime.models.memory import Content
from agentruntime.models.memory import Memory

# Partitions every runtime creates.
MESSAGES = "messages"
DESCRIPTIONS = "descriptions"
LORE = "lore"
DOCUMENTS = "documents"
FRAGMENTS = "fragments"
DEFAULT_PARTITIONS = (MESSAGES, DESCRIPTIONS, LORE, DOCUMENTS, FRAGMENTS)

__all__ = [
    "DEFAULT_PARTITIONS",
    "DESCRIPTIONS",
    "DOCUMENTS",
    "DuplicateMemoryError",
    "FRAGMENTS",
    "InMemoryMemoryStore",
    "LORE",
    "MESSAGES",
    "Memory",
    "MemoryStore",
    "RedisMemoryStore",
    "cosine_similarity",
    "create_memory",
]


def create_memory(
    text: str,
    *,
    agent_id: str,
    user_id: str,
    room_id: str,
    action: str | None = None,
    attachments: list[Attachment] | None = None,
    created_at: int | None = None,
    memory_id: str | None = None,
) -> Memory:
    """Factory for a message memory with a fresh id and current timestamp."""
    fields: dict = {
        "id": memory_id or str(uuid.uuid4()),
        "agent_id": agent_id,
        "user_id": user_id,
        "room_id": room_id,
        "content": Content(text=text, action=action, attachments=attachments or []),
    }
    if created_at is not None:
        fields["created_at"] = created_at
    return Memory(**fields)
