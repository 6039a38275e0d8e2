"""Long-term knowledge records."""

from __future__ import annotations

import uuid
from typing import Any
from typing import Literal

from pydantic import BaseModel
from pydantic import Field

from agentruntime.models.memory import now_ms

# Fixed namespace so identical text always derives the same id.
KNOWLEDGE_NAMESPACE = uuid.UUID("8d6f1c8e-4b0a-5d2e-9a47-3f1e2c6b7a90")


def knowledge_id(text: str) -> str:
    """Content-addressed id for *text* (UUIDv5)."""
    return str(uuid.uuid5(KNOWLEDGE_NAMESPACE, text))


class KnowledgeContent(BaseModel):
    """Text and provenance of a knowledge item."""

    model_config = {"frozen": True}

    text: str = ""
    embedding: list[float] | None = None
    source: str | None = Field(
        default=None,
        description="Path, URL or ``inline``; used to load text lazily.",
    )
    type: Literal["static", "rag"] = "static"
    metadata: dict[str, Any] | None = None


class KnowledgeItem(BaseModel):
    """A stored, embeddable unit of reference text."""

    model_config = {"frozen": True}

    id: str = ""
    agent_id: str
    content: KnowledgeContent = Field(default_factory=KnowledgeContent)
    created_at: int = Field(default_factory=now_ms)
    similarity: float | None = None
