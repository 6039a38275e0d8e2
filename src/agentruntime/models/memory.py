"""Conversational memory records."""

from __future__ import annotations

import time
import uuid
from typing import Any

from pydantic import BaseModel
from pydantic import Field


def now_ms() -> int:
    """Current Unix time in milliseconds."""
    return int(time.time() * 1000)


class Attachment(BaseModel):
    """Media or document attached to a message."""

    model_config = {"frozen": True}

    id: str
    url: str = ""
    title: str = ""
    source: str = ""
    description: str = ""
    text: str = ""


class Content(BaseModel):
    """Payload of a memory."""

    model_config = {"frozen": True}

    text: str = Field(default="", description="Plain message text.")
    action: str | None = Field(
        default=None,
        description="Free-text action label proposed by the model, if any.",
    )
    attachments: list[Attachment] = Field(default_factory=list)
    embedding: list[float] | None = Field(
        default=None,
        description="Lazily computed embedding of ``text``.",
    )
    source: str | None = Field(default=None, description="Origin platform or file.")
    type: str | None = Field(default=None, description="Knowledge type of documents.")
    metadata: dict[str, Any] | None = Field(default=None)
    in_reply_to: str | None = Field(default=None)


class Memory(BaseModel):
    """An immutable, timestamped conversational record scoped to a room."""

    model_config = {"frozen": True}

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    agent_id: str
    user_id: str
    room_id: str
    content: Content = Field(default_factory=Content)
    created_at: int = Field(
        default_factory=now_ms,
        description="Unix epoch milliseconds.",
    )
    unique: bool = Field(
        default=True,
        description="False when the text duplicates an existing memory.",
    )
    similarity: float | None = Field(
        default=None,
        description="Cosine similarity, populated by embedding searches only.",
    )
