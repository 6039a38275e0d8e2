"""Static character definition loaded at startup."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel
from pydantic import Field

from agentruntime.models.memory import Content


class MessageExample(BaseModel):
    """One line of an example conversation (``user`` may be ``{{user1}}``)."""

    user: str
    content: Content


class Style(BaseModel):
    all: list[str] = Field(default_factory=list)
    chat: list[str] = Field(default_factory=list)
    post: list[str] = Field(default_factory=list)


class PathKnowledge(BaseModel):
    """A single file under the knowledge root."""

    path: str
    shared: bool = False


class DirectoryKnowledge(BaseModel):
    """A directory under the knowledge root, expanded to matching files."""

    directory: str
    shared: bool = False


class KnowledgeSource(BaseModel):
    """A declared source: either a path (relative to cwd) or inline content."""

    path: str | None = None
    content: str | None = None
    metadata: dict[str, Any] | None = None


class KnowledgeSources(BaseModel):
    sources: list[KnowledgeSource] = Field(default_factory=list)


class Character(BaseModel):
    """Persona, style and knowledge declarations for one agent."""

    id: str | None = None
    name: str
    username: str | None = None
    email: str | None = None
    bio: str | list[str] = ""
    lore: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    adjectives: list[str] = Field(default_factory=list)
    message_examples: list[list[MessageExample]] = Field(default_factory=list)
    post_examples: list[str] = Field(default_factory=list)
    style: Style = Field(default_factory=Style)
    knowledge: list[str | PathKnowledge | DirectoryKnowledge] | KnowledgeSources | None = None
    settings: dict[str, Any] = Field(default_factory=dict)
    templates: dict[str, str] = Field(default_factory=dict)

    @property
    def secrets(self) -> dict[str, Any]:
        secrets = self.settings.get("secrets")
        return dict(secrets) if isinstance(secrets, dict) else {}
