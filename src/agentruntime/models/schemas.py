"""Input and output models for the MCP tools."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel
from pydantic import Field
from pydantic import model_validator

# ---------------------------------------------------------------------------
# add_knowledge
# ---------------------------------------------------------------------------


class AddKnowledgeInput(BaseModel):
    """Input for add_knowledge tool."""

    text: str | None = Field(
        default=None,
        description="Knowledge text to ingest.",
    )
    source: str | None = Field(
        default=None,
        description="Path or URL to load the text from when ``text`` is empty.",
    )
    metadata: dict[str, Any] | None = Field(
        default=None,
        description="Free-form metadata stored with the item.",
    )

    @model_validator(mode="after")
    def _text_or_source(self) -> AddKnowledgeInput:
        if not (self.text and self.text.strip()) and not self.source:
            raise ValueError("Either text or source must be provided")
        return self


class AddKnowledgeResult(BaseModel):
    """Response from add_knowledge."""

    knowledge_id: str = Field(
        description="Deterministic id of the ingested item.",
    )
    status: str = Field(
        default="accepted",
        description="Ingestion status (accepted, duplicate, rejected).",
    )
    error_code: str | None = Field(
        default=None,
        description="Machine-readable reason when rejected.",
    )
    message: str | None = Field(
        default=None,
        description="Human-readable reason when rejected.",
    )


# ---------------------------------------------------------------------------
# search_knowledge
# ---------------------------------------------------------------------------


class SearchKnowledgeInput(BaseModel):
    """Input for search_knowledge tool."""

    query: str = Field(
        description="Natural language query.",
    )
    match_threshold: float = Field(
        default=0.1,
        ge=-1.0,
        le=1.0,
        description="Minimum cosine similarity of returned fragments.",
    )
    count: int = Field(
        default=5,
        ge=1,
        le=100,
        description="Maximum number of fragments returned.",
    )


class KnowledgeHit(BaseModel):
    """One retrieved knowledge fragment."""

    id: str = Field(description="Fragment id.")
    text: str = Field(description="Fragment text.")
    source: str | None = Field(default=None, description="Origin of the item.")
    similarity: float | None = Field(
        default=None,
        description="Cosine similarity to the query.",
    )


class SearchKnowledgeResult(BaseModel):
    """Response from search_knowledge."""

    query: str = Field(description="Original search query.")
    items: list[KnowledgeHit] = Field(default_factory=list)
    status: str = Field(
        default="ok",
        description="Query status (ok, error).",
    )
    error_code: str | None = Field(default=None)
    message: str | None = Field(default=None)
