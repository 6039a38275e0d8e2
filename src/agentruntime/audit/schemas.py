"""Audit event types and data models."""

from __future__ import annotations

import time
from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic import Field


class AuditEventType(str, Enum):
    """Categories of auditable runtime events."""

    STATE_COMPOSED = "STATE_COMPOSED"
    KNOWLEDGE_INGESTED = "KNOWLEDGE_INGESTED"
    KNOWLEDGE_SKIPPED = "KNOWLEDGE_SKIPPED"
    ACTION_EXECUTED = "ACTION_EXECUTED"
    ACTION_FAILED = "ACTION_FAILED"
    ACTION_UNRESOLVED = "ACTION_UNRESOLVED"
    EVALUATOR_EXECUTED = "EVALUATOR_EXECUTED"
    EVALUATOR_FAILED = "EVALUATOR_FAILED"


class AuditEvent(BaseModel):
    """A single immutable audit log entry."""

    model_config = {"frozen": True}

    timestamp: float = Field(
        default_factory=time.time,
        description="Unix epoch when the event occurred.",
    )
    event_type: AuditEventType = Field(
        description="Category of the audited event.",
    )
    agent_id: str | None = Field(
        default=None,
        description="Agent whose runtime produced the event.",
    )
    room_id: str | None = Field(
        default=None,
        description="Conversation scope the event belongs to, if any.",
    )
    payload: dict[str, Any] = Field(
        default_factory=dict,
        description="Event-specific data.",
    )
