"""Relational entities owned by the external store."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel
from pydantic import Field


class Account(BaseModel):
    id: str
    name: str
    username: str
    email: str | None = None
    details: dict[str, Any] = Field(default_factory=dict)


class ActorDetails(BaseModel):
    tagline: str = ""
    summary: str = ""
    quote: str = ""


class Actor(BaseModel):
    """A room participant as seen by prompt formatting."""

    id: str
    name: str
    username: str = ""
    details: ActorDetails = Field(default_factory=ActorDetails)


class GoalStatus(str, Enum):
    DONE = "DONE"
    FAILED = "FAILED"
    IN_PROGRESS = "IN_PROGRESS"


class Objective(BaseModel):
    id: str | None = None
    description: str
    completed: bool = False


class Goal(BaseModel):
    id: str | None = None
    room_id: str
    user_id: str
    name: str
    status: GoalStatus = GoalStatus.IN_PROGRESS
    objectives: list[Objective] = Field(default_factory=list)
