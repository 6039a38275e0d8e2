"""Models domain — records shared across the runtime."""

from __future__ import annotations

from agentruntime.models.character import Character
from agentruntime.models.character import DirectoryKnowledge
from agentruntime.models.character import KnowledgeSource
from agentruntime.models.character import KnowledgeSources
from agentruntime.models.character import MessageExample
from agentruntime.models.character import PathKnowledge
from agentruntime.models.character import Style
from agentruntime.models.entities import Account
from agentruntime.models.entities import Actor
from agentruntime.models.entities import ActorDetails
from agentruntime.models.entities import Goal
from agentruntime.models.entities import GoalStatus
from agentruntime.models.entities import Objective
from agentruntime.models.knowledge import knowledge_id
from agentruntime.models.knowledge import KnowledgeContent
from agentruntime.models.knowledge import KnowledgeItem
from agentruntime.models.memory import Attachment
from agentruntime.models.memory import Content
from agentruntime.models.memory import Memory
from agentruntime.models.memory import now_ms

__all__ = [
    "Account",
    "Actor",
    "ActorDetails",
    "Attachment",
    "Character",
    "Content",
    "DirectoryKnowledge",
    "Goal",
    "GoalStatus",
    "KnowledgeContent",
    "KnowledgeItem",
    "KnowledgeSource",
    "KnowledgeSources",
    "Memory",
    "MessageExample",
    "Objective",
    "PathKnowledge",
    "Style",
    "knowledge_id",
    "now_ms",
]
