"""Audit subsystem — append-only JSONL record of turn side effects."""

from agentruntime.audit.schemas import AuditEvent
from agentruntime.audit.schemas import AuditEventType
from agentruntime.audit.store import AuditLogger

__all__ = [
    "AuditEvent",
    "AuditEventType",
    "AuditLogger",
]
