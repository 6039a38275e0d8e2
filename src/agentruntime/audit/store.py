"""Async JSONL audit logger."""

from __future__ import annotations

import asyncio
import logging
from functools import partial
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from agentruntime.audit.schemas import AuditEvent
from agentruntime.audit.schemas import AuditEventType
from agentruntime.config import AuditConfig

logger = logging.getLogger(__name__)


class AuditLogger:
    """Append-only JSONL audit trail.

    File writes go through ``asyncio.to_thread`` so the event loop never
    blocks on disk, and an ``asyncio.Lock`` keeps lines from interleaving.
    """

    def __init__(self, config: AuditConfig) -> None:
        self.config = config
        self._lock = asyncio.Lock()

    async def log(self, event: AuditEvent) -> None:
        """Append *event* as one JSON line."""
        if not self.config.enabled:
            return
        line = event.model_dump_json() + "\n"
        async with self._lock:
            await asyncio.to_thread(partial(self._append, self.config.file_path, line))

    async def record(
        self,
        event_type: AuditEventType,
        *,
        agent_id: str | None = None,
        room_id: str | None = None,
        **payload: Any,
    ) -> None:
        """Build and log an event from keyword payload."""
        await self.log(
            AuditEvent(
                event_type=event_type,
                agent_id=agent_id,
                room_id=room_id,
                payload=payload,
            )
        )

    @staticmethod
    def _append(path: str, line: str) -> None:
        with open(path, "a", encoding="utf-8") as fh:
            fh.write(line)

    async def read_events(
        self,
        *,
        event_type: AuditEventType | None = None,
        room_id: str | None = None,
        since: float | None = None,
    ) -> list[AuditEvent]:
        """Read events back, optionally filtered by type, room and time."""
        path = Path(self.config.file_path)
        if not path.exists():
            return []

        async with self._lock:
            raw = await asyncio.to_thread(path.read_text, encoding="utf-8")

        events: list[AuditEvent] = []
        for line_no, line in enumerate(raw.splitlines(), start=1):
            if not line.strip():
                continue
            try:
                evt = AuditEvent.model_validate_json(line)
            except ValidationError:
                logger.warning("Skipping malformed audit line %d in %s", line_no, path)
                continue
            if event_type is not None and evt.event_type != event_type:
                continue
            if room_id is not None and evt.room_id != room_id:
                continue
            if since is not None and evt.timestamp < since:
                continue
            events.append(evt)
        return events
