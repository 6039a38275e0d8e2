"""Execution of model-proposed actions."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from collections.abc import Sequence
from time import perf_counter
from typing import Any

from agentruntime.audit import AuditEventType
from agentruntime.audit import AuditLogger
from agentruntime.capabilities.matching import resolve_action
from agentruntime.capabilities.registry import CapabilityRegistry
from agentruntime.capabilities.schemas import HandlerCallback
from agentruntime.config import RuntimeConfig
from agentruntime.engine.guard import call_guarded
from agentruntime.models.memory import Memory
from agentruntime.observability import record_latency

logger = logging.getLogger(__name__)


class ActionResolver:
    """Resolves free-text action labels and runs their handlers in order.

    Each response's ``content.action`` is matched against the registry.
    Unmatched labels are skipped with a warning; a failing or timed-out
    handler is logged and the remaining actions still run.
    """

    def __init__(
        self,
        *,
        agent_id: str,
        registry: CapabilityRegistry,
        config: RuntimeConfig | None = None,
        audit_logger: AuditLogger | None = None,
        owner: Any = None,
    ) -> None:
        self.agent_id = agent_id
        self._registry = registry
        self._config = config or RuntimeConfig()
        self._audit = audit_logger
        self._owner = owner

    async def process_actions(
        self,
        message: Memory,
        responses: Sequence[Memory],
        state: Mapping[str, Any] | None = None,
        callback: HandlerCallback | None = None,
    ) -> list[str]:
        """Run the actions proposed in *responses*; returns the names that succeeded."""
        start = perf_counter()
        succeeded: list[str] = []
        for response in responses:
            label = response.content.action
            if not label:
                continue

            action = resolve_action(label, self._registry.actions)
            if action is None:
                logger.warning("No action found for %r", label)
                await self._audit_event(
                    AuditEventType.ACTION_UNRESOLVED, message, label=label
                )
                continue

            logger.info("Executing handler for action: %s", action.name)
            ok, _ = await call_guarded(
                lambda a=action: a.handler(self._owner, message, state, {}, callback),
                label=f"Action {action.name}",
                timeout=self._config.capability_timeout_seconds,
            )
            if ok:
                succeeded.append(action.name)
            await self._audit_event(
                AuditEventType.ACTION_EXECUTED if ok else AuditEventType.ACTION_FAILED,
                message,
                label=label,
                action=action.name,
            )

        record_latency(
            operation="process_actions", duration_ms=(perf_counter() - start) * 1000
        )
        return succeeded

    async def _audit_event(
        self, event_type: AuditEventType, message: Memory, **payload: Any
    ) -> None:
        if self._audit is None:
            return
        await self._audit.record(
            event_type,
            agent_id=self.agent_id,
            room_id=message.room_id,
            message_id=message.id,
            **payload,
        )
