"""Post-turn evaluator pipeline: gate, validate, select, execute."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from time import perf_counter
from typing import Any

from agentruntime.audit import AuditEventType
from agentruntime.audit import AuditLogger
from agentruntime.capabilities.registry import CapabilityRegistry
from agentruntime.capabilities.schemas import Evaluator
from agentruntime.capabilities.schemas import HandlerCallback
from agentruntime.config import RuntimeConfig
from agentruntime.engine.guard import call_guarded
from agentruntime.engine.llm_adapters import ModelClass
from agentruntime.engine.llm_adapters import ModelProvider
from agentruntime.engine.prompt_builder import compose_context
from agentruntime.engine.prompt_builder import EVALUATION_TEMPLATE
from agentruntime.engine.prompt_builder import format_evaluator_names
from agentruntime.engine.prompt_builder import format_evaluators
from agentruntime.engine.prompt_builder import parse_json_array
from agentruntime.models.memory import Memory
from agentruntime.observability import record_latency

logger = logging.getLogger(__name__)


class EvaluatorRunner:
    """Runs registered evaluators after a turn.

    1. Gate: only ``always_run`` evaluators are considered when the agent
       did not respond.
    2. Validate the gated evaluators in parallel.
    3. Ask the model (small class) which candidates to run; the reply is
       a JSON array of names.
    4. Run the selected handlers sequentially, in registration order.

    With no candidates the model is not called at all.
    """

    def __init__(
        self,
        *,
        agent_id: str,
        registry: CapabilityRegistry,
        provider: ModelProvider,
        template: str = EVALUATION_TEMPLATE,
        config: RuntimeConfig | None = None,
        audit_logger: AuditLogger | None = None,
        owner: Any = None,
    ) -> None:
        self.agent_id = agent_id
        self._registry = registry
        self._provider = provider
        self._template = template
        self._config = config or RuntimeConfig()
        self._audit = audit_logger
        self._owner = owner

    async def evaluate(
        self,
        message: Memory,
        state: Mapping[str, Any],
        did_respond: bool = False,
        callback: HandlerCallback | None = None,
    ) -> list[str]:
        """Return the names of the evaluators the model selected."""
        start = perf_counter()
        ok = False
        try:
            selected = await self._evaluate(message, state, did_respond, callback)
            ok = True
            return selected
        finally:
            record_latency(
                operation="evaluate",
                duration_ms=(perf_counter() - start) * 1000,
                ok=ok,
            )

    async def _evaluate(
        self,
        message: Memory,
        state: Mapping[str, Any],
        did_respond: bool,
        callback: HandlerCallback | None,
    ) -> list[str]:
        candidates = await self._candidates(message, state, did_respond)
        if not candidates:
            logger.debug("No evaluator candidates for message %s", message.id)
            return []

        context = compose_context(
            {
                **state,
                "evaluators": format_evaluators(candidates),
                "evaluator_names": format_evaluator_names(candidates),
            },
            self._template,
        )
        reply = await self._provider.generate_text(context, ModelClass.SMALL)
        chosen = {str(name) for name in parse_json_array(reply) or []}
        selected = [e for e in candidates if e.name in chosen]
        if chosen and not selected:
            logger.warning("Model selected no known evaluators: %s", sorted(chosen))

        timeout = self._config.capability_timeout_seconds
        for evaluator in selected:
            ok, _ = await call_guarded(
                lambda e=evaluator: e.handler(self._owner, message, state, {}, callback),
                label=f"Evaluator {evaluator.name}",
                timeout=timeout,
            )
            if self._audit is not None:
                await self._audit.record(
                    AuditEventType.EVALUATOR_EXECUTED
                    if ok
                    else AuditEventType.EVALUATOR_FAILED,
                    agent_id=self.agent_id,
                    room_id=message.room_id,
                    message_id=message.id,
                    evaluator=evaluator.name,
                )
        return [e.name for e in selected]

    async def _candidates(
        self, message: Memory, state: Mapping[str, Any], did_respond: bool
    ) -> list[Evaluator]:
        gated = [e for e in self._registry.evaluators if e.always_run or did_respond]
        timeout = self._config.capability_timeout_seconds
        outcomes = await asyncio.gather(
            *(
                call_guarded(
                    lambda e=evaluator: e.validate(self._owner, message, state),
                    label=f"Evaluator {evaluator.name} validate",
                    timeout=timeout,
                )
                for evaluator in gated
            )
        )
        return [e for e, (ok, valid) in zip(gated, outcomes) if ok and valid]
