"""Per-turn state composition.

``StateComposer.compose_state`` fans out the independent reads of a
turn (actors, recent messages, goals, knowledge, cross-room
interactions), joins them, and merges them with sampled character flavor
into one immutable ``State``.  Capability validation and provider
aggregation then run in parallel against that draft, and only the
capabilities that validate are listed in the final snapshot.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections.abc import Iterator
from collections.abc import Mapping
from collections.abc import Sequence
from time import perf_counter
from types import MappingProxyType
from typing import Any
from typing import TYPE_CHECKING

from agentruntime.audit import AuditEventType
from agentruntime.audit import AuditLogger
from agentruntime.capabilities.registry import CapabilityRegistry
from agentruntime.config import RuntimeConfig
from agentruntime.database.adapter import DatabaseAdapter
from agentruntime.engine.guard import call_guarded
from agentruntime.engine.prompt_builder import add_header
from agentruntime.engine.prompt_builder import compose_action_examples
from agentruntime.engine.prompt_builder import format_action_names
from agentruntime.engine.prompt_builder import format_actions
from agentruntime.engine.prompt_builder import format_actors
from agentruntime.engine.prompt_builder import format_attachments
from agentruntime.engine.prompt_builder import format_evaluator_examples
from agentruntime.engine.prompt_builder import format_evaluator_names
from agentruntime.engine.prompt_builder import format_evaluators
from agentruntime.engine.prompt_builder import format_goals
from agentruntime.engine.prompt_builder import format_knowledge
from agentruntime.engine.prompt_builder import format_messages
from agentruntime.engine.prompt_builder import format_posts
from agentruntime.engine.prompt_builder import format_topics
from agentruntime.engine.prompt_builder import replace_example_names
from agentruntime.engine.prompt_builder import sample_example_names
from agentruntime.memory.store import MemoryStore
from agentruntime.models.character import Character
from agentruntime.models.memory import Attachment
from agentruntime.models.memory import Memory
from agentruntime.observability import record_latency

if TYPE_CHECKING:
    from agentruntime.knowledge.engine import KnowledgeEngine

logger = logging.getLogger(__name__)

REDACTED_ATTACHMENT_TEXT = "[Hidden]"


class State(Mapping[str, Any]):
    """Immutable per-turn snapshot.

    Derive a changed snapshot with :meth:`replace`; the original is never
    modified.
    """

    __slots__ = ("_fields",)

    def __init__(self, fields: Mapping[str, Any] | None = None, **extra: Any) -> None:
        self._fields = MappingProxyType({**(fields or {}), **extra})

    def __getitem__(self, key: str) -> Any:
        return self._fields[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._fields)

    def __len__(self) -> int:
        return len(self._fields)

    def __repr__(self) -> str:
        return f"State({sorted(self._fields)})"

    def replace(self, **updates: Any) -> State:
        return State(self._fields, **updates)


def redact_stale_attachments(
    messages: Sequence[Memory],
    *,
    window_ms: int = 3_600_000,
    placeholder: str = REDACTED_ATTACHMENT_TEXT,
) -> list[Memory]:
    """Hide attachment text on messages far older than the newest attachment.

    *messages* are recent-first.  The reference is the most recent
    message carrying attachments; attachments on messages created before
    ``reference.created_at - window_ms`` get *placeholder* as text.
    Returns copies; the input memories are left untouched.
    """
    reference = next((m for m in messages if m.content.attachments), None)
    if reference is None:
        return list(messages)
    bound = reference.created_at - window_ms
    redacted: list[Memory] = []
    for message in messages:
        if message.created_at >= bound or not message.content.attachments:
            redacted.append(message)
            continue
        hidden = [
            a.model_copy(update={"text": placeholder})
            for a in message.content.attachments
        ]
        redacted.append(
            message.model_copy(
                update={
                    "content": message.content.model_copy(
                        update={"attachments": hidden}
                    )
                }
            )
        )
    return redacted


def _chronological_attachments(messages: Sequence[Memory]) -> list[Attachment]:
    return [a for m in reversed(messages) for a in m.content.attachments]


def _sample(rng: random.Random, items: Sequence[Any], k: int) -> list[Any]:
    return rng.sample(list(items), min(k, len(items)))


class StateComposer:
    """Assembles the state snapshot for each inbound message."""

    def __init__(
        self,
        *,
        agent_id: str,
        character: Character,
        database: DatabaseAdapter,
        messages: MemoryStore,
        knowledge: KnowledgeEngine,
        registry: CapabilityRegistry,
        config: RuntimeConfig | None = None,
        rng: random.Random | None = None,
        audit_logger: AuditLogger | None = None,
        owner: Any = None,
    ) -> None:
        self.agent_id = agent_id
        self.character = character
        self._database = database
        self._messages = messages
        self._knowledge = knowledge
        self._registry = registry
        self._config = config or RuntimeConfig()
        self._rng = rng or random.Random()
        self._audit = audit_logger
        # Passed as the first argument to capability callables.
        self._owner = owner

    # ------------------------------------------------------------------
    # Composition
    # ------------------------------------------------------------------

    async def compose_state(
        self, message: Memory, extra: Mapping[str, Any] | None = None
    ) -> State:
        """Build the immutable snapshot for *message*.

        *extra* fields override the computed context fields; capability
        listings are always computed.
        """
        start = perf_counter()
        ok = False
        try:
            state = await self._compose(message, extra or {})
            ok = True
            return state
        finally:
            record_latency(
                operation="compose_state",
                duration_ms=(perf_counter() - start) * 1000,
                ok=ok,
            )

    async def _compose(self, message: Memory, extra: Mapping[str, Any]) -> State:
        cfg = self._config
        room_id = message.room_id
        actors, recent, goals, knowledge_items, interactions = await asyncio.gather(
            self._database.get_actor_details(room_id),
            self._messages.get_memories(
                room_id, count=cfg.conversation_length, unique=False
            ),
            self._database.get_goals(
                room_id, count=cfg.goals_count, only_in_progress=False
            ),
            self._knowledge.get(message),
            self._recent_interactions(message),
        )

        recent = redact_stale_attachments(recent, window_ms=cfg.attachment_window_ms)
        attachments = (
            _chronological_attachments(recent)
            if any(m.content.attachments for m in recent)
            else list(message.content.attachments)
        )

        sender_name = next((a.name for a in actors if a.id == message.user_id), "")
        agent_name = next(
            (a.name for a in actors if a.id == self.agent_id), self.character.name
        )
        formatted_goals = format_goals(goals)
        message_interactions = await self._format_message_interactions(interactions)

        draft = State(
            {
                "agent_id": self.agent_id,
                "agent_name": agent_name,
                "sender_name": sender_name,
                "room_id": room_id,
                **self._flavor(),
                "knowledge": format_knowledge(knowledge_items),
                "knowledge_data": knowledge_items,
                "recent_message_interactions": message_interactions,
                "recent_post_interactions": format_posts(
                    interactions, actors, conversation_header=True
                ),
                "recent_interactions_data": interactions,
                "actors": add_header("# Actors", format_actors(actors)),
                "actors_data": actors,
                "goals": add_header(
                    "# Goals\n{{agent_name}} should prioritize accomplishing "
                    "the objectives that are in progress.",
                    formatted_goals,
                ),
                "goals_data": goals,
                "recent_messages": add_header(
                    "# Conversation Messages", format_messages(recent, actors)
                ),
                "recent_posts": add_header(
                    "# Posts in Thread",
                    format_posts(recent, actors, conversation_header=False),
                ),
                "recent_messages_data": recent,
                "attachments": add_header(
                    "# Attachments", format_attachments(attachments)
                ),
            },
            **extra,
        )

        state = draft.replace(**await self._capability_fields(message, draft))
        logger.debug(
            "Composed state for room %s: %d messages, %d knowledge items",
            room_id,
            len(recent),
            len(knowledge_items),
        )
        if self._audit is not None:
            await self._audit.record(
                AuditEventType.STATE_COMPOSED,
                agent_id=self.agent_id,
                room_id=room_id,
                message_id=message.id,
                recent_messages=len(recent),
                knowledge_items=len(knowledge_items),
                actions=[a.name for a in state["actions_data"]],
                evaluators=[e.name for e in state["evaluators_data"]],
            )
        return state

    async def update_recent_message_state(self, state: Mapping[str, Any]) -> State:
        """Return a new snapshot with the recent-message fields re-read."""
        recent = await self._messages.get_memories(
            state["room_id"], count=self._config.conversation_length, unique=False
        )
        recent = [
            m.model_copy(
                update={"content": m.content.model_copy(update={"embedding": None})}
            )
            for m in recent
        ]
        recent = redact_stale_attachments(
            recent, window_ms=self._config.attachment_window_ms
        )
        base = state if isinstance(state, State) else State(state)
        return base.replace(
            recent_messages=add_header(
                "# Conversation Messages",
                format_messages(recent, state.get("actors_data") or []),
            ),
            recent_messages_data=recent,
            attachments=add_header(
                "# Attachments", format_attachments(_chronological_attachments(recent))
            ),
        )

    # ------------------------------------------------------------------
    # Cross-room interactions
    # ------------------------------------------------------------------

    async def _recent_interactions(self, message: Memory) -> list[Memory]:
        if message.user_id == self.agent_id:
            return []
        rooms = await self._database.get_rooms_for_participants(
            [message.user_id, self.agent_id]
        )
        others = [room for room in rooms if room != message.room_id]
        if not others:
            return []
        return await self._messages.get_memories_by_room_ids(
            others, limit=self._config.recent_interactions_limit
        )

    async def _format_message_interactions(self, interactions: Sequence[Memory]) -> str:
        async def sender(memory: Memory) -> str:
            if memory.user_id == self.agent_id:
                return self.character.name
            account = await self._database.get_account_by_id(memory.user_id)
            return account.username if account and account.username else "unknown"

        senders = await asyncio.gather(*(sender(m) for m in interactions))
        return "\n".join(
            f"{name}: {memory.content.text}" for name, memory in zip(senders, interactions)
        )

    # ------------------------------------------------------------------
    # Character flavor
    # ------------------------------------------------------------------

    def _flavor(self) -> dict[str, str]:
        cfg = self._config
        character = self.character
        rng = self._rng
        name = character.name

        bio = character.bio
        if isinstance(bio, list):
            bio = " ".join(_sample(rng, bio, cfg.bio_sample_size))

        post_examples = "\n".join(
            _sample(rng, character.post_examples, cfg.post_examples_sample_size)
        )
        conversations = []
        for example in _sample(
            rng, character.message_examples, cfg.message_examples_sample_size
        ):
            names = sample_example_names(rng)
            conversations.append(
                "\n".join(
                    replace_example_names(f"{line.user}: {line.content.text}", names)
                    for line in example
                )
            )
        message_examples = "\n\n".join(conversations)

        style = character.style
        return {
            "bio": bio or "",
            "lore": "\n".join(_sample(rng, character.lore, cfg.lore_sample_size)),
            "adjective": rng.choice(character.adjectives) if character.adjectives else "",
            "topic": rng.choice(character.topics) if character.topics else "",
            "topics": format_topics(
                name, _sample(rng, character.topics, cfg.topics_sample_size)
            ),
            "character_post_examples": add_header(
                f"# Example Posts for {name}",
                post_examples if post_examples.replace("\n", "") else "",
            ),
            "character_message_examples": add_header(
                f"# Example Conversations for {name}",
                message_examples if message_examples.replace("\n", "") else "",
            ),
            "message_directions": add_header(
                f"# Message Directions for {name}", "\n".join([*style.all, *style.chat])
            ),
            "post_directions": add_header(
                f"# Post Directions for {name}", "\n".join([*style.all, *style.post])
            ),
        }

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    async def _validated(
        self, capabilities: Sequence[Any], message: Memory, draft: State, kind: str
    ) -> list[Any]:
        timeout = self._config.capability_timeout_seconds
        outcomes = await asyncio.gather(
            *(
                call_guarded(
                    lambda c=capability: c.validate(self._owner, message, draft),
                    label=f"{kind} {capability.name} validate",
                    timeout=timeout,
                )
                for capability in capabilities
            )
        )
        return [
            capability
            for capability, (ok, valid) in zip(capabilities, outcomes)
            if ok and valid
        ]

    async def _provider_text(self, message: Memory, draft: State) -> str:
        timeout = self._config.capability_timeout_seconds
        providers = self._registry.providers
        outcomes = await asyncio.gather(
            *(
                call_guarded(
                    lambda p=provider: p.get(self._owner, message, draft),
                    label=f"Provider {provider.name}",
                    timeout=timeout,
                )
                for provider in providers
            )
        )
        return "\n".join(str(text) for ok, text in outcomes if ok and text)

    async def _capability_fields(self, message: Memory, draft: State) -> dict[str, Any]:
        actions, evaluators, providers = await asyncio.gather(
            self._validated(self._registry.actions, message, draft, "Action"),
            self._validated(self._registry.evaluators, message, draft, "Evaluator"),
            self._provider_text(message, draft),
        )
        rng = self._rng
        return {
            "actions_data": actions,
            "action_names": "Possible response actions: "
            + format_action_names(actions, rng),
            "actions": add_header("# Available Actions", format_actions(actions, rng)),
            "action_examples": add_header(
                "# Action Examples",
                compose_action_examples(
                    actions, self._config.action_examples_count, rng
                ),
            ),
            "evaluators_data": evaluators,
            "evaluators": format_evaluators(evaluators),
            "evaluator_names": format_evaluator_names(evaluators),
            "evaluator_examples": format_evaluator_examples(evaluators, rng),
            "providers": add_header(
                f"# Additional Information About {self.character.name} and The World",
                providers,
            ),
        }
