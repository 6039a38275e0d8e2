"""Agent runtime facade.

``AgentRuntime`` wires one character to its stores, provider and
capabilities, and exposes the per-turn entry points: ``compose_state``,
``update_recent_message_state``, ``process_actions`` and ``evaluate``.
Knowledge is reachable as ``runtime.knowledge``.
"""

from __future__ import annotations

import logging
import random
import uuid
from collections.abc import Callable
from collections.abc import Mapping
from collections.abc import Sequence
from typing import Any

from agentruntime.audit import AuditLogger
from agentruntime.capabilities.registry import CapabilityRegistry
from agentruntime.capabilities.schemas import Action
from agentruntime.capabilities.schemas import Adapter
from agentruntime.capabilities.schemas import Evaluator
from agentruntime.capabilities.schemas import HandlerCallback
from agentruntime.capabilities.schemas import Plugin
from agentruntime.capabilities.schemas import Provider
from agentruntime.capabilities.schemas import Service
from agentruntime.config import KnowledgeConfig
from agentruntime.config import resolve_setting
from agentruntime.config import RuntimeConfig
from agentruntime.config import SettingsSnapshot
from agentruntime.database.adapter import DatabaseAdapter
from agentruntime.engine.actions import ActionResolver
from agentruntime.engine.composer import State
from agentruntime.engine.composer import StateComposer
from agentruntime.engine.evaluators import EvaluatorRunner
from agentruntime.engine.llm_adapters import ModelProvider
from agentruntime.engine.prompt_builder import EVALUATION_TEMPLATE
from agentruntime.errors import ConfigurationError
from agentruntime.errors import ServiceInitializationError
from agentruntime.knowledge.engine import KnowledgeEngine
from agentruntime.knowledge.loader import KnowledgeLoader
from agentruntime.memory import DEFAULT_PARTITIONS
from agentruntime.memory import DESCRIPTIONS
from agentruntime.memory import DOCUMENTS
from agentruntime.memory import FRAGMENTS
from agentruntime.memory import LORE
from agentruntime.memory import MESSAGES
from agentruntime.memory.store import InMemoryMemoryStore
from agentruntime.memory.store import MemoryStore
from agentruntime.models.character import Character
from agentruntime.models.character import DirectoryKnowledge
from agentruntime.models.character import KnowledgeSources
from agentruntime.models.character import PathKnowledge
from agentruntime.models.entities import Account
from agentruntime.models.memory import Memory

logger = logging.getLogger(__name__)

AGENT_NAMESPACE = uuid.UUID("1f0c9a52-7e3b-5c41-8d2a-6b9e4f30c7d1")


def agent_id_for(name: str) -> str:
    """Stable agent id derived from the character name."""
    return str(uuid.uuid5(AGENT_NAMESPACE, name))


class AgentRuntime:
    """Runtime for one agent (character)."""

    def __init__(
        self,
        *,
        character: Character | None,
        database: DatabaseAdapter,
        provider: ModelProvider,
        agent_id: str | None = None,
        plugins: Sequence[Plugin] = (),
        actions: Sequence[Action] = (),
        evaluators: Sequence[Evaluator] = (),
        providers: Sequence[Provider] = (),
        services: Sequence[Service] = (),
        adapters: Sequence[Adapter] = (),
        memory_managers: Sequence[MemoryStore] = (),
        memory_factory: Callable[[str], MemoryStore] = InMemoryMemoryStore,
        runtime_config: RuntimeConfig | None = None,
        knowledge_config: KnowledgeConfig | None = None,
        process_settings: Mapping[str, Any] | None = None,
        knowledge_loader: KnowledgeLoader | None = None,
        rng: random.Random | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        if character is None:
            raise ConfigurationError("A character is required to build a runtime")

        self.character = character
        self.agent_id = agent_id or character.id or agent_id_for(character.name)
        self.database = database
        self.provider = provider
        self.config = runtime_config or RuntimeConfig()

        character_settings = {
            k: v for k, v in character.settings.items() if k != "secrets"
        }
        self.settings = SettingsSnapshot(
            secrets=character.secrets,
            character_settings=character_settings,
            process_settings=process_settings or {},
        )

        self.registry = CapabilityRegistry.from_plugins(
            plugins,
            actions=actions,
            evaluators=evaluators,
            providers=providers,
            services=services,
            adapters=adapters,
        )
        for manager in memory_managers:
            self.registry.register_memory_manager(manager)
        declared = {manager.table_name for manager in memory_managers}
        for table_name in DEFAULT_PARTITIONS:
            if table_name not in declared:
                self.registry.register_memory_manager(memory_factory(table_name))

        self.knowledge = KnowledgeEngine(
            agent_id=self.agent_id,
            documents=self._partition(DOCUMENTS),
            fragments=self._partition(FRAGMENTS),
            provider=provider,
            embedding_caches=(self._partition(FRAGMENTS), self._partition(MESSAGES)),
            loader=knowledge_loader,
            config=knowledge_config,
            audit_logger=audit_logger,
        )
        self._composer = StateComposer(
            agent_id=self.agent_id,
            character=character,
            database=database,
            messages=self._partition(MESSAGES),
            knowledge=self.knowledge,
            registry=self.registry,
            config=self.config,
            rng=rng,
            audit_logger=audit_logger,
            owner=self,
        )
        self._actions = ActionResolver(
            agent_id=self.agent_id,
            registry=self.registry,
            config=self.config,
            audit_logger=audit_logger,
            owner=self,
        )
        self._evaluators = EvaluatorRunner(
            agent_id=self.agent_id,
            registry=self.registry,
            provider=provider,
            template=character.templates.get("evaluation_template")
            or EVALUATION_TEMPLATE,
            config=self.config,
            audit_logger=audit_logger,
            owner=self,
        )
        logger.info("Runtime created for %s (%s)", character.name, self.agent_id)

    def _partition(self, table_name: str) -> MemoryStore:
        manager = self.registry.get_memory_manager(table_name)
        if manager is None:
            raise ConfigurationError(f"Memory partition {table_name!r} is missing")
        return manager

    @property
    def message_manager(self) -> MemoryStore:
        return self._partition(MESSAGES)

    @property
    def description_manager(self) -> MemoryStore:
        return self._partition(DESCRIPTIONS)

    @property
    def lore_manager(self) -> MemoryStore:
        return self._partition(LORE)

    @property
    def documents_manager(self) -> MemoryStore:
        return self._partition(DOCUMENTS)

    @property
    def knowledge_manager(self) -> MemoryStore:
        return self._partition(FRAGMENTS)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_action(self, action: Action) -> bool:
        return self.registry.register_action(action)

    def register_evaluator(self, evaluator: Evaluator) -> bool:
        return self.registry.register_evaluator(evaluator)

    def register_context_provider(self, provider: Provider) -> bool:
        return self.registry.register_context_provider(provider)

    def register_adapter(self, adapter: Adapter) -> bool:
        return self.registry.register_adapter(adapter)

    def register_service(self, service: Service) -> bool:
        return self.registry.register_service(service)

    def register_memory_manager(self, manager: MemoryStore) -> bool:
        return self.registry.register_memory_manager(manager)

    def get_service(self, service_type: str) -> Service | None:
        return self.registry.get_service(service_type)

    def get_memory_manager(self, table_name: str) -> MemoryStore | None:
        return self.registry.get_memory_manager(table_name)

    def get_setting(self, key: str) -> Any | None:
        """Resolve *key* through secrets, character settings, process settings."""
        return resolve_setting(self.settings, key)

    # ------------------------------------------------------------------
    # Turn entry points
    # ------------------------------------------------------------------

    async def compose_state(
        self, message: Memory, extra: Mapping[str, Any] | None = None
    ) -> State:
        return await self._composer.compose_state(message, extra)

    async def update_recent_message_state(self, state: Mapping[str, Any]) -> State:
        return await self._composer.update_recent_message_state(state)

    async def process_actions(
        self,
        message: Memory,
        responses: Sequence[Memory],
        state: Mapping[str, Any] | None = None,
        callback: HandlerCallback | None = None,
    ) -> list[str]:
        return await self._actions.process_actions(message, responses, state, callback)

    async def evaluate(
        self,
        message: Memory,
        state: Mapping[str, Any],
        did_respond: bool = False,
        callback: HandlerCallback | None = None,
    ) -> list[str]:
        return await self._evaluators.evaluate(message, state, did_respond, callback)

    # ------------------------------------------------------------------
    # Entity bootstrap (create-if-absent)
    # ------------------------------------------------------------------

    async def ensure_user_exists(
        self,
        user_id: str,
        username: str | None = None,
        name: str | None = None,
        email: str | None = None,
    ) -> None:
        if await self.database.get_account_by_id(user_id) is not None:
            return
        await self.database.create_account(
            Account(
                id=user_id,
                name=name or self.character.name or "Unknown User",
                username=username or self.character.username or "Unknown",
                email=email or user_id,
            )
        )
        logger.info("User %s created", username or user_id)

    async def ensure_room_exists(self, room_id: str) -> None:
        if await self.database.get_room(room_id) is None:
            await self.database.create_room(room_id)
            logger.info("Room %s created", room_id)

    async def ensure_participant_in_room(self, user_id: str, room_id: str) -> None:
        participants = await self.database.get_participants_for_room(room_id)
        if user_id not in participants:
            await self.database.add_participant(user_id, room_id)
            logger.debug("Added %s to room %s", user_id, room_id)

    async def ensure_connection(
        self,
        user_id: str,
        room_id: str,
        username: str | None = None,
        name: str | None = None,
        email: str | None = None,
    ) -> None:
        """Make the agent, the user, the room and both memberships exist."""
        await self.ensure_user_exists(
            self.agent_id,
            self.character.username or self.character.name,
            self.character.name,
        )
        await self.ensure_user_exists(user_id, username or "User", name or "User", email)
        await self.ensure_room_exists(room_id)
        await self.ensure_participant_in_room(user_id, room_id)
        await self.ensure_participant_in_room(self.agent_id, room_id)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self) -> None:
        """Initialize services, the agent's global room, then knowledge.

        The first failing service aborts initialization.
        """
        for service in self.registry.services:
            try:
                await service.initialize(self)
            except Exception as exc:
                logger.exception("Service %s failed to initialize", service.service_type)
                raise ServiceInitializationError(service.service_type, exc) from exc
            logger.info("Service %s initialized", service.service_type)

        await self.ensure_room_exists(self.agent_id)
        await self.ensure_user_exists(
            self.agent_id,
            self.character.username or self.character.name,
            self.character.name,
        )
        await self.ensure_participant_in_room(self.agent_id, self.agent_id)

        await self.load_character_knowledge()

    async def load_character_knowledge(self) -> None:
        """Ingest the knowledge the character declares."""
        declared = self.character.knowledge
        if not declared:
            return
        if isinstance(declared, KnowledgeSources):
            stored = await self.knowledge.load_sources(declared.sources)
            logger.info("Loaded %d knowledge sources", stored)
            return

        texts = [item for item in declared if isinstance(item, str)]
        paths = [item for item in declared if isinstance(item, PathKnowledge)]
        directories = [item for item in declared if isinstance(item, DirectoryKnowledge)]
        # directories first, then single files, then inline strings
        for directory in directories:
            await self.knowledge.ingest_directory(
                directory.directory, shared=directory.shared
            )
        if paths:
            await self.knowledge.ingest_paths(paths)
        if texts:
            await self.knowledge.ingest_texts(texts)

    async def stop(self) -> None:
        """Stop every registered client adapter."""
        for adapter in self.registry.adapters:
            if adapter.stop is None:
                continue
            logger.info("Stopping client %s", adapter.name)
            try:
                await adapter.stop(self)
            except Exception:
                logger.exception("Client %s failed to stop", adapter.name)
