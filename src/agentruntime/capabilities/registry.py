"""Live capability sets for one runtime.

Registration is single-threaded at startup and idempotent by skip: a
second registration under an existing identity key logs a warning and
changes nothing.  Lookups return ``None`` (with a logged diagnostic)
rather than raising.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TypeVar

from agentruntime.capabilities.schemas import Action
from agentruntime.capabilities.schemas import Adapter
from agentruntime.capabilities.schemas import Evaluator
from agentruntime.capabilities.schemas import Plugin
from agentruntime.capabilities.schemas import Provider
from agentruntime.capabilities.schemas import Service
from agentruntime.errors import ConfigurationError
from agentruntime.memory.store import MemoryStore

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _identity(kind: str, key: object) -> str:
    if not isinstance(key, str) or not key.strip():
        raise ConfigurationError(f"{kind} must have a non-empty identity, got {key!r}")
    return key


class CapabilityRegistry:
    """Ordered registries of actions, evaluators, providers, adapters,
    services and memory managers."""

    def __init__(self) -> None:
        self._actions: dict[str, Action] = {}
        self._evaluators: dict[str, Evaluator] = {}
        self._providers: dict[str, Provider] = {}
        self._adapters: dict[str, Adapter] = {}
        self._services: dict[str, Service] = {}
        self._memory_managers: dict[str, MemoryStore] = {}

    @classmethod
    def from_plugins(
        cls,
        plugins: Iterable[Plugin] = (),
        *,
        actions: Iterable[Action] = (),
        evaluators: Iterable[Evaluator] = (),
        providers: Iterable[Provider] = (),
        services: Iterable[Service] = (),
        adapters: Iterable[Adapter] = (),
    ) -> CapabilityRegistry:
        """Union the capabilities of *plugins* in order, then the loose ones."""
        registry = cls()
        for plugin in plugins:
            logger.info("Loading plugin %s", plugin.name)
            registry._register_all(
                plugin.actions,
                plugin.evaluators,
                plugin.providers,
                plugin.services,
                plugin.adapters,
            )
        registry._register_all(actions, evaluators, providers, services, adapters)
        return registry

    def _register_all(
        self,
        actions: Iterable[Action],
        evaluators: Iterable[Evaluator],
        providers: Iterable[Provider],
        services: Iterable[Service],
        adapters: Iterable[Adapter],
    ) -> None:
        for action in actions:
            self.register_action(action)
        for evaluator in evaluators:
            self.register_evaluator(evaluator)
        for provider in providers:
            self.register_context_provider(provider)
        for service in services:
            self.register_service(service)
        for adapter in adapters:
            self.register_adapter(adapter)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    @staticmethod
    def _add(bucket: dict[str, T], kind: str, key: str, value: T) -> bool:
        if key in bucket:
            logger.warning("%s %s already registered, skipping", kind, key)
            return False
        bucket[key] = value
        logger.debug("Registered %s %s", kind, key)
        return True

    def register_action(self, action: Action) -> bool:
        key = _identity("Action", action.name)
        return self._add(self._actions, "Action", key, action)

    def register_evaluator(self, evaluator: Evaluator) -> bool:
        key = _identity("Evaluator", evaluator.name)
        return self._add(self._evaluators, "Evaluator", key, evaluator)

    def register_context_provider(self, provider: Provider) -> bool:
        key = _identity("Provider", provider.name)
        return self._add(self._providers, "Provider", key, provider)

    def register_adapter(self, adapter: Adapter) -> bool:
        key = _identity("Adapter", adapter.name)
        return self._add(self._adapters, "Adapter", key, adapter)

    def register_service(self, service: Service) -> bool:
        key = _identity("Service", getattr(service, "service_type", None))
        return self._add(self._services, "Service", key, service)

    def register_memory_manager(self, manager: MemoryStore) -> bool:
        table_name = getattr(manager, "table_name", None)
        if not table_name:
            raise ConfigurationError("Memory manager must have a table_name")
        return self._add(self._memory_managers, "Memory manager", table_name, manager)

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @property
    def actions(self) -> tuple[Action, ...]:
        return tuple(self._actions.values())

    @property
    def evaluators(self) -> tuple[Evaluator, ...]:
        return tuple(self._evaluators.values())

    @property
    def providers(self) -> tuple[Provider, ...]:
        return tuple(self._providers.values())

    @property
    def adapters(self) -> tuple[Adapter, ...]:
        return tuple(self._adapters.values())

    @property
    def services(self) -> tuple[Service, ...]:
        return tuple(self._services.values())

    def get_action(self, name: str) -> Action | None:
        action = self._actions.get(name)
        if action is None:
            logger.debug("Action %s not found", name)
        return action

    def get_evaluator(self, name: str) -> Evaluator | None:
        evaluator = self._evaluators.get(name)
        if evaluator is None:
            logger.debug("Evaluator %s not found", name)
        return evaluator

    def get_service(self, service_type: str) -> Service | None:
        service = self._services.get(service_type)
        if service is None:
            logger.error("Service %s not found", service_type)
        return service

    def get_memory_manager(self, table_name: str) -> MemoryStore | None:
        manager = self._memory_managers.get(table_name)
        if manager is None:
            logger.warning("Memory manager %s not found", table_name)
        return manager
