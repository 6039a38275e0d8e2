"""Capability descriptors contributed by plugins.

Descriptors are plain frozen dataclasses holding async callables.  The
callables receive the owning runtime, the inbound message and (when
available) the per-turn state snapshot.
"""

from __future__ import annotations

from collections.abc import Awaitable
from collections.abc import Callable
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from typing import Protocol
from typing import runtime_checkable
from typing import TYPE_CHECKING

from agentruntime.models.memory import Content
from agentruntime.models.memory import Memory

if TYPE_CHECKING:
    from agentruntime.runtime import AgentRuntime

# Receives the content an action wants to send; returns the stored memories.
HandlerCallback = Callable[[Content], Awaitable[list[Memory]]]

Validator = Callable[
    ["AgentRuntime", Memory, "Mapping[str, Any] | None"], Awaitable[bool]
]
Handler = Callable[..., Awaitable[Any]]


async def always_valid(
    runtime: AgentRuntime, message: Memory, state: Mapping[str, Any] | None = None
) -> bool:
    del runtime, message, state
    return True


@dataclass(frozen=True)
class ActionExample:
    """One line of an example exchange; ``user`` may be ``{{userN}}``."""

    user: str
    content: Content


@dataclass(frozen=True)
class Action:
    """A named, model-selectable behavior."""

    name: str
    description: str
    handler: Handler
    validate: Validator = always_valid
    similes: tuple[str, ...] = ()
    examples: tuple[tuple[ActionExample, ...], ...] = ()


@dataclass(frozen=True)
class EvaluationExample:
    context: str
    messages: tuple[ActionExample, ...]
    outcome: str


@dataclass(frozen=True)
class Evaluator:
    """A post-turn assessment.

    ``always_run`` evaluators are considered even for turns where the
    agent did not respond.
    """

    name: str
    description: str
    handler: Handler
    validate: Validator = always_valid
    similes: tuple[str, ...] = ()
    examples: tuple[EvaluationExample, ...] = ()
    always_run: bool = False


@dataclass(frozen=True)
class Provider:
    """Computes a block of free text appended to every state snapshot."""

    name: str
    get: Callable[..., Awaitable[str | None]]


@dataclass(frozen=True)
class Adapter:
    """A client connecting the runtime to an external platform."""

    name: str
    start: Callable[[AgentRuntime], Awaitable[Any]] | None = None
    stop: Callable[[AgentRuntime], Awaitable[Any]] | None = None


@runtime_checkable
class Service(Protocol):
    """Long-lived dependency looked up by ``service_type``."""

    service_type: str

    async def initialize(self, runtime: AgentRuntime) -> None: ...


@dataclass(frozen=True)
class Plugin:
    """Static bundle of capabilities, merged into a registry at startup."""

    name: str
    description: str = ""
    actions: tuple[Action, ...] = ()
    evaluators: tuple[Evaluator, ...] = ()
    providers: tuple[Provider, ...] = ()
    services: tuple[Service, ...] = ()
    adapters: tuple[Adapter, ...] = ()
