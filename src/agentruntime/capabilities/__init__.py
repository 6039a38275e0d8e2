"""Capabilities domain — plugin descriptors, registry and action matching."""

from agentruntime.capabilities.matching import names_match
from agentruntime.capabilities.matching import normalize_name
from agentruntime.capabilities.matching import resolve_action
from agentruntime.capabilities.registry import CapabilityRegistry
from agentruntime.capabilities.schemas import Action
from agentruntime.capabilities.schemas import ActionExample
from agentruntime.capabilities.schemas import Adapter
from agentruntime.capabilities.schemas import always_valid
from agentruntime.capabilities.schemas import EvaluationExample
from agentruntime.capabilities.schemas import Evaluator
from agentruntime.capabilities.schemas import HandlerCallback
from agentruntime.capabilities.schemas import Plugin
from agentruntime.capabilities.schemas import Provider
from agentruntime.capabilities.schemas import Service

__all__ = [
    "Action",
    "ActionExample",
    "Adapter",
    "CapabilityRegistry",
    "EvaluationExample",
    "Evaluator",
    "HandlerCallback",
    "Plugin",
    "Provider",
    "Service",
    "always_valid",
    "names_match",
    "normalize_name",
    "resolve_action",
]
