"""Engine domain — providers, state composition and capability execution."""

from agentruntime.engine.actions import ActionResolver
from agentruntime.engine.composer import redact_stale_attachments
from agentruntime.engine.composer import State
from agentruntime.engine.composer import StateComposer
from agentruntime.engine.evaluators import EvaluatorRunner
from agentruntime.engine.guard import call_guarded
from agentruntime.engine.llm_adapters import build_model_provider
from agentruntime.engine.llm_adapters import HashingProvider
from agentruntime.engine.llm_adapters import LLMError
from agentruntime.engine.llm_adapters import ModelClass
from agentruntime.engine.llm_adapters import ModelProvider
from agentruntime.engine.llm_adapters import OpenAICompatibleProvider
from agentruntime.engine.prompt_builder import EVALUATION_TEMPLATE

__all__ = [
    "ActionResolver",
    "EVALUATION_TEMPLATE",
    "EvaluatorRunner",
    "HashingProvider",
    "LLMError",
    "ModelClass",
    "ModelProvider",
    "OpenAICompatibleProvider",
    "State",
    "StateComposer",
    "build_model_provider",
    "call_guarded",
    "redact_stale_attachments",
]
