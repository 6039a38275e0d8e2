"""Application configuration dataclasses and layered setting lookup.

Frozen dataclasses with sensible defaults for each subsystem.  The core
never reads the environment implicitly: process settings are captured
once into an immutable ``SettingsSnapshot`` and resolved through
``resolve_setting``.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from types import MappingProxyType
from typing import Any

from dotenv import dotenv_values


@dataclass(frozen=True)
class LLMConfig:
    """Text-generation and embedding provider settings."""

    provider: str = "openai"
    model: str = "gpt-4"
    embedding_model: str = "text-embedding-3-small"
    api_key: str | None = None
    base_url: str = "https://api.openai.com/v1"
    temperature: float = 0.2
    max_tokens: int = 4096
    timeout_seconds: float = 30.0
    embedding_dimensions: int = 384


@dataclass(frozen=True)
class RuntimeConfig:
    """Per-turn composition parameters."""

    conversation_length: int = 32
    goals_count: int = 10
    recent_interactions_limit: int = 20
    attachment_window_ms: int = 3_600_000
    lore_sample_size: int = 10
    bio_sample_size: int = 3
    topics_sample_size: int = 5
    message_examples_sample_size: int = 5
    post_examples_sample_size: int = 50
    action_examples_count: int = 10
    # None disables the per-capability deadline
    capability_timeout_seconds: float | None = 30.0


@dataclass(frozen=True)
class KnowledgeConfig:
    """Ingestion and retrieval parameters for the knowledge engine."""

    match_threshold: float = 0.1
    match_count: int = 5
    directory_batch_size: int = 5
    knowledge_root: str = "characters/knowledge"
    file_patterns: tuple[str, ...] = ("*.md", "*.txt", "*.pdf")
    max_glob_depth: int = 8
    chunk_size: int = 512
    chunk_overlap: int = 20


@dataclass(frozen=True)
class AuditConfig:
    """Settings for the JSONL audit logger."""

    file_path: str = "agentruntime_audit.jsonl"
    enabled: bool = True


# ---------------------------------------------------------------------------
# Layered settings
# ---------------------------------------------------------------------------


def _freeze(values: Mapping[str, Any] | None) -> Mapping[str, Any]:
    return MappingProxyType(dict(values or {}))


@dataclass(frozen=True)
class SettingsSnapshot:
    """Immutable view over the three setting layers, highest priority first."""

    secrets: Mapping[str, Any] = field(default_factory=dict)
    character_settings: Mapping[str, Any] = field(default_factory=dict)
    process_settings: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "secrets", _freeze(self.secrets))
        object.__setattr__(
            self, "character_settings", _freeze(self.character_settings)
        )
        object.__setattr__(self, "process_settings", _freeze(self.process_settings))

    @property
    def layers(self) -> tuple[Mapping[str, Any], ...]:
        return (self.secrets, self.character_settings, self.process_settings)


def resolve_setting(snapshot: SettingsSnapshot, key: str) -> Any | None:
    """Return the first non-empty value for *key*, or ``None``.

    Lookup order is secrets, then character settings, then process
    settings.  Empty strings and ``None`` fall through to the next layer.
    """
    for layer in snapshot.layers:
        value = layer.get(key)
        if value not in (None, ""):
            return value
    return None


def load_process_settings(env_file: str | Path | None = ".env") -> dict[str, str]:
    """Capture process settings from a ``.env`` file overlaid by ``os.environ``.

    Variables already present in the environment stay authoritative.
    """
    values: dict[str, str] = {}
    if env_file is not None and Path(env_file).is_file():
        values.update(
            {k: v for k, v in dotenv_values(env_file).items() if v is not None}
        )
    values.update(os.environ)
    return values
