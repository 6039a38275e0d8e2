"""Unit test fixtures — in-memory stores, scripted provider, runtime and MCP client."""

from __future__ import annotations

import asyncio
import random
from pathlib import Path

import pytest
from fastmcp import Client

from agentruntime.audit import AuditLogger
from agentruntime.config import AuditConfig
from agentruntime.config import KnowledgeConfig
from agentruntime.config import RuntimeConfig
from agentruntime.database import InMemoryDatabaseAdapter
from agentruntime.engine.llm_adapters import HashingProvider
from agentruntime.engine.llm_adapters import LLMError
from agentruntime.engine.llm_adapters import ModelClass
from agentruntime.knowledge import FileKnowledgeLoader
from agentruntime.knowledge import KnowledgeEngine
from agentruntime.memory import InMemoryMemoryStore
from agentruntime.models import Character
from agentruntime.models import Content
from agentruntime.models import MessageExample
from agentruntime.models import Style
from agentruntime.runtime import AgentRuntime

AGENT_ID = "agent-0001"


class ScriptedProvider(HashingProvider):
    """Hashing embeddings plus scripted generation replies.

    Records every prompt, counts embed calls and tracks peak embed
    concurrency.  Texts containing a ``fail_on`` marker make ``embed``
    raise ``LLMError``.
    """

    def __init__(self) -> None:
        super().__init__(dimensions=256)
        self.replies: list[str] = []
        self.prompts: list[tuple[str, ModelClass]] = []
        self.embed_calls = 0
        self.fail_on: str | None = None
        self.embed_delay = 0.0
        self.in_flight = 0
        self.peak_in_flight = 0

    async def embed(self, text: str) -> list[float]:
        self.embed_calls += 1
        self.in_flight += 1
        self.peak_in_flight = max(self.peak_in_flight, self.in_flight)
        try:
            if self.embed_delay:
                await asyncio.sleep(self.embed_delay)
            if self.fail_on and self.fail_on in text:
                raise LLMError(f"embedding refused for {text[:20]!r}")
            return await super().embed(text)
        finally:
            self.in_flight -= 1

    async def generate_text(
        self, context: str, model_class: ModelClass = ModelClass.SMALL
    ) -> str:
        self.prompts.append((context, model_class))
        return self.replies.pop(0) if self.replies else "[]"


@pytest.fixture()
def provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture()
def knowledge_root(tmp_path: Path) -> Path:
    root = tmp_path / "knowledge"
    root.mkdir()
    return root


@pytest.fixture()
def knowledge_config(knowledge_root: Path) -> KnowledgeConfig:
    return KnowledgeConfig(knowledge_root=str(knowledge_root))


@pytest.fixture()
def audit_config(tmp_path: Path) -> AuditConfig:
    return AuditConfig(file_path=str(tmp_path / "audit.jsonl"))


@pytest.fixture()
def audit_logger(audit_config: AuditConfig) -> AuditLogger:
    return AuditLogger(audit_config)


@pytest.fixture()
def documents() -> InMemoryMemoryStore:
    return InMemoryMemoryStore("documents")


@pytest.fixture()
def fragments() -> InMemoryMemoryStore:
    return InMemoryMemoryStore("fragments")


@pytest.fixture()
def engine(
    documents, fragments, provider, knowledge_config, audit_logger, tmp_path
) -> KnowledgeEngine:
    return KnowledgeEngine(
        agent_id=AGENT_ID,
        documents=documents,
        fragments=fragments,
        provider=provider,
        loader=FileKnowledgeLoader(tmp_path),
        config=knowledge_config,
        audit_logger=audit_logger,
    )


@pytest.fixture()
def database() -> InMemoryDatabaseAdapter:
    return InMemoryDatabaseAdapter()


@pytest.fixture()
def character() -> Character:
    return Character(
        id=AGENT_ID,
        name="Ada",
        username="ada",
        bio=["Writes compilers.", "Likes tea.", "Collects maps.", "Rows at dawn."],
        lore=["Once debugged a satellite.", "Taught a parrot Lisp."],
        topics=["compilers", "sailing", "tea"],
        adjectives=["curious", "dry"],
        message_examples=[
            [
                MessageExample(user="{{user1}}", content=Content(text="hello?")),
                MessageExample(user="Ada", content=Content(text="hi {{user1}}")),
            ]
        ],
        post_examples=["Parsers are poems."],
        style=Style(all=["be brief"], chat=["ask questions"], post=["no emoji"]),
        settings={
            "model": "character-model",
            "secrets": {"API_TOKEN": "from-secrets"},
        },
    )


@pytest.fixture()
def runtime(
    character, database, provider, knowledge_config, audit_logger, tmp_path
) -> AgentRuntime:
    return AgentRuntime(
        character=character,
        database=database,
        provider=provider,
        runtime_config=RuntimeConfig(capability_timeout_seconds=1.0),
        knowledge_config=knowledge_config,
        knowledge_loader=FileKnowledgeLoader(tmp_path),
        process_settings={"model": "process-model", "REGION": "eu"},
        rng=random.Random(7),
        audit_logger=audit_logger,
    )


@pytest.fixture()
async def mcp_client(knowledge_config, audit_config):
    """Yield a FastMCP Client wired to the agentruntime server."""
    from agentruntime.server import configure
    from agentruntime.server import mcp
    from agentruntime.server import shutdown

    await configure(
        Character(name="Ada"),
        provider=HashingProvider(),
        knowledge_config=knowledge_config,
        audit_config=audit_config,
        env_file=None,
    )

    async with Client(mcp) as client:
        yield client

    await shutdown()
