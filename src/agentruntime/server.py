"""agentruntime — FastMCP v2 server exposing an agent's knowledge.

Tools delegate to the ``KnowledgeEngine`` of a configured
``AgentRuntime``.  Call ``configure(...)`` before using the server.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import partial
from time import perf_counter

from fastmcp import FastMCP
from pydantic import ValidationError
from redis.asyncio import Redis  # type: ignore[import-untyped]

from agentruntime.audit import AuditLogger
from agentruntime.config import AuditConfig
from agentruntime.config import KnowledgeConfig
from agentruntime.config import LLMConfig
from agentruntime.config import load_process_settings
from agentruntime.config import RuntimeConfig
from agentruntime.database import InMemoryDatabaseAdapter
from agentruntime.engine import build_model_provider
from agentruntime.engine import ModelProvider
from agentruntime.errors import ConfigurationError
from agentruntime.knowledge import preprocess
from agentruntime.memory import InMemoryMemoryStore
from agentruntime.memory import MemoryStore
from agentruntime.memory import RedisMemoryStore
from agentruntime.models import Character
from agentruntime.models import Content
from agentruntime.models import knowledge_id
from agentruntime.models import KnowledgeContent
from agentruntime.models import KnowledgeItem
from agentruntime.models import Memory
from agentruntime.models.schemas import AddKnowledgeInput
from agentruntime.models.schemas import AddKnowledgeResult
from agentruntime.models.schemas import KnowledgeHit
from agentruntime.models.schemas import SearchKnowledgeInput
from agentruntime.models.schemas import SearchKnowledgeResult
from agentruntime.observability import record_latency
from agentruntime.runtime import AgentRuntime

mcp = FastMCP("agentruntime")

# ---------------------------------------------------------------------------
# Runtime instance (set via configure())
# ---------------------------------------------------------------------------

_runtime: AgentRuntime | None = None
_redis: Redis | None = None


async def configure(
    character: Character | None = None,
    *,
    redis_url: str | None = None,
    llm_config: LLMConfig | None = None,
    provider: ModelProvider | None = None,
    runtime_config: RuntimeConfig | None = None,
    knowledge_config: KnowledgeConfig | None = None,
    audit_config: AuditConfig | None = None,
    env_file: str | None = ".env",
    initialize: bool = True,
) -> AgentRuntime:
    """Build the runtime backing the MCP tools.

    Memory partitions live in Redis when *redis_url* is given, in process
    memory otherwise.
    """
    global _runtime, _redis
    await shutdown()

    memory_factory: Callable[[str], MemoryStore] = InMemoryMemoryStore
    if redis_url is not None:
        _redis = Redis.from_url(redis_url)
        memory_factory = partial(RedisMemoryStore, _redis)

    runtime = AgentRuntime(
        character=character or Character(name="Agent"),
        database=InMemoryDatabaseAdapter(),
        provider=provider or build_model_provider(llm_config or LLMConfig()),
        memory_factory=memory_factory,
        runtime_config=runtime_config,
        knowledge_config=knowledge_config,
        process_settings=load_process_settings(env_file),
        audit_logger=AuditLogger(audit_config or AuditConfig()),
    )
    if initialize:
        await runtime.initialize()
    _runtime = runtime
    return runtime


async def shutdown() -> None:
    """Stop the runtime and release backend clients."""
    global _runtime, _redis
    if _runtime is not None:
        await _runtime.stop()
        _runtime = None
    if _redis is not None:
        try:
            await _redis.aclose()
        except RuntimeError:
            # Tests may reconfigure across event loops.
            pass
        _redis = None


def _get_runtime() -> AgentRuntime:
    """Return the runtime instance or raise."""
    if _runtime is None:
        raise RuntimeError("Runtime not configured. Call configure() first.")
    return _runtime


def _validation_message(exc: ValidationError) -> str:
    err = exc.errors()[0] if exc.errors() else {}
    return str(err.get("msg", "Invalid input"))


# ---------------------------------------------------------------------------
# Tools
# ---------------------------------------------------------------------------


@mcp.tool
async def add_knowledge(
    text: str | None = None,
    source: str | None = None,
    metadata: dict | None = None,
) -> AddKnowledgeResult:
    """Ingest a piece of knowledge for the agent.

    Args:
        text: The knowledge text.
        source: Path or URL to load the text from when ``text`` is empty.
        metadata: Optional free-form metadata.
    """
    start = perf_counter()
    ok = False
    try:
        runtime = _get_runtime()
        try:
            validated = AddKnowledgeInput.model_validate(
                {"text": text, "source": source, "metadata": metadata}
            )
        except ValidationError as exc:
            return AddKnowledgeResult(
                knowledge_id="",
                status="rejected",
                error_code="validation_error",
                message=_validation_message(exc),
            )

        item = KnowledgeItem(
            id=knowledge_id(validated.text) if validated.text else "",
            agent_id=runtime.agent_id,
            content=KnowledgeContent(
                text=validated.text or "",
                source=validated.source,
                metadata=validated.metadata,
            ),
        )
        try:
            stored = await runtime.knowledge.set(item)
        except ConfigurationError as exc:
            return AddKnowledgeResult(
                knowledge_id="",
                status="rejected",
                error_code="load_error",
                message=str(exc),
            )
        ok = True
        if stored is None:
            return AddKnowledgeResult(knowledge_id=item.id, status="duplicate")
        return AddKnowledgeResult(knowledge_id=stored.id)
    finally:
        record_latency(
            operation="mcp.add_knowledge",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
async def search_knowledge(
    query: str,
    match_threshold: float = 0.1,
    count: int = 5,
) -> SearchKnowledgeResult:
    """Retrieve knowledge fragments relevant to a query.

    Args:
        query: Natural language query.
        match_threshold: Minimum cosine similarity (default 0.1).
        count: Maximum number of fragments (default 5).
    """
    start = perf_counter()
    ok = False
    try:
        runtime = _get_runtime()
        try:
            validated = SearchKnowledgeInput.model_validate(
                {"query": query, "match_threshold": match_threshold, "count": count}
            )
        except ValidationError as exc:
            return SearchKnowledgeResult(
                query=query,
                status="error",
                error_code="validation_error",
                message=_validation_message(exc),
            )

        message = Memory(
            agent_id=runtime.agent_id,
            user_id=runtime.agent_id,
            room_id=runtime.agent_id,
            content=Content(text=validated.query),
        )
        items = await runtime.knowledge.get(
            message,
            match_threshold=validated.match_threshold,
            count=validated.count,
        )
        ok = True
        return SearchKnowledgeResult(
            query=validated.query,
            items=[
                KnowledgeHit(
                    id=item.id,
                    text=item.content.text,
                    source=item.content.source,
                    similarity=item.similarity,
                )
                for item in items
            ],
        )
    finally:
        record_latency(
            operation="mcp.search_knowledge",
            duration_ms=(perf_counter() - start) * 1000,
            ok=ok,
        )


@mcp.tool
def preprocess_text(text: str) -> str:
    """Normalize text the way knowledge is normalized before embedding."""
    return preprocess(text)
