"""Unit tests for knowledge ingestion and retrieval."""

from __future__ import annotations

import asyncio

import pytest

from agentruntime.audit import AuditEventType
from agentruntime.config import KnowledgeConfig
from agentruntime.errors import ConfigurationError
from agentruntime.errors import KnowledgeLoadError
from agentruntime.knowledge import KnowledgeEngine
from agentruntime.memory import InMemoryMemoryStore
from agentruntime.models import Content
from agentruntime.models import knowledge_id
from agentruntime.models import KnowledgeContent
from agentruntime.models import KnowledgeItem
from agentruntime.models import KnowledgeSource
from agentruntime.models import Memory
from agentruntime.models import PathKnowledge
from agentruntime.observability import degradation_snapshot
from agentruntime.observability import reset_latency_metrics

from .conftest import AGENT_ID

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _item(text: str = "", *, source: str | None = None) -> KnowledgeItem:
    return KnowledgeItem(
        agent_id=AGENT_ID,
        content=KnowledgeContent(text=text, source=source),
    )


def _message(text: str, *, agent_id: str = AGENT_ID) -> Memory:
    return Memory(
        agent_id=agent_id,
        user_id="user-1",
        room_id="room-1",
        content=Content(text=text),
    )


class _FailingSearchStore(InMemoryMemoryStore):
    async def search_memories_by_embedding(self, embedding, **kwargs):
        raise RuntimeError("store unreachable")


# ---------------------------------------------------------------------------
# Ingestion
# ---------------------------------------------------------------------------


class TestKnowledgeSet:
    async def test_derives_content_addressed_id(self, engine):
        stored = await engine.set(_item("The sky is blue"))
        assert stored is not None
        assert stored.id == knowledge_id("The sky is blue")

    async def test_identical_text_persists_once(self, engine, documents, fragments):
        first = await engine.set(_item("The sky is blue"))
        second = await engine.set(_item("The sky is blue"))

        assert first is not None
        assert second is None
        assert len(documents) == 1
        assert len(fragments) == 1

    async def test_existence_probe_skips_embedding(self, engine, provider):
        await engine.set(_item("Water boils at 100 degrees"))
        calls = provider.embed_calls

        await engine.set(_item("Water boils at 100 degrees"))

        assert provider.embed_calls == calls

    async def test_embedding_computed_and_persisted(self, engine, documents):
        stored = await engine.set(_item("Grass is green"))
        assert stored is not None
        assert stored.content.embedding

        persisted = await documents.get_memory_by_id(stored.id)
        assert persisted is not None
        assert persisted.content.embedding == stored.content.embedding
        assert persisted.room_id == AGENT_ID

    async def test_loads_text_from_source_when_empty(self, engine, tmp_path):
        (tmp_path / "notes.md").write_text("Mars is red", encoding="utf-8")

        stored = await engine.set(_item(source="notes.md"))

        assert stored is not None
        assert stored.content.text == "Mars is red"
        assert stored.content.source == "notes.md"
        assert stored.id == knowledge_id("Mars is red")

    async def test_missing_source_file_is_fatal(self, engine):
        with pytest.raises(KnowledgeLoadError):
            await engine.set(_item(source="missing.md"))

    async def test_absolute_source_cannot_leave_loader_root(
        self, engine, documents, tmp_path
    ):
        outside = tmp_path.parent / f"{tmp_path.name}-outside.txt"
        outside.write_text("Outside the knowledge root", encoding="utf-8")

        with pytest.raises(KnowledgeLoadError, match="not found"):
            await engine.set(_item(source=str(outside)))
        assert len(documents) == 0

    async def test_parent_traversal_source_cannot_leave_loader_root(
        self, engine, documents, tmp_path
    ):
        outside = tmp_path.parent / f"{tmp_path.name}-outside.txt"
        outside.write_text("Outside the knowledge root", encoding="utf-8")

        with pytest.raises(KnowledgeLoadError):
            await engine.set(_item(source=f"../{outside.name}"))
        assert len(documents) == 0

    async def test_parent_traversal_source_is_stripped(self, engine, tmp_path):
        (tmp_path / "notes.md").write_text("Mars is red", encoding="utf-8")

        stored = await engine.set(_item(source="../notes.md"))

        assert stored is not None
        assert stored.content.source == "notes.md"

    async def test_concurrent_identical_text_persists_once(
        self, engine, documents, fragments, provider
    ):
        provider.embed_delay = 0.01

        results = await asyncio.gather(
            engine.set(_item("Same text twice")), engine.set(_item("Same text twice"))
        )

        assert sorted(r is None for r in results) == [False, True]
        assert len(documents) == 1
        assert len(fragments) == 1

    async def test_neither_text_nor_source_is_fatal(self, engine):
        with pytest.raises(ConfigurationError):
            await engine.set(_item())

    async def test_long_text_is_chunked_into_fragments(
        self, documents, fragments, provider, tmp_path
    ):
        engine = KnowledgeEngine(
            agent_id=AGENT_ID,
            documents=documents,
            fragments=fragments,
            provider=provider,
            config=KnowledgeConfig(chunk_size=60, chunk_overlap=5),
        )
        text = " ".join(f"Fact number {i} is about the ocean." for i in range(10))

        stored = await engine.set(_item(text))

        assert stored is not None
        assert len(documents) == 1
        assert len(fragments) > 1
        first = await fragments.get_memory_by_id(knowledge_id(f"{stored.id}:0"))
        assert first is not None
        assert first.content.metadata == {"document_id": stored.id, "chunk_index": 0}

    async def test_audits_ingested_and_skipped(self, engine, audit_logger):
        await engine.set(_item("Snow is white"))
        await engine.set(_item("Snow is white"))

        ingested = await audit_logger.read_events(
            event_type=AuditEventType.KNOWLEDGE_INGESTED
        )
        skipped = await audit_logger.read_events(
            event_type=AuditEventType.KNOWLEDGE_SKIPPED
        )
        assert len(ingested) == 1
        assert len(skipped) == 1
        assert skipped[0].payload["knowledge_id"] == knowledge_id("Snow is white")


class TestIngestTexts:
    async def test_counts_only_new_items(self, engine, documents):
        stored = await engine.ingest_texts(["a fact", "b fact", "a fact"])
        assert stored == 2
        assert len(documents) == 2


class TestIngestPaths:
    async def test_reads_files_under_knowledge_root(self, engine, knowledge_root):
        (knowledge_root / "sky.md").write_text("The sky is blue", encoding="utf-8")
        assert await engine.ingest_paths([PathKnowledge(path="sky.md")]) == 1

    async def test_parent_traversal_is_stripped(self, engine, knowledge_root):
        (knowledge_root / "sky.md").write_text("The sky is blue", encoding="utf-8")
        assert await engine.ingest_paths([PathKnowledge(path="../sky.md")]) == 1

    async def test_missing_file_is_fatal(self, engine):
        with pytest.raises(KnowledgeLoadError, match="not found"):
            await engine.ingest_paths([PathKnowledge(path="absent.md")])


class TestLoadSources:
    async def test_inline_and_path_sources(self, engine, documents, tmp_path):
        (tmp_path / "facts.txt").write_text("Ice is cold", encoding="utf-8")

        stored = await engine.load_sources(
            [
                KnowledgeSource(content="Fire is hot", metadata={"topic": "fire"}),
                KnowledgeSource(path="facts.txt"),
            ]
        )

        assert stored == 2
        inline = await documents.get_memory_by_id(knowledge_id("Fire is hot"))
        assert inline is not None
        assert inline.content.source == "inline"
        assert inline.content.metadata == {"topic": "fire"}

    async def test_source_without_path_or_content_is_fatal(self, engine):
        with pytest.raises(ConfigurationError, match="either path or content"):
            await engine.load_sources([KnowledgeSource(metadata={"a": 1})])


# ---------------------------------------------------------------------------
# Retrieval
# ---------------------------------------------------------------------------


class TestKnowledgeGet:
    def setup_method(self):
        reset_latency_metrics()

    def teardown_method(self):
        reset_latency_metrics()

    async def test_sky_question_finds_sky_fact(self, engine):
        stored = await engine.set(_item("The sky is blue", source="inline"))
        assert stored is not None

        results = await engine.get(_message("what color is the sky"), match_threshold=0.1)

        assert [r.content.text for r in results] == ["The sky is blue"]
        assert results[0].content.metadata["document_id"] == stored.id
        assert results[0].content.embedding
        assert results[0].similarity is not None
        assert results[0].similarity >= 0.1

    @pytest.mark.parametrize("text", ["", "   ", "`only code`", "!!!"])
    async def test_degenerate_query_returns_empty(self, engine, text):
        await engine.set(_item("The sky is blue"))

        assert await engine.get(_message(text)) == []
        assert degradation_snapshot()["knowledge.get"]["empty_query"] == 1

    async def test_zero_vector_query_returns_empty(self, engine):
        await engine.set(_item("The sky is blue"))

        assert await engine.get(_message("???"), match_threshold=0.0) == []
        assert degradation_snapshot()["knowledge.get"]["no_embedding"] == 1

    async def test_store_failure_returns_empty(self, documents, provider):
        engine = KnowledgeEngine(
            agent_id=AGENT_ID,
            documents=documents,
            fragments=_FailingSearchStore("fragments"),
            provider=provider,
        )

        assert await engine.get(_message("what color is the sky")) == []
        assert degradation_snapshot()["knowledge.get"]["backend_error"] == 1

    async def test_provider_failure_returns_empty(self, engine, provider):
        await engine.set(_item("The sky is blue"))
        provider.fail_on = "sky"

        assert await engine.get(_message("what color is the sky")) == []

    async def test_count_caps_results(self, engine):
        await engine.ingest_texts(
            ["The sky is blue", "The sky is wide", "The sky is high"]
        )

        results = await engine.get(_message("the sky"), count=2)

        assert len(results) == 2

    async def test_threshold_filters_weak_matches(self, engine):
        await engine.set(_item("The sky is blue"))
        assert await engine.get(_message("volcanic basalt"), match_threshold=0.5) == []
        assert (
            await engine.get(_message("what color is the sky"), match_threshold=0.99)
            == []
        )

    async def test_agent_filter_scopes_results(self, engine):
        await engine.set(_item("The sky is blue"))
        stranger = _message("what color is the sky", agent_id="someone-else")

        assert await engine.get(stranger) != []
        assert await engine.get(stranger, use_agent_filter=True) == []

    async def test_preprocess_is_exposed(self, engine):
        assert engine.preprocess("# The SKY") == "the sky"
