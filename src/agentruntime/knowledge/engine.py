"""Knowledge engine: ingestion and retrieval of long-term fragments.

Ingestion runs load -> preprocess -> chunk -> embed -> dedup-store.
Each item is persisted whole in the ``documents`` partition under its
content-addressed id, and chunk by chunk in the ``fragments`` partition,
which is what retrieval searches.  The document record is written last
and doubles as the existence probe, so re-ingesting identical text is a
no-op that costs one lookup.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from time import perf_counter

from agentruntime.audit import AuditEventType
from agentruntime.audit import AuditLogger
from agentruntime.config import KnowledgeConfig
from agentruntime.engine.llm_adapters import ModelProvider
from agentruntime.errors import ConfigurationError
from agentruntime.errors import KnowledgeLoadError
from agentruntime.knowledge.chunking import split_chunks
from agentruntime.knowledge.loader import FileKnowledgeLoader
from agentruntime.knowledge.loader import is_url
from agentruntime.knowledge.loader import KnowledgeLoader
from agentruntime.knowledge.loader import sanitize_relative_path
from agentruntime.knowledge.loader import UrlKnowledgeLoader
from agentruntime.knowledge.preprocess import preprocess
from agentruntime.memory.store import DuplicateMemoryError
from agentruntime.memory.store import MemoryStore
from agentruntime.models.character import KnowledgeSource
from agentruntime.models.character import PathKnowledge
from agentruntime.models.knowledge import knowledge_id
from agentruntime.models.knowledge import KnowledgeContent
from agentruntime.models.knowledge import KnowledgeItem
from agentruntime.models.memory import Content
from agentruntime.models.memory import Memory
from agentruntime.observability import record_degradation
from agentruntime.observability import record_latency

logger = logging.getLogger(__name__)


@dataclass
class IngestionReport:
    """Outcome of a best-effort directory ingestion."""

    directory: str
    files_found: int = 0
    ingested: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)


class KnowledgeEngine:
    """Ingests and retrieves knowledge for one agent."""

    preprocess = staticmethod(preprocess)

    def __init__(
        self,
        *,
        agent_id: str,
        documents: MemoryStore,
        fragments: MemoryStore,
        provider: ModelProvider,
        embedding_caches: Sequence[MemoryStore] = (),
        loader: KnowledgeLoader | None = None,
        config: KnowledgeConfig | None = None,
        audit_logger: AuditLogger | None = None,
    ) -> None:
        self.agent_id = agent_id
        self._documents = documents
        self._fragments = fragments
        self._provider = provider
        self._caches = tuple(embedding_caches) or (fragments,)
        self._loader = loader or FileKnowledgeLoader()
        self._remote_loader = UrlKnowledgeLoader()
        self._config = config or KnowledgeConfig()
        self._audit = audit_logger

    @property
    def knowledge_root(self) -> Path:
        return Path(self._config.knowledge_root)

    # ------------------------------------------------------------------
    # Embedding
    # ------------------------------------------------------------------

    async def embed_text(self, text: str) -> list[float] | None:
        """Return a cached embedding for *text*, else ask the provider."""
        if not text:
            return None
        for cache in self._caches:
            cached = await cache.get_cached_embeddings(text)
            if cached:
                return list(cached[0])
        vector = await self._provider.embed(text)
        return list(vector) if vector else None

    # ------------------------------------------------------------------
    # Retrieval
    # ------------------------------------------------------------------

    async def get(
        self,
        message: Memory,
        *,
        room_id: str | None = None,
        match_threshold: float | None = None,
        count: int | None = None,
        use_agent_filter: bool = False,
    ) -> list[KnowledgeItem]:
        """Return knowledge relevant to *message*.

        Never raises: missing embeddings and backend failures both yield
        an empty list.
        """
        start = perf_counter()
        try:
            query = preprocess(message.content.text)
            if not query:
                logger.warning("Empty processed text for knowledge query")
                record_degradation(operation="knowledge.get", reason="empty_query")
                return []

            embedding = await self.embed_text(query)
            # a zero vector has no direction to rank by
            if not embedding or not any(embedding):
                record_degradation(operation="knowledge.get", reason="no_embedding")
                return []

            threshold = (
                self._config.match_threshold
                if match_threshold is None
                else match_threshold
            )
            memories = await self._fragments.search_memories_by_embedding(
                embedding,
                room_id=room_id or self.agent_id,
                match_threshold=threshold,
                count=count or self._config.match_count,
                agent_id=message.agent_id if use_agent_filter else None,
                unique=True,
            )
            return [self._to_item(memory) for memory in memories]
        except Exception:
            logger.exception("Failed to get knowledge items for message %s", message.id)
            record_degradation(operation="knowledge.get", reason="backend_error")
            return []
        finally:
            record_latency(
                operation="knowledge.get", duration_ms=(perf_counter() - start) * 1000
            )

    @staticmethod
    def _to_item(memory: Memory) -> KnowledgeItem:
        content = memory.content
        return KnowledgeItem(
            id=memory.id,
            agent_id=memory.agent_id,
            content=KnowledgeContent(
                text=content.text,
                embedding=[float(v) for v in content.embedding]
                if content.embedding
                else None,
                source=content.source,
                type="rag" if content.type == "rag" else "static",
                metadata=content.metadata,
            ),
            created_at=memory.created_at,
            similarity=memory.similarity,
        )

    # ------------------------------------------------------------------
    # Ingestion
    # ------------------------------------------------------------------

    async def _materialize(self, item: KnowledgeItem) -> KnowledgeItem:
        """Load text for items declared by reference."""
        source = item.content.source
        if item.content.text or not source:
            return item
        loader = self._remote_loader if is_url(source) else self._loader
        loaded = await loader.load_content(path=source, metadata=item.content.metadata)
        return item.model_copy(
            update={
                "content": item.content.model_copy(
                    update={
                        "text": loaded.text,
                        "source": loaded.source,
                        "type": loaded.type,
                        "metadata": loaded.metadata,
                    }
                )
            }
        )

    async def set(self, item: KnowledgeItem) -> KnowledgeItem | None:
        """Ingest *item*; returns the stored item, or ``None`` if already present."""
        start = perf_counter()
        ok = False
        try:
            item = await self._materialize(item)
            text = item.content.text
            if not text:
                raise ConfigurationError("Knowledge item has neither text nor source")
            if not item.id:
                item = item.model_copy(update={"id": knowledge_id(text)})

            if await self._documents.get_memory_by_id(item.id) is not None:
                logger.debug("Knowledge %s already ingested, skipping", item.id)
                await self._audit_event(
                    AuditEventType.KNOWLEDGE_SKIPPED, knowledge_id=item.id
                )
                ok = True
                return None

            if not item.content.embedding:
                embedding = await self.embed_text(preprocess(text))
                item = item.model_copy(
                    update={
                        "content": item.content.model_copy(
                            update={"embedding": embedding}
                        )
                    }
                )

            fragment_count = await self._store_fragments(item)
            try:
                await self._documents.create_memory(
                    self._to_memory(item, item.content)
                )
            except DuplicateMemoryError:
                # a concurrent ingestion of the same text won the write
                logger.debug("Knowledge %s stored concurrently, skipping", item.id)
                await self._audit_event(
                    AuditEventType.KNOWLEDGE_SKIPPED, knowledge_id=item.id
                )
                ok = True
                return None
            logger.info(
                "Ingested knowledge %s (%d fragments): %s",
                item.id,
                fragment_count,
                text[:100],
            )
            await self._audit_event(
                AuditEventType.KNOWLEDGE_INGESTED,
                knowledge_id=item.id,
                source=item.content.source,
                fragments=fragment_count,
            )
            ok = True
            return item
        except Exception:
            logger.exception("Failed to set knowledge item %s", item.id or "<new>")
            raise
        finally:
            record_latency(
                operation="knowledge.set",
                duration_ms=(perf_counter() - start) * 1000,
                ok=ok,
            )

    async def _store_fragments(self, item: KnowledgeItem) -> int:
        chunks = split_chunks(
            item.content.text,
            chunk_size=self._config.chunk_size,
            chunk_overlap=self._config.chunk_overlap,
        )
        stored = 0
        for index, chunk in enumerate(chunks):
            if len(chunks) == 1 and item.content.embedding:
                embedding = item.content.embedding
            else:
                embedding = await self.embed_text(preprocess(chunk))
            if not embedding:
                continue
            metadata = dict(item.content.metadata or {})
            metadata.update({"document_id": item.id, "chunk_index": index})
            fragment = item.content.model_copy(
                update={"text": chunk, "embedding": embedding, "metadata": metadata}
            )
            memory = self._to_memory(
                item.model_copy(update={"id": knowledge_id(f"{item.id}:{index}")}),
                fragment,
            )
            try:
                await self._fragments.create_memory(memory)
            except DuplicateMemoryError:
                # left behind by an interrupted earlier ingestion
                logger.debug("Fragment %s already stored", memory.id)
            stored += 1
        return stored

    def _to_memory(self, item: KnowledgeItem, content: KnowledgeContent) -> Memory:
        return Memory(
            id=item.id,
            agent_id=item.agent_id,
            user_id=self.agent_id,
            room_id=self.agent_id,
            content=Content(
                text=content.text,
                embedding=content.embedding,
                source=content.source,
                type=content.type,
                metadata=content.metadata,
            ),
            created_at=item.created_at,
        )

    async def ingest_texts(self, texts: Sequence[str]) -> int:
        """Ingest plain strings; returns how many were newly stored."""
        stored = 0
        for text in texts:
            item = KnowledgeItem(
                id=knowledge_id(text),
                agent_id=self.agent_id,
                content=KnowledgeContent(text=text),
            )
            if await self.set(item) is not None:
                stored += 1
        return stored

    async def ingest_paths(self, items: Sequence[PathKnowledge]) -> int:
        """Ingest individual files under the knowledge root.

        A missing file aborts the whole call.
        """
        texts: list[str] = []
        for entry in items:
            file_path = self.knowledge_root / sanitize_relative_path(entry.path)
            if not file_path.is_file():
                raise KnowledgeLoadError(f"Knowledge file not found: {file_path}")
            texts.append(await asyncio.to_thread(file_path.read_text, encoding="utf-8"))
        return await self.ingest_texts(texts)

    async def load_sources(self, sources: Sequence[KnowledgeSource]) -> int:
        """Ingest declared ``{path|content, metadata}`` sources."""
        stored = 0
        for source in sources:
            if not source.path and not source.content:
                raise ConfigurationError(
                    "Knowledge source must have either path or content"
                )
            loader = (
                self._remote_loader
                if source.path and is_url(source.path)
                else self._loader
            )
            loaded = await loader.load_content(
                path=source.path, content=source.content, metadata=source.metadata
            )
            item = KnowledgeItem(
                id=knowledge_id(loaded.text),
                agent_id=self.agent_id,
                content=KnowledgeContent(
                    text=loaded.text,
                    source=loaded.source,
                    type=loaded.type,
                    metadata=loaded.metadata,
                ),
            )
            if await self.set(item) is not None:
                stored += 1
        return stored

    # ------------------------------------------------------------------
    # Directory ingestion
    # ------------------------------------------------------------------

    def _resolve_directory(self, directory: str) -> tuple[str, Path]:
        if not directory:
            raise ConfigurationError("No knowledge directory specified")
        sanitized = sanitize_relative_path(directory)
        root = self.knowledge_root.resolve()
        dir_path = (root / sanitized).resolve()
        if dir_path != root and root not in dir_path.parents:
            raise ConfigurationError(f"Knowledge directory escapes root: {directory}")
        if not dir_path.is_dir():
            raise ConfigurationError(f"Knowledge directory does not exist: {sanitized}")
        return sanitized, dir_path

    def _matching_files(self, dir_path: Path) -> list[Path]:
        files: set[Path] = set()
        for pattern in self._config.file_patterns:
            for path in dir_path.rglob(pattern):
                depth = len(path.relative_to(dir_path).parts)
                if path.is_file() and depth <= self._config.max_glob_depth:
                    files.add(path)
        return sorted(files)

    async def ingest_directory(
        self, directory: str, *, shared: bool = False
    ) -> IngestionReport:
        """Ingest every matching file under *directory*, best effort.

        Files are processed in small concurrent batches.  A failing file
        is logged and recorded in the report; only directory-level
        problems raise.
        """
        sanitized, dir_path = self._resolve_directory(directory)
        files = await asyncio.to_thread(self._matching_files, dir_path)
        report = IngestionReport(directory=sanitized, files_found=len(files))
        if not files:
            logger.warning("No matching files found in directory: %s", sanitized)
            return report

        logger.info("Found %d knowledge files in %s", len(files), sanitized)
        batch_size = self._config.directory_batch_size
        for offset in range(0, len(files), batch_size):
            batch = files[offset : offset + batch_size]
            await asyncio.gather(
                *(self._ingest_file(path, dir_path, shared, report) for path in batch)
            )
            logger.debug(
                "Completed batch %d/%d files",
                min(offset + batch_size, len(files)),
                len(files),
            )
        logger.info(
            "Processed directory %s: %d ingested, %d skipped, %d failed",
            sanitized,
            len(report.ingested),
            len(report.skipped),
            len(report.failed),
        )
        return report

    async def _ingest_file(
        self, path: Path, dir_path: Path, shared: bool, report: IngestionReport
    ) -> None:
        relative = path.relative_to(dir_path).as_posix()
        try:
            text = await asyncio.to_thread(
                path.read_text, encoding="utf-8", errors="replace"
            )
            item = KnowledgeItem(
                id=knowledge_id(text),
                agent_id=self.agent_id,
                content=KnowledgeContent(
                    text=text,
                    source=f"{report.directory}/{relative}" if report.directory else relative,
                    metadata={"shared": shared},
                ),
            )
            if await self.set(item) is None:
                report.skipped.append(relative)
            else:
                report.ingested.append(relative)
        except Exception as exc:
            logger.exception("Failed to process knowledge file: %s", relative)
            report.failed[relative] = str(exc)

    async def _audit_event(self, event_type: AuditEventType, **payload) -> None:
        if self._audit is None:
            return
        await self._audit.record(event_type, agent_id=self.agent_id, **payload)
