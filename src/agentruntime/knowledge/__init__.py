"""Knowledge domain — RAG ingestion and retrieval."""

from agentruntime.knowledge.chunking import split_chunks
from agentruntime.knowledge.engine import IngestionReport
from agentruntime.knowledge.engine import KnowledgeEngine
from agentruntime.knowledge.loader import create_knowledge_loader
from agentruntime.knowledge.loader import FileKnowledgeLoader
from agentruntime.knowledge.loader import KnowledgeLoader
from agentruntime.knowledge.loader import LoadedContent
from agentruntime.knowledge.loader import sanitize_relative_path
from agentruntime.knowledge.loader import UrlKnowledgeLoader
from agentruntime.knowledge.preprocess import preprocess
from agentruntime.models.knowledge import knowledge_id

__all__ = [
    "FileKnowledgeLoader",
    "IngestionReport",
    "KnowledgeEngine",
    "KnowledgeLoader",
    "LoadedContent",
    "UrlKnowledgeLoader",
    "create_knowledge_loader",
    "knowledge_id",
    "preprocess",
    "sanitize_relative_path",
    "split_chunks",
]
