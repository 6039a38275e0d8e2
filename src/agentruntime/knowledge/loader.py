"""Content loaders that materialize knowledge declared by reference.

Two environments share one contract: ``local`` reads files relative to
a base directory, ``remote`` fetches URLs.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from dataclasses import field
from pathlib import Path
from typing import Any
from typing import Literal
from typing import Protocol
from typing import runtime_checkable
from urllib.error import HTTPError
from urllib.error import URLError
from urllib.request import Request
from urllib.request import urlopen

from agentruntime.errors import KnowledgeLoadError

logger = logging.getLogger(__name__)

INLINE_SOURCE = "inline"


@dataclass(frozen=True)
class LoadedContent:
    text: str
    source: str
    type: Literal["static", "rag"] = "static"
    metadata: dict[str, Any] | None = field(default=None)


@runtime_checkable
class KnowledgeLoader(Protocol):
    async def load_content(
        self,
        *,
        path: str | None = None,
        content: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> LoadedContent: ...

    async def exists(self, path: str) -> bool: ...


def _inline(content: str, metadata: dict[str, Any] | None) -> LoadedContent:
    return LoadedContent(text=content, source=INLINE_SOURCE, metadata=metadata)


def is_url(source: str) -> bool:
    return source.startswith(("http://", "https://"))


def sanitize_relative_path(path: str) -> str:
    """Strip parent-directory traversal sequences and leading separators."""
    return path.replace("..", "").lstrip("/\\")


class FileKnowledgeLoader:
    """Reads knowledge files relative to *base_dir* (default: cwd)."""

    def __init__(self, base_dir: str | Path | None = None) -> None:
        self._base_dir = Path(base_dir) if base_dir is not None else Path.cwd()

    def _resolve(self, path: str) -> Path:
        """Join *path* to the base directory; it must stay inside it."""
        root = self._base_dir.resolve()
        file_path = (root / sanitize_relative_path(path)).resolve()
        if file_path != root and root not in file_path.parents:
            raise KnowledgeLoadError(f"Knowledge path escapes base directory: {path}")
        return file_path

    async def load_content(
        self,
        *,
        path: str | None = None,
        content: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> LoadedContent:
        if content:
            return _inline(content, metadata)
        if not path:
            raise KnowledgeLoadError("Either path or content must be provided")

        file_path = self._resolve(path)
        if not file_path.is_file():
            raise KnowledgeLoadError(f"Knowledge file not found: {file_path}")
        text = await asyncio.to_thread(file_path.read_text, encoding="utf-8")
        return LoadedContent(
            text=text, source=sanitize_relative_path(path), metadata=metadata
        )

    async def exists(self, path: str) -> bool:
        try:
            return self._resolve(path).is_file()
        except KnowledgeLoadError:
            return False


class UrlKnowledgeLoader:
    """Fetches knowledge over HTTP(S)."""

    def __init__(self, *, base_url: str = "", timeout_seconds: float = 30.0) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout_seconds = timeout_seconds

    def _resolve(self, path: str) -> str:
        if is_url(path) or not self._base_url:
            return path
        return f"{self._base_url}/{path.lstrip('/')}"

    async def load_content(
        self,
        *,
        path: str | None = None,
        content: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> LoadedContent:
        if content:
            return _inline(content, metadata)
        if not path:
            raise KnowledgeLoadError("Either path or content must be provided")

        try:
            text = await asyncio.to_thread(self._fetch, self._resolve(path), "GET")
        except (HTTPError, URLError, OSError, ValueError) as exc:
            raise KnowledgeLoadError(f"Failed to load knowledge file: {path}") from exc
        return LoadedContent(text=text, source=path, metadata=metadata)

    async def exists(self, path: str) -> bool:
        try:
            await asyncio.to_thread(self._fetch, self._resolve(path), "HEAD")
        except (HTTPError, URLError, OSError, ValueError) as exc:
            logger.debug("knowledge probe failed for %s: %s", path, exc)
            return False
        return True

    def _fetch(self, url: str, method: str) -> str:
        request = Request(url=url, method=method)
        with urlopen(request, timeout=self._timeout_seconds) as response:
            if method == "HEAD":
                return ""
            charset = response.headers.get_content_charset() or "utf-8"
            return response.read().decode(charset, errors="replace")


def create_knowledge_loader(
    environment: str = "local", *, base_dir: str | Path | None = None
) -> KnowledgeLoader:
    """Pick the loader for the runtime environment (``local`` or ``remote``)."""
    env = environment.strip().lower()
    if env in ("local", "node"):
        return FileKnowledgeLoader(base_dir)
    if env in ("remote", "browser"):
        return UrlKnowledgeLoader()
    raise ValueError(
        f"Unsupported knowledge environment '{environment}'. "
        "Supported environments: local, remote."
    )
