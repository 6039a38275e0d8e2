"""Text-generation / embedding providers and factory helpers."""

from __future__ import annotations

import asyncio
import hashlib
import json
import math
import re
from enum import Enum
from typing import Any
from typing import Protocol
from typing import runtime_checkable
from urllib.error import HTTPError
from urllib.error import URLError
from urllib.request import Request
from urllib.request import urlopen

from agentruntime.config import LLMConfig


class ModelClass(str, Enum):
    """Size class requested from the generation provider."""

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"
    EMBEDDING = "embedding"


class LLMError(Exception):
    """Raised by providers when a call fails."""


@runtime_checkable
class ModelProvider(Protocol):
    """Protocol for embedding and text-generation providers."""

    async def embed(self, text: str) -> list[float]: ...

    async def generate_text(
        self, context: str, model_class: ModelClass = ModelClass.SMALL
    ) -> str: ...


# ---------------------------------------------------------------------------
# Hashing provider
# ---------------------------------------------------------------------------

_TOKEN_RE = re.compile(r"[a-z0-9]+")


class HashingProvider:
    """Deterministic offline provider.

    Embeddings are signed feature-hashed bags of words, L2-normalized, so
    texts sharing tokens have positive cosine similarity.  Generation
    always answers with an empty JSON array.
    """

    def __init__(self, dimensions: int = 384) -> None:
        if dimensions <= 0:
            raise ValueError("dimensions must be positive")
        self._dimensions = dimensions

    async def embed(self, text: str) -> list[float]:
        vector = [0.0] * self._dimensions
        for token in _TOKEN_RE.findall(text.lower()):
            digest = hashlib.sha256(token.encode("utf-8")).digest()
            index = int.from_bytes(digest[:4], "big") % self._dimensions
            vector[index] += 1.0 if digest[4] & 1 else -1.0
        norm = math.sqrt(sum(v * v for v in vector))
        if norm == 0.0:
            return vector
        return [v / norm for v in vector]

    async def generate_text(
        self, context: str, model_class: ModelClass = ModelClass.SMALL
    ) -> str:
        del context, model_class
        return "[]"


# ---------------------------------------------------------------------------
# OpenAI-compatible provider
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """OpenAI-compatible chat-completions and embeddings adapter."""

    def __init__(
        self,
        *,
        model: str,
        embedding_model: str,
        api_key: str,
        base_url: str = "https://api.openai.com/v1",
        temperature: float = 0.2,
        max_tokens: int = 4096,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._model = model
        self._embedding_model = embedding_model
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._timeout_seconds = timeout_seconds

    async def embed(self, text: str) -> list[float]:
        data = await asyncio.to_thread(
            self._post, "embeddings", {"model": self._embedding_model, "input": text}
        )
        try:
            vector = data["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMError("provider response missing data[0].embedding") from exc
        return [float(v) for v in vector]

    async def generate_text(
        self, context: str, model_class: ModelClass = ModelClass.SMALL
    ) -> str:
        del model_class
        data = await asyncio.to_thread(
            self._post,
            "chat/completions",
            {
                "model": self._model,
                "messages": [{"role": "user", "content": context}],
                "temperature": self._temperature,
                "max_tokens": self._max_tokens,
            },
        )
        try:
            content = data["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise LLMError(
                "provider response missing choices[0].message.content"
            ) from exc
        if isinstance(content, str):
            return content
        raise LLMError("provider response content must be a string")

    def _post(self, path: str, payload: dict[str, Any]) -> Any:
        request = Request(
            url=f"{self._base_url}/{path}",
            data=json.dumps(payload).encode("utf-8"),
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            method="POST",
        )
        try:
            with urlopen(request, timeout=self._timeout_seconds) as response:
                raw = response.read().decode("utf-8")
        except HTTPError as exc:
            detail = exc.read().decode("utf-8", errors="replace")
            raise LLMError(f"provider HTTP {exc.code}: {detail[:200]}") from exc
        except URLError as exc:
            raise LLMError(f"provider network error: {exc.reason}") from exc
        except OSError as exc:
            raise LLMError(f"provider IO error: {exc}") from exc
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise LLMError("provider returned invalid JSON") from exc


def build_model_provider(config: LLMConfig) -> ModelProvider:
    """Create a concrete provider from ``LLMConfig``."""

    provider = config.provider.strip().lower()
    if provider == "openai":
        if not config.api_key:
            raise ValueError("llm_config.api_key is required when provider='openai'")
        return OpenAICompatibleProvider(
            model=config.model,
            embedding_model=config.embedding_model,
            api_key=config.api_key,
            base_url=config.base_url,
            temperature=config.temperature,
            max_tokens=config.max_tokens,
            timeout_seconds=config.timeout_seconds,
        )
    if provider == "hashing":
        return HashingProvider(dimensions=config.embedding_dimensions)
    raise ValueError(
        f"Unsupported llm_config.provider '{config.provider}'. "
        "Supported providers: openai, hashing."
    )
