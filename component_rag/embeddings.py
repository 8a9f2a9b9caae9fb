"""Embedding backends with a deterministic per-item fallback.

Backends (selected by :class:`~component_rag.config.EmbeddingConfig`):

========== ========================================== ===============================
Key        Endpoint                                   Notes
========== ========================================== ===============================
ollama     ``{ollama_url}/api/embeddings``            Local model server, preferred
openai     ``https://api.openai.com/v1/embeddings``   Hosted, needs an API key
hash       (none)                                     FNV-1a + sine, no network
========== ========================================== ===============================

During indexing every text is tried on the configured backend and, if that
single call fails or times out, substituted with the hash vector.  Other
items in the batch still go to the primary backend.  Query embeddings never
fall back: a hash vector is not comparable with model vectors, so the error
propagates to the caller instead.
"""

from __future__ import annotations

import logging
import math
import threading
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Iterable, List, Optional, Sequence

import requests

from .config import EmbeddingConfig
from .errors import EmbeddingError

logger = logging.getLogger(__name__)

FNV_OFFSET = 2166136261
FNV_PRIME = 16777619
SINE_STEP = 0.000113


# ===================================================================
# Backends
# ===================================================================

class EmbeddingBackend(ABC):
    """Maps one string to one vector."""

    model_key = "unknown"

    @abstractmethod
    def embed_text(self, text: str) -> List[float]:
        """Embed *text*.

        Raises:
            EmbeddingError: on non-2xx status, timeout, or malformed body.
        """
        ...


class OllamaEmbeddingBackend(EmbeddingBackend):
    """Local Ollama server (``POST /api/embeddings``)."""

    def __init__(self, model: str, base_url: str, timeout: float = 15.0) -> None:
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.model_key = f"ollama:{model}"

    def embed_text(self, text: str) -> List[float]:
        payload = _post_json(
            f"{self.base_url}/api/embeddings",
            {"model": self.model, "prompt": text},
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )
        return _as_vector(payload.get("embedding") if isinstance(payload, dict) else None)


class OpenAIEmbeddingBackend(EmbeddingBackend):
    """OpenAI-compatible hosted embeddings API."""

    def __init__(
        self,
        model: str,
        api_key: str,
        endpoint: str = "https://api.openai.com/v1/embeddings",
        timeout: float = 15.0,
    ) -> None:
        self.model = model
        self.api_key = api_key
        self.endpoint = endpoint
        self.timeout = timeout
        self.model_key = f"openai:{model}"

    def embed_text(self, text: str) -> List[float]:
        if not self.api_key:
            raise EmbeddingError("OpenAI embeddings require an API key")
        payload = _post_json(
            self.endpoint,
            {"model": self.model, "input": text},
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.api_key}",
            },
            timeout=self.timeout,
        )
        try:
            vec = payload["data"][0]["embedding"]
        except (KeyError, IndexError, TypeError) as exc:
            raise EmbeddingError("Response missing data[0].embedding") from exc
        return _as_vector(vec)


class HashFallbackEmbedder(EmbeddingBackend):
    """Deterministic pseudo-embedding computed locally.

    The string is folded through 32-bit FNV-1a over its UTF-16 code units and
    coordinate ``i`` is ``sin((hash + i) * 0.000113)``.  Identical strings
    always give bit-identical vectors.
    """

    model_key = "hash"

    def __init__(self, dim: int = 768) -> None:
        self.dim = dim

    def embed_text(self, text: str) -> List[float]:
        h = fnv1a_32(text)
        return [math.sin((h + i) * SINE_STEP) for i in range(self.dim)]


def fnv1a_32(text: str) -> int:
    h = FNV_OFFSET
    units = text.encode("utf-16-le")
    for i in range(0, len(units), 2):
        h ^= units[i] | (units[i + 1] << 8)
        h = (h * FNV_PRIME) & 0xFFFFFFFF
    return h


# ===================================================================
# Embedder (primary backend + per-item fallback)
# ===================================================================

class Embedder:
    """Batch embedding with bounded concurrency and per-item fallback."""

    def __init__(
        self,
        backend: EmbeddingBackend,
        fallback: Optional[HashFallbackEmbedder] = None,
        workers: int = 4,
    ) -> None:
        self.backend = backend
        self.fallback = fallback or HashFallbackEmbedder()
        self.workers = max(1, workers)
        self.fallback_count = 0
        self._lock = threading.Lock()

    @property
    def model_key(self) -> str:
        return self.backend.model_key

    def embed(self, texts: Iterable[str]) -> List[List[float]]:
        """Embed *texts*; result ``i`` always belongs to ``texts[i]``."""
        items = list(texts)
        if not items:
            return []
        if self.workers == 1 or len(items) == 1:
            return [self._embed_item(t) for t in items]
        with ThreadPoolExecutor(max_workers=min(self.workers, len(items))) as pool:
            return list(pool.map(self._embed_item, items))

    def embed_query(self, text: str) -> List[float]:
        """Embed a query on the primary backend only; errors propagate."""
        return self.backend.embed_text(text)

    def _embed_item(self, text: str) -> List[float]:
        try:
            return self.backend.embed_text(text)
        except EmbeddingError as exc:
            logger.warning(
                "Embedding via %s failed (%s); substituting hash vector.",
                self.backend.model_key, exc,
            )
            with self._lock:
                self.fallback_count += 1
            return self.fallback.embed_text(text)


# ===================================================================
# Factory
# ===================================================================

def select_backend(config: EmbeddingConfig) -> EmbeddingBackend:
    """Return the configured backend.

    ``auto`` resolution order: OpenAI when ``api_key`` is set, then Ollama
    when ``ollama_url`` is set, then the hash fallback.
    """
    provider = config.provider.lower()
    if provider == "auto":
        if config.api_key:
            provider = "openai"
        elif config.ollama_url:
            provider = "ollama"
        else:
            provider = "hash"

    if provider == "ollama":
        return OllamaEmbeddingBackend(config.ollama_model, config.ollama_url, config.timeout)
    if provider == "openai":
        return OpenAIEmbeddingBackend(
            config.openai_model, config.api_key, config.openai_url, config.timeout,
        )
    if provider == "hash":
        return HashFallbackEmbedder(config.fallback_dim)
    raise ValueError(
        f"Unknown embedding provider: '{config.provider}'. "
        "Available: auto, ollama, openai, hash"
    )


def build_embedder(config: EmbeddingConfig) -> Embedder:
    return Embedder(
        select_backend(config),
        fallback=HashFallbackEmbedder(config.fallback_dim),
        workers=config.workers,
    )


# ===================================================================
# Utility
# ===================================================================

def cosine_similarity(vec_a: Sequence[float], vec_b: Sequence[float]) -> float:
    """Cosine similarity over the shared leading dimensions.

    Vectors of different length are compared on their first
    ``min(len(a), len(b))`` coordinates.  Empty or zero-norm inputs
    return ``0.0``.
    """
    n = min(len(vec_a), len(vec_b))
    if n == 0:
        return 0.0
    dot = norm_a = norm_b = 0.0
    for i in range(n):
        a, b = vec_a[i], vec_b[i]
        dot += a * b
        norm_a += a * a
        norm_b += b * b
    denom = math.sqrt(norm_a) * math.sqrt(norm_b)
    if denom < 1e-12:
        return 0.0
    return max(-1.0, min(1.0, dot / denom))


def _post_json(url: str, body: Any, headers: dict, timeout: float) -> Any:
    try:
        response = requests.post(url, json=body, headers=headers, timeout=timeout)
    except requests.RequestException as exc:
        raise EmbeddingError(f"embed request to {url} failed: {exc}") from exc
    if not response.ok:
        raise EmbeddingError(
            f"embed failed: {response.status_code} {response.reason} - {response.text[:200]}".strip()
        )
    try:
        return response.json()
    except ValueError as exc:
        raise EmbeddingError("embed response is not JSON") from exc


def _as_vector(value: Any) -> List[float]:
    if not isinstance(value, list) or not value:
        raise EmbeddingError('Response missing "embedding" array')
    try:
        return [float(v) for v in value]
    except (TypeError, ValueError) as exc:
        raise EmbeddingError("Embedding array holds non-numeric values") from exc
