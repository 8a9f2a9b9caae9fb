"""Tests for embedding backends, the per-item fallback and cosine similarity."""

import math
from pathlib import Path
from unittest.mock import MagicMock, patch

import pytest
import requests

from component_rag.config import EmbeddingConfig, load_settings
from component_rag.embeddings import (
    Embedder,
    EmbeddingBackend,
    HashFallbackEmbedder,
    OllamaEmbeddingBackend,
    OpenAIEmbeddingBackend,
    build_embedder,
    cosine_similarity,
    fnv1a_32,
    select_backend,
)
from component_rag.errors import EmbeddingError


def _response(payload, status=200):
    resp = MagicMock()
    resp.ok = 200 <= status < 300
    resp.status_code = status
    resp.reason = "OK" if resp.ok else "Server Error"
    resp.text = str(payload)
    resp.json.return_value = payload
    return resp


class _FlakyBackend(EmbeddingBackend):
    """Fails for texts starting with ``bad``; otherwise returns ``[len(text), 1.0]``."""

    model_key = "flaky"

    def embed_text(self, text):
        if text.startswith("bad"):
            raise EmbeddingError("boom")
        return [float(len(text)), 1.0]


class TestHashFallback:
    """Deterministic pseudo-embeddings."""

    def test_identical_strings_identical_vectors(self):
        embedder = HashFallbackEmbedder()
        assert embedder.embed_text("Nav component") == embedder.embed_text("Nav component")

    def test_different_strings_differ(self):
        embedder = HashFallbackEmbedder()
        assert embedder.embed_text("Nav") != embedder.embed_text("Footer")

    def test_dimension(self):
        assert len(HashFallbackEmbedder().embed_text("x")) == 768
        assert len(HashFallbackEmbedder(dim=16).embed_text("x")) == 16

    def test_fnv1a_known_values(self):
        assert fnv1a_32("") == 2166136261
        assert fnv1a_32("a") == 0xE40C292C

    def test_coordinates_are_sines(self):
        vec = HashFallbackEmbedder(dim=4).embed_text("")
        assert vec[0] == pytest.approx(math.sin(2166136261 * 0.000113))


class TestCosineSimilarity:
    """Tests for cosine similarity."""

    def test_identical(self):
        assert cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0, 3.0]) == pytest.approx(1.0)

    def test_symmetric_and_bounded(self):
        a, b = [0.3, -1.2, 4.0], [2.0, 0.5, -0.7]
        assert cosine_similarity(a, b) == pytest.approx(cosine_similarity(b, a))
        assert -1.0 <= cosine_similarity(a, b) <= 1.0

    def test_opposite(self):
        assert cosine_similarity([1.0, 0.0], [-1.0, 0.0]) == pytest.approx(-1.0)

    def test_zero_norm(self):
        assert cosine_similarity([0.0, 0.0], [1.0, 2.0]) == 0.0

    def test_empty(self):
        assert cosine_similarity([], [1.0]) == 0.0

    def test_different_lengths_use_shared_prefix(self):
        assert cosine_similarity([1.0, 0.0, 9.0], [1.0, 0.0]) == pytest.approx(1.0)


class TestEmbedder:
    """Batch embedding with per-item fallback."""

    def test_only_failed_items_fall_back(self):
        embedder = Embedder(_FlakyBackend(), fallback=HashFallbackEmbedder(dim=2), workers=1)
        vectors = embedder.embed(["good", "bad one", "fine"])

        assert vectors[0] == [4.0, 1.0]
        assert vectors[1] == HashFallbackEmbedder(dim=2).embed_text("bad one")
        assert vectors[2] == [4.0, 1.0]
        assert embedder.fallback_count == 1

    def test_order_preserved_with_workers(self):
        texts = [f"text-{i:03d}" if i % 3 else f"bad-{i}" for i in range(30)]
        embedder = Embedder(_FlakyBackend(), fallback=HashFallbackEmbedder(dim=2), workers=4)
        vectors = embedder.embed(texts)

        assert len(vectors) == 30
        for text, vec in zip(texts, vectors):
            if text.startswith("bad"):
                assert vec == HashFallbackEmbedder(dim=2).embed_text(text)
            else:
                assert vec == [float(len(text)), 1.0]
        assert embedder.fallback_count == 10

    def test_empty_batch(self):
        assert Embedder(_FlakyBackend()).embed([]) == []

    def test_query_never_falls_back(self):
        embedder = Embedder(_FlakyBackend())
        with pytest.raises(EmbeddingError):
            embedder.embed_query("bad query")
        assert embedder.fallback_count == 0

    def test_unreachable_server_falls_back(self):
        """The autouse network guard makes Ollama unreachable."""
        backend = OllamaEmbeddingBackend("nomic-embed-text", "http://127.0.0.1:11434")
        embedder = Embedder(backend, fallback=HashFallbackEmbedder(dim=8), workers=1)

        assert embedder.embed(["a", "b"]) == [
            HashFallbackEmbedder(dim=8).embed_text("a"),
            HashFallbackEmbedder(dim=8).embed_text("b"),
        ]
        assert embedder.fallback_count == 2


class TestOllamaBackend:
    """Tests for the Ollama embeddings endpoint."""

    def test_request_and_response(self):
        backend = OllamaEmbeddingBackend("nomic-embed-text", "http://localhost:11434/", timeout=3)
        with patch("requests.post", return_value=_response({"embedding": [0.1, 0.2]})) as post:
            assert backend.embed_text("hello") == [0.1, 0.2]

        args, kwargs = post.call_args
        assert args[0] == "http://localhost:11434/api/embeddings"
        assert kwargs["json"] == {"model": "nomic-embed-text", "prompt": "hello"}
        assert kwargs["timeout"] == 3

    def test_error_status(self):
        backend = OllamaEmbeddingBackend("m", "http://localhost:11434")
        with patch("requests.post", return_value=_response({"error": "no model"}, status=404)):
            with pytest.raises(EmbeddingError, match="404"):
                backend.embed_text("hello")

    def test_missing_embedding(self):
        backend = OllamaEmbeddingBackend("m", "http://localhost:11434")
        with patch("requests.post", return_value=_response({"other": 1})):
            with pytest.raises(EmbeddingError):
                backend.embed_text("hello")

    def test_timeout(self):
        backend = OllamaEmbeddingBackend("m", "http://localhost:11434")
        with patch("requests.post", side_effect=requests.Timeout("slow")):
            with pytest.raises(EmbeddingError):
                backend.embed_text("hello")


class TestOpenAIBackend:
    """Tests for the hosted embeddings API."""

    def test_requires_key(self):
        with pytest.raises(EmbeddingError, match="API key"):
            OpenAIEmbeddingBackend("text-embedding-3-small", api_key="").embed_text("x")

    def test_reads_first_vector(self):
        backend = OpenAIEmbeddingBackend("text-embedding-3-small", api_key="sk-test")
        payload = {"data": [{"embedding": [1, 2, 3]}]}
        with patch("requests.post", return_value=_response(payload)) as post:
            assert backend.embed_text("x") == [1.0, 2.0, 3.0]
        assert post.call_args.kwargs["headers"]["Authorization"] == "Bearer sk-test"


class TestSelectBackend:
    """Backend resolution from configuration."""

    def test_auto_prefers_ollama(self):
        assert isinstance(select_backend(EmbeddingConfig()), OllamaEmbeddingBackend)

    def test_auto_uses_openai_with_key(self):
        config = EmbeddingConfig(ollama_url="", api_key="sk-test")
        assert isinstance(select_backend(config), OpenAIEmbeddingBackend)

    def test_auto_key_wins_over_default_ollama_url(self):
        """A key alone selects the hosted API; the default Ollama URL does not mask it."""
        config = EmbeddingConfig(api_key="sk-test")
        assert config.ollama_url
        assert isinstance(select_backend(config), OpenAIEmbeddingBackend)

    def test_auto_key_from_environment(self):
        settings = load_settings(Path("/nonexistent/config.toml"), env={"OPENAI_API_KEY": "sk-env"})
        assert isinstance(select_backend(settings.embedding), OpenAIEmbeddingBackend)

    def test_auto_falls_back_to_hash(self):
        backend = select_backend(EmbeddingConfig(ollama_url="", fallback_dim=32))
        assert isinstance(backend, HashFallbackEmbedder)
        assert backend.dim == 32

    def test_unknown_provider(self):
        with pytest.raises(ValueError, match="Unknown embedding provider"):
            select_backend(EmbeddingConfig(provider="word2vec"))

    def test_build_embedder(self, embedding_config: EmbeddingConfig):
        embedder = build_embedder(embedding_config)
        assert embedder.model_key == "hash"
        assert embedder.workers == 1
