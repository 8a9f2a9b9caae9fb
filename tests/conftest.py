"""Pytest configuration and fixtures for component-rag tests."""

import shutil
import tempfile
from dataclasses import replace
from pathlib import Path
from typing import Generator, List, Optional, Tuple

import pytest
import requests

from component_rag.config import EmbeddingConfig, Settings
from component_rag.embeddings import Embedder, HashFallbackEmbedder
from component_rag.models import ComponentRecord, IndexStats
from component_rag.store import ComponentIndex


@pytest.fixture(autouse=True)
def _block_network(monkeypatch):
    """Make every outbound ``requests.post`` fail like an unreachable server.

    Embedding and generation backends would otherwise try to reach
    localhost:11434 or the hosted APIs.  Tests that need a response patch
    ``requests.post`` themselves.
    """

    def _refuse(url, *args, **kwargs):
        raise requests.ConnectionError(f"network disabled in tests: {url}")

    monkeypatch.setattr(requests, "post", _refuse)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for tests."""
    tmp = Path(tempfile.mkdtemp())
    yield tmp
    shutil.rmtree(tmp, ignore_errors=True)


@pytest.fixture
def sample_app_path() -> Path:
    """Path to the fixture React project."""
    return Path(__file__).parent / "fixtures" / "sample_app"


@pytest.fixture
def hash_settings(temp_dir: Path) -> Settings:
    """Settings that embed with the hash backend and write into ``temp_dir``."""
    settings = Settings()
    settings.embedding = replace(settings.embedding, provider="hash", workers=1)
    settings.index_path = temp_dir / "index.json"
    return settings


@pytest.fixture
def hash_embedder() -> Embedder:
    return Embedder(HashFallbackEmbedder(), workers=1)


@pytest.fixture
def indexed_sample(hash_settings: Settings, hash_embedder: Embedder, sample_app_path: Path) -> Tuple[ComponentIndex, IndexStats]:
    """Index of the fixture React project built with hash embeddings."""
    from component_rag.indexer import ComponentIndexer

    return ComponentIndexer(hash_settings, hash_embedder).build(sample_app_path)


def make_record(
    name: str,
    file_path: str,
    embedding: Optional[List[float]] = None,
    code: str = "",
) -> ComponentRecord:
    """Build a minimal record for retrieval and context tests."""
    return ComponentRecord(
        id=ComponentRecord.make_id(file_path, name),
        file_path=file_path,
        name=name,
        kind="function",
        summary=f"{name} (function) in {file_path.rsplit('/', 1)[-1]}",
        code_snippet=code or f"export function {name}() {{\n  return <div />;\n}}",
        embedding=tuple(embedding) if embedding is not None else None,
    )


@pytest.fixture
def record_factory():
    return make_record


@pytest.fixture
def embedding_config() -> EmbeddingConfig:
    return EmbeddingConfig(provider="hash", workers=1)
