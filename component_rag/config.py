"""Configuration for component indexing and retrieval.

Settings are resolved once (defaults, then ``~/.component-rag/config.toml``,
then environment overrides) and passed explicitly into the extractor,
embedder, retriever and generator.  Nothing below is read from ambient state
at call time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

BASE_DIR = Path(os.environ.get("COMPONENT_RAG_HOME", str(Path.home() / ".component-rag"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"
DEFAULT_INDEX_PATH = Path("data") / "index.json"

SOURCE_EXTENSIONS: Tuple[str, ...] = (".tsx", ".jsx", ".ts", ".js")
EXCLUDED_DIRS: Tuple[str, ...] = (
    "node_modules", "dist", "build", ".next", ".turbo",
    "coverage", ".storybook-out", ".git",
)
COMPONENT_BASES: Tuple[str, ...] = ("Component", "PureComponent")

# Truncation caps.  Independent of each other.
SNIPPET_MAX_LINES = 200
SNIPPET_MAX_CHARS = 1200
EMBED_SNIPPET_CHARS = 400
CONTEXT_SNIPPET_CHARS = 700

DEFAULT_SCOPES: Dict[str, Tuple[str, ...]] = {
    "all": (),
    "examples": ("examples/", "samples/"),
    "src": ("packages/", "src/"),
}


@dataclass
class ExtractionConfig:
    extensions: Tuple[str, ...] = SOURCE_EXTENSIONS
    exclude_dirs: Tuple[str, ...] = EXCLUDED_DIRS
    component_bases: Tuple[str, ...] = COMPONENT_BASES
    snippet_max_lines: int = SNIPPET_MAX_LINES
    snippet_max_chars: int = SNIPPET_MAX_CHARS
    tolerate_syntax_errors: bool = False
    sort_by_name: bool = True
    workers: int = 1


@dataclass
class EmbeddingConfig:
    """Embedding backend selection.

    ``provider`` is one of ``auto``, ``ollama``, ``openai`` or ``hash``.
    ``auto`` uses the hosted API when an API key is present, otherwise the
    local Ollama server, then the deterministic hash fallback.
    """

    provider: str = "auto"
    ollama_url: str = "http://127.0.0.1:11434"
    ollama_model: str = "nomic-embed-text"
    openai_url: str = "https://api.openai.com/v1/embeddings"
    openai_model: str = "text-embedding-3-small"
    api_key: str = ""
    fallback_dim: int = 768
    timeout: float = 15.0
    workers: int = 4
    snippet_chars: int = EMBED_SNIPPET_CHARS


@dataclass
class GenerationConfig:
    provider: str = "ollama"
    model: str = "phi3:mini"
    endpoint: str = "http://127.0.0.1:11434"
    api_key: str = ""
    timeout: float = 15.0
    temperature: float = 0.0
    top_k: int = 40
    top_p: float = 0.9
    repeat_penalty: float = 1.1
    num_ctx: int = 1024
    num_predict: int = 192
    keep_alive: str = "2m"

    def sampling_options(self) -> Dict[str, Any]:
        return {
            "temperature": self.temperature,
            "top_k": self.top_k,
            "top_p": self.top_p,
            "repeat_penalty": self.repeat_penalty,
            "num_ctx": self.num_ctx,
            "num_predict": self.num_predict,
        }


@dataclass
class RetrievalConfig:
    search_default_k: int = 5
    search_max_k: int = 50
    answer_default_k: int = 4
    answer_max_k: int = 6
    context_snippet_chars: int = CONTEXT_SNIPPET_CHARS
    context_budget: int = 4000
    preview_lines: int = 18
    scopes: Dict[str, Tuple[str, ...]] = field(default_factory=lambda: dict(DEFAULT_SCOPES))


@dataclass
class Settings:
    extraction: ExtractionConfig = field(default_factory=ExtractionConfig)
    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    generation: GenerationConfig = field(default_factory=GenerationConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    index_path: Path = DEFAULT_INDEX_PATH


def _apply_section(section: Any, values: Mapping[str, Any]) -> Any:
    """Return a copy of dataclass *section* with known keys from *values*."""
    known = {f.name: f for f in fields(section)}
    updates: Dict[str, Any] = {}
    for key, value in values.items():
        if key not in known or key == "scopes":
            continue
        current = getattr(section, key)
        if isinstance(current, tuple):
            value = tuple(value)
        elif isinstance(current, bool):
            value = bool(value)
        elif isinstance(current, int):
            value = int(value)
        elif isinstance(current, float):
            value = float(value)
        updates[key] = value
    return replace(section, **updates)


def load_settings(
    config_path: Optional[Path] = None,
    env: Optional[Mapping[str, str]] = None,
) -> Settings:
    """Resolve settings from defaults, the TOML file and the environment."""
    from .config_manager import load_full_config

    env = os.environ if env is None else env
    raw = load_full_config(config_path)
    settings = Settings()

    settings.extraction = _apply_section(settings.extraction, raw.get("extraction", {}))
    settings.embedding = _apply_section(settings.embedding, raw.get("embeddings", {}))
    settings.generation = _apply_section(settings.generation, raw.get("llm", {}))
    settings.retrieval = _apply_section(settings.retrieval, raw.get("retrieval", {}))

    scopes = dict(DEFAULT_SCOPES)
    for name, substrings in raw.get("scopes", {}).items():
        scopes[name] = tuple(substrings)
    settings.retrieval.scopes = scopes

    index_path = raw.get("index", {}).get("path")
    if index_path:
        settings.index_path = Path(index_path).expanduser()

    # Environment overrides
    if env.get("OLLAMA_URL"):
        url = env["OLLAMA_URL"].rstrip("/")
        settings.embedding.ollama_url = url
        settings.generation.endpoint = url
    if env.get("OLLAMA_EMBED_MODEL"):
        settings.embedding.ollama_model = env["OLLAMA_EMBED_MODEL"]
    if env.get("OLLAMA_GEN_MODEL"):
        settings.generation.model = env["OLLAMA_GEN_MODEL"]
    if env.get("OPENAI_API_KEY"):
        settings.embedding.api_key = settings.embedding.api_key or env["OPENAI_API_KEY"]
        settings.generation.api_key = settings.generation.api_key or env["OPENAI_API_KEY"]
    if env.get("COMPONENT_RAG_INDEX"):
        settings.index_path = Path(env["COMPONENT_RAG_INDEX"]).expanduser()

    return settings
