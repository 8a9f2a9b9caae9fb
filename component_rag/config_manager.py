"""Configuration manager for component-rag using TOML files."""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional

import toml

from . import config


# Defaults written by ``crag config set-llm <provider>`` when no model is given.
DEFAULT_LLM_CONFIGS: Dict[str, Dict[str, Any]] = {
    "ollama": {
        "provider": "ollama",
        "model": "phi3:mini",
        "endpoint": "http://127.0.0.1:11434",
    },
    "openai": {
        "provider": "openai",
        "model": "gpt-4o-mini",
        "endpoint": "https://api.openai.com/v1/chat/completions",
    },
}

DEFAULT_EMBEDDING_MODELS: Dict[str, str] = {
    "ollama": "nomic-embed-text",
    "openai": "text-embedding-3-small",
}


def _config_file(path: Optional[Path]) -> Path:
    return path if path is not None else config.CONFIG_FILE


def load_full_config(path: Optional[Path] = None) -> Dict[str, Any]:
    """Load the entire TOML config (all sections).

    A missing file yields an empty dict.  A malformed file is an error the
    caller should see rather than silently running on defaults.
    """
    cfg_file = _config_file(path)
    if not cfg_file.exists():
        return {}
    with open(cfg_file, "r", encoding="utf-8") as f:
        return toml.load(f)


def _save_full_config(cfg: Dict[str, Any], path: Optional[Path] = None) -> Path:
    """Write entire config dict to TOML file, preserving all sections."""
    cfg_file = _config_file(path)
    cfg_file.parent.mkdir(parents=True, exist_ok=True)
    with open(cfg_file, "w", encoding="utf-8") as f:
        toml.dump(cfg, f)
    return cfg_file


def save_embedding_config(
    provider: str,
    model: str = "",
    url: str = "",
    path: Optional[Path] = None,
) -> Path:
    """Save the embedding backend choice to the ``[embeddings]`` section.

    Preserves ``[llm]`` and other sections.
    """
    cfg = load_full_config(path)
    section: Dict[str, Any] = {"provider": provider}
    if provider == "ollama":
        section["ollama_model"] = model or DEFAULT_EMBEDDING_MODELS["ollama"]
        if url:
            section["ollama_url"] = url.rstrip("/")
    elif provider == "openai":
        section["openai_model"] = model or DEFAULT_EMBEDDING_MODELS["openai"]
        if url:
            section["openai_url"] = url
    cfg["embeddings"] = section
    return _save_full_config(cfg, path)


def save_llm_config(
    provider: str,
    model: str = "",
    endpoint: str = "",
    api_key: str = "",
    path: Optional[Path] = None,
) -> Path:
    """Save the generation backend to the ``[llm]`` section.

    Args:
        provider: ``ollama`` or ``openai``.
        model: Model name; provider default when empty.
        endpoint: Base URL (Ollama) or full chat-completions URL (OpenAI).
        api_key: Bearer token for hosted providers.
    """
    cfg = load_full_config(path)
    section = dict(DEFAULT_LLM_CONFIGS.get(provider, DEFAULT_LLM_CONFIGS["ollama"]))
    section["provider"] = provider
    if model:
        section["model"] = model
    if endpoint:
        section["endpoint"] = endpoint
    if api_key:
        section["api_key"] = api_key
    cfg["llm"] = section
    return _save_full_config(cfg, path)

