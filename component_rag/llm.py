"""Generation backends for answer synthesis (Ollama and OpenAI-compatible).

Any failed request raises :class:`~component_rag.errors.GenerationError`.
Requests are not retried and there is no local substitute.
"""

from __future__ import annotations

from typing import Any, Dict

import requests

from .config import GenerationConfig
from .errors import GenerationError

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"


class LLMProvider:
    """Base class for generation providers."""

    def generate(self, prompt: str) -> str:
        """Generate a response for *prompt*."""
        raise NotImplementedError


class OllamaProvider(LLMProvider):
    """Ollama local LLM provider (``POST /api/generate``)."""

    def __init__(self, config: GenerationConfig):
        self.model = config.model
        self.endpoint = f"{config.endpoint.rstrip('/')}/api/generate"
        self.timeout = config.timeout
        self.keep_alive = config.keep_alive
        self.options = config.sampling_options()

    def generate(self, prompt: str) -> str:
        parsed = _post(
            self.endpoint,
            {
                "model": self.model,
                "prompt": prompt,
                "stream": False,
                "keep_alive": self.keep_alive,
                "options": self.options,
            },
            headers={"Content-Type": "application/json"},
            timeout=self.timeout,
        )
        response = parsed.get("response") if isinstance(parsed, dict) else None
        if not isinstance(response, str):
            raise GenerationError('generate response missing "response" text')
        return response.strip()


class OpenAIProvider(LLMProvider):
    """OpenAI chat-completions provider (also OpenRouter and compatible APIs)."""

    def __init__(self, config: GenerationConfig):
        self.model = config.model
        self.api_key = config.api_key
        # The default endpoint is the local Ollama server; use the OpenAI URL then.
        if config.endpoint and config.endpoint != GenerationConfig.endpoint:
            self.endpoint = config.endpoint
        else:
            self.endpoint = OPENAI_CHAT_URL
        self.timeout = config.timeout
        self.temperature = config.temperature
        self.top_p = config.top_p
        self.max_tokens = config.num_predict

    def generate(self, prompt: str) -> str:
        if not self.api_key:
            raise GenerationError("OpenAI generation requires an API key")
        parsed = _post(
            self.endpoint,
            {
                "model": self.model,
                "messages": [{"role": "user", "content": prompt}],
                "temperature": self.temperature,
                "top_p": self.top_p,
                "max_tokens": self.max_tokens,
            },
            headers={
                "Content-Type": "application/json",
                "Authorization": f"Bearer {self.api_key}",
            },
            timeout=self.timeout,
        )
        try:
            content = parsed["choices"][0]["message"]["content"]
        except (KeyError, IndexError, TypeError) as exc:
            raise GenerationError("generate response missing choices[0].message.content") from exc
        if not isinstance(content, str):
            raise GenerationError("generate response content is not text")
        return content.strip()


def create_provider(config: GenerationConfig) -> LLMProvider:
    """Create the provider named by ``config.provider``."""
    name = config.provider.lower()
    if name == "openai":
        return OpenAIProvider(config)
    if name == "ollama":
        return OllamaProvider(config)
    raise ValueError(f"Unknown LLM provider: '{config.provider}'. Available: ollama, openai")


def _post(url: str, body: Dict[str, Any], headers: Dict[str, str], timeout: float) -> Any:
    try:
        resp = requests.post(url, json=body, headers=headers, timeout=timeout)
    except requests.Timeout as exc:
        raise GenerationError(f"generate timed out after {timeout:g}s") from exc
    except requests.RequestException as exc:
        raise GenerationError(f"generate request failed: {exc}") from exc
    if not resp.ok:
        raise GenerationError(
            f"generate failed: {resp.status_code} {resp.reason} - {resp.text[:200]}".strip()
        )
    try:
        return resp.json()
    except ValueError as exc:
        raise GenerationError("generate response is not JSON") from exc
