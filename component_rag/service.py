"""Query surface coordinating retrieval, context assembly, and generation."""

from __future__ import annotations

import logging
from typing import Optional

from .config import Settings
from .context import ContextAssembler
from .embeddings import Embedder
from .errors import QueryError
from .llm import LLMProvider
from .models import AnswerResponse, ComponentRecord, RetrievalResult, SearchHit, SearchResponse
from .retrieval import Retriever, clamp_top_k, resolve_scope
from .store import ComponentIndex

logger = logging.getLogger(__name__)


class ComponentSearchService:
    """Answers ``search`` and ``answer`` requests against a loaded index.

    The index is read-only here; a new index replaces this service rather
    than being mutated under it.
    """

    def __init__(
        self,
        index: ComponentIndex,
        embedder: Embedder,
        generator: Optional[LLMProvider],
        settings: Settings,
    ):
        self.index = index
        self.embedder = embedder
        self.generator = generator
        self.settings = settings
        self.retriever = Retriever(index)
        self.assembler = ContextAssembler(
            per_record_chars=settings.retrieval.context_snippet_chars,
            context_budget=settings.retrieval.context_budget,
        )

    def search(self, query: str, scope: str = "all", top_k: Optional[int] = None) -> SearchResponse:
        cfg = self.settings.retrieval
        k = cfg.search_default_k if top_k is None else top_k
        result = self._retrieve(query, scope, clamp_top_k(k, cfg.search_max_k))

        hits = [
            SearchHit(
                name=item.record.name,
                file=item.record.file_path,
                score=item.score,
                preview=_preview(item.record.code_snippet, cfg.preview_lines),
            )
            for item in result.results
        ]
        return SearchResponse(query=query, scope=scope, count=result.pool_size, results=hits)

    def answer(self, query: str, scope: str = "all", top_k: Optional[int] = None) -> AnswerResponse:
        cfg = self.settings.retrieval
        if self.generator is None:
            raise QueryError("No generation backend configured")
        k = cfg.answer_default_k if top_k is None else top_k
        result = self._retrieve(query, scope, clamp_top_k(k, cfg.answer_max_k))

        assembled = self.assembler.assemble(query, result.results)
        if assembled.truncated:
            logger.debug("Truncated %d of %d context excerpts", assembled.truncated, len(result.results))
        text = self.generator.generate(assembled.prompt)
        return AnswerResponse(query=query, scope=scope, used=assembled.sources, answer=text)

    def component(self, name: str, file_path: str) -> Optional[ComponentRecord]:
        return self.index.find(name, file_path)

    def _retrieve(self, query: str, scope: str, k: int) -> RetrievalResult:
        if not query or not query.strip():
            raise QueryError("Query must not be empty")
        resolved = resolve_scope(scope, self.settings.retrieval.scopes)
        vector = self.embedder.embed_query(query)
        result = self.retriever.retrieve(vector, resolved, k)
        logger.debug("Scope %s: %d of %d records ranked", scope, len(result.results), result.pool_size)
        return result


def _preview(snippet: str, lines: int) -> str:
    return "\n".join(snippet.splitlines()[:lines])
