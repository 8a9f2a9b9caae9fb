"""Ranking of indexed components against a query vector.

Scope filtering happens before ranking: ``k`` bounds the ranked result of the
filtered pool, and the pool size reported with the results is the filtered,
pre-ranking count.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence, Tuple

from .embeddings import cosine_similarity
from .errors import QueryError
from .models import ComponentRecord, RetrievalResult, ScoredComponent
from .store import ComponentIndex


@dataclass(frozen=True)
class Scope:
    """Named file-path filter.  No substrings means no filtering."""

    name: str
    substrings: Tuple[str, ...] = ()

    def __call__(self, record: ComponentRecord) -> bool:
        if not self.substrings:
            return True
        return any(s in record.file_path for s in self.substrings)


ALL = Scope("all")


def resolve_scope(name: str, scopes: Mapping[str, Sequence[str]]) -> Scope:
    if name not in scopes:
        raise QueryError(f"Unknown scope '{name}'. Available: {', '.join(sorted(scopes))}")
    return Scope(name, tuple(scopes[name]))


def clamp_top_k(k: int, max_k: int) -> int:
    """Clamp *k* into ``[1, max_k]``."""
    return max(1, min(int(k), max_k))


class Retriever:
    """Brute-force cosine ranking over an immutable index."""

    def __init__(self, index: ComponentIndex) -> None:
        self.index = index

    def retrieve(
        self,
        query_vector: Sequence[float],
        scope: Scope = ALL,
        k: int = 5,
    ) -> RetrievalResult:
        """Top *k* records in *scope*, highest score first.

        Ties keep index order (``sorted`` is stable).  Records without an
        embedding score ``0.0``.
        """
        pool = self.index.filter(scope)
        scored = [
            ScoredComponent(record, cosine_similarity(query_vector, record.embedding or ()))
            for record in pool
        ]
        ranked = sorted(scored, key=lambda s: s.score, reverse=True)
        return RetrievalResult(results=ranked[:max(0, k)], pool_size=len(pool))
