"""Exception taxonomy shared by the indexing and query paths."""

from __future__ import annotations


class ComponentRagError(Exception):
    """Base class for all component-rag errors."""


class ParseError(ComponentRagError):
    """A single source file could not be turned into a syntax tree."""

    def __init__(self, path: str, reason: str) -> None:
        super().__init__(f"{path}: {reason}")
        self.path = path
        self.reason = reason


class EmbeddingError(ComponentRagError):
    """The embedding backend failed for one text (status, timeout, or body)."""


class GenerationError(ComponentRagError):
    """The generation backend failed to produce an answer."""


class IndexLoadError(ComponentRagError):
    """The persisted index is missing, empty, or holds no valid records."""


class QueryError(ComponentRagError):
    """A query was rejected before reaching any backend."""
