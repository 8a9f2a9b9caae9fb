"""Core data models used by extraction, retrieval, and answer synthesis."""

from __future__ import annotations

import posixpath
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Tuple


@dataclass(frozen=True)
class Candidate:
    """A declaration matched by one recognition rule, before metadata."""

    name: str
    kind: str
    node: Any
    span_node: Any
    metadata_node: Any
    has_error_boundary: bool = False


@dataclass(frozen=True)
class ComponentRecord:
    id: str
    file_path: str
    name: str
    kind: str
    props: Tuple[str, ...] = ()
    hooks: Tuple[str, ...] = ()
    uses: Tuple[str, ...] = ()
    imports: Tuple[str, ...] = ()
    exports: Tuple[str, ...] = ()
    patterns: Tuple[str, ...] = ()
    has_error_boundary: bool = False
    summary: str = ""
    code_snippet: str = ""
    embedding: Optional[Tuple[float, ...]] = None

    @staticmethod
    def make_id(file_path: str, name: str) -> str:
        return f"{file_path}#{name}"

    def embedding_text(self, snippet_chars: int) -> str:
        """Text embedded for this record: summary plus a capped code prefix."""
        return f"{self.summary}\n\n{self.code_snippet[:snippet_chars]}"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "filePath": self.file_path,
            "name": self.name,
            "kind": self.kind,
            "props": list(self.props),
            "hooks": list(self.hooks),
            "uses": list(self.uses),
            "imports": list(self.imports),
            "exports": list(self.exports),
            "patterns": list(self.patterns),
            "hasErrorBoundary": self.has_error_boundary,
            "summary": self.summary,
            "codeSnippet": self.code_snippet,
        }
        if self.embedding is not None:
            data["embedding"] = list(self.embedding)
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ComponentRecord":
        """Build a record from its JSON form.

        Accepts the legacy ``file``/``code`` keys written by early indexes.
        """
        file_path = data.get("filePath", data.get("file"))
        name = data["name"]
        kind = data.get("kind", "function")
        snippet = data.get("codeSnippet", data.get("code", ""))
        embedding = data.get("embedding")
        record = cls(
            id=data.get("id") or cls.make_id(file_path, name),
            file_path=file_path,
            name=name,
            kind=kind,
            props=tuple(data.get("props", ())),
            hooks=tuple(data.get("hooks", ())),
            uses=tuple(data.get("uses", ())),
            imports=tuple(data.get("imports", ())),
            exports=tuple(data.get("exports", ())),
            patterns=tuple(data.get("patterns", ())),
            has_error_boundary=bool(data.get("hasErrorBoundary", False)),
            summary=data.get("summary", ""),
            code_snippet=snippet,
            embedding=tuple(float(v) for v in embedding) if embedding is not None else None,
        )
        if not record.summary:
            record = _with_summary(record)
        return record


def make_summary(record: ComponentRecord) -> str:
    """Single-line digest: kind/file, props, hooks, uses, patterns, boundary."""
    parts = [
        f"{record.name} ({record.kind}) in {posixpath.basename(record.file_path)}",
        f"props: {', '.join(record.props)}" if record.props else "",
        f"hooks: {', '.join(record.hooks)}" if record.hooks else "",
        f"uses: {', '.join(record.uses[:10])}" if record.uses else "",
        f"patterns: {', '.join(record.patterns)}" if record.patterns else "",
        "error boundary" if record.has_error_boundary else "",
    ]
    return " | ".join(p for p in parts if p)


def _with_summary(record: ComponentRecord) -> ComponentRecord:
    return replace(record, summary=make_summary(record))


@dataclass(frozen=True)
class ScoredComponent:
    record: ComponentRecord
    score: float


@dataclass
class RetrievalResult:
    results: List[ScoredComponent]
    pool_size: int


@dataclass(frozen=True)
class Source:
    name: str
    file: str
    score: float


@dataclass
class AssembledContext:
    prompt: str
    context: str
    sources: List[Source]
    truncated: int = 0


@dataclass
class SearchHit:
    name: str
    file: str
    score: float
    preview: str


@dataclass
class SearchResponse:
    query: str
    scope: str
    count: int
    results: List[SearchHit] = field(default_factory=list)


@dataclass
class AnswerResponse:
    query: str
    scope: str
    used: List[Source]
    answer: str


@dataclass
class IndexStats:
    files_scanned: int = 0
    files_skipped: int = 0
    components: int = 0
    embedded: int = 0
    fallback_embeddings: int = 0
