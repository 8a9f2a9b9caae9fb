"""Bounded prompt construction from ranked components.

Every record selected by the retriever keeps its block.  When the blocks do
not fit the context budget, each excerpt is cut shorter; no record is dropped.
"""

from __future__ import annotations

import re
from typing import List, Optional, Sequence, Tuple

from .config import CONTEXT_SNIPPET_CHARS
from .models import AssembledContext, ScoredComponent, Source

TRUNCATION_MARKER = "\n/* …truncated… */"

SYSTEM_PROMPT = (
    "You are a senior React/TypeScript mentor.\n"
    "Answer the question using only the provided context from the codebase.\n"
    "Be concise (~300 words max), cite component names inline, and show a "
    "minimal code example when helpful."
)

_BLOCK_SEPARATOR = "\n\n"


def truncate_code(code: str, max_chars: int) -> Tuple[str, bool]:
    """Cut *code* to at most *max_chars* characters, marker included."""
    if len(code) <= max_chars:
        return code, False
    keep = max(0, max_chars - len(TRUNCATION_MARKER))
    return code[:keep].rstrip() + TRUNCATION_MARKER, True


def _compress_snippet(code: str) -> str:
    """Collapse runs of blank lines and trim surrounding whitespace."""
    return re.sub(r"\n{3,}", "\n\n", code).strip()


def _block(index: int, item: ScoredComponent, excerpt: str) -> str:
    record = item.record
    return (
        f"### Context {index}: {record.name} — {record.file_path}\n"
        f"```tsx\n{excerpt}\n```"
    )


class ContextAssembler:
    """Builds the generation prompt and provenance for ranked results.

    Args:
        per_record_chars: Cap on each excerpt.
        context_budget:   Cap on the whole retrieved-context section (headers,
                          fences and excerpts).  The fixed instruction
                          preamble and the question are outside this budget.
    """

    def __init__(
        self,
        per_record_chars: int = CONTEXT_SNIPPET_CHARS,
        context_budget: int = 4000,
    ) -> None:
        self.per_record_chars = per_record_chars
        self.context_budget = context_budget

    def assemble(
        self,
        question: str,
        ranked: Sequence[ScoredComponent],
        limit: Optional[int] = None,
    ) -> AssembledContext:
        selected = list(ranked if limit is None else ranked[:limit])
        sources = [Source(s.record.name, s.record.file_path, s.score) for s in selected]

        excerpts = [_compress_snippet(s.record.code_snippet) for s in selected]
        cap = self._per_record_cap(selected, excerpts)

        blocks: List[str] = []
        truncated = 0
        for i, (item, code) in enumerate(zip(selected, excerpts), 1):
            excerpt, cut = truncate_code(code, cap)
            truncated += int(cut)
            blocks.append(_block(i, item, excerpt))

        context = _BLOCK_SEPARATOR.join(blocks)
        prompt = (
            f"{SYSTEM_PROMPT}\n\n"
            f"# Question\n{question}\n\n"
            f"# Retrieved context\n{context}\n\n"
            "# Answer (concise):"
        )
        return AssembledContext(prompt=prompt, context=context, sources=sources, truncated=truncated)

    def _per_record_cap(self, selected: Sequence[ScoredComponent], excerpts: Sequence[str]) -> int:
        """Largest excerpt size that keeps every block within the budget."""
        if not selected:
            return self.per_record_chars
        overhead = sum(len(_block(i, s, "")) for i, s in enumerate(selected, 1))
        overhead += len(_BLOCK_SEPARATOR) * (len(selected) - 1)
        cap = min(self.per_record_chars, (self.context_budget - overhead) // len(selected))
        if cap < len(TRUNCATION_MARKER) and any(len(e) > cap for e in excerpts):
            raise ValueError(
                f"Context budget of {self.context_budget} characters cannot hold "
                f"{len(selected)} records; raise retrieval.context_budget or lower top-k."
            )
        return cap
