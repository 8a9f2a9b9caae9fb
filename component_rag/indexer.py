"""Full indexing run: walk, extract, embed, persist."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path
from typing import Callable, Iterable, List, Optional, Tuple

from .config import Settings
from .embeddings import Embedder
from .extractor import ComponentExtractor, ExtractionResult
from .models import ComponentRecord, IndexStats
from .store import ComponentIndex
from .walker import find_source_files

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[str, int, int], None]


class ComponentIndexer:
    """Builds a fresh :class:`ComponentIndex` for a source tree.

    A run always produces a complete replacement index; nothing is merged
    into a previous one.
    """

    def __init__(
        self,
        settings: Settings,
        embedder: Embedder,
        progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.settings = settings
        self.embedder = embedder
        self.extractor = ComponentExtractor(settings.extraction)
        self._progress = progress

    def extract(self, root: Path) -> Tuple[List[ComponentRecord], IndexStats]:
        """Extract records for every source file under *root* (no vectors)."""
        cfg = self.settings.extraction
        root = root.resolve()
        files = find_source_files(root, cfg.extensions, cfg.exclude_dirs)
        stats = IndexStats(files_scanned=len(files))

        records: List[ComponentRecord] = []
        seen_ids = set()
        for done, result in enumerate(self._extract_all(files, root), 1):
            if result.skipped:
                stats.files_skipped += 1
            for record in result.records:
                if record.id in seen_ids:
                    logger.warning("Duplicate component id %s ignored", record.id)
                    continue
                seen_ids.add(record.id)
                records.append(record)
            self._report("extract", done, len(files))

        if cfg.sort_by_name:
            records.sort(key=lambda r: r.name)
        stats.components = len(records)
        return records, stats

    def build(self, root: Path) -> Tuple[ComponentIndex, IndexStats]:
        records, stats = self.extract(root)

        texts = [r.embedding_text(self.settings.embedding.snippet_chars) for r in records]
        before = self.embedder.fallback_count
        vectors = self.embedder.embed(texts)
        stats.fallback_embeddings = self.embedder.fallback_count - before
        stats.embedded = len(vectors)
        self._report("embed", len(vectors), len(records))

        index = ComponentIndex()
        for record, vector in zip(records, vectors):
            index.append(replace(record, embedding=tuple(vector)))
        widths = {len(r.embedding) for r in index if r.embedding}
        if len(widths) > 1:
            logger.warning("Index holds vectors of mixed width: %s", sorted(widths))

        logger.info(
            "Parsed %d files (%d skipped) -> %d components, %d fallback embeddings",
            stats.files_scanned, stats.files_skipped, stats.components,
            stats.fallback_embeddings,
        )
        return index, stats

    def run(self, root: Path, output: Path) -> IndexStats:
        """Build the index for *root* and replace the file at *output*."""
        index, stats = self.build(root)
        index.save(output)
        return stats

    def _extract_all(self, files: List[Path], root: Path) -> Iterable[ExtractionResult]:
        workers = self.settings.extraction.workers
        if workers <= 1 or len(files) <= 1:
            return (self.extractor.extract_file(p, root) for p in files)
        # map() returns results in submission order.
        with ThreadPoolExecutor(max_workers=workers) as pool:
            return list(pool.map(lambda p: self.extractor.extract_file(p, root), files))

    def _report(self, stage: str, done: int, total: int) -> None:
        if self._progress is not None:
            self._progress(stage, done, total)
