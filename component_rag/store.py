"""Persistence and in-memory access for the component index.

The index file is the single source of truth produced by one full indexing
run.  A serving process loads it once and never mutates it; a rebuild writes
a complete new file.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .errors import IndexLoadError
from .models import ComponentRecord

logger = logging.getLogger(__name__)


class ComponentIndex:
    """Ordered collection of :class:`ComponentRecord` with vectors."""

    def __init__(
        self,
        components: Iterable[ComponentRecord] = (),
        created_at: Optional[str] = None,
        dim: Optional[int] = None,
    ) -> None:
        self._components: List[ComponentRecord] = list(components)
        self.created_at = created_at or datetime.now(timezone.utc).isoformat()
        self._dim = dim

    # ------------------------------------------------------------------
    # Read API
    # ------------------------------------------------------------------

    @property
    def dim(self) -> int:
        """Embedding width; 0 when no record carries a vector."""
        if self._dim is not None:
            return self._dim
        for record in self._components:
            if record.embedding:
                return len(record.embedding)
        return 0

    def all(self) -> Tuple[ComponentRecord, ...]:
        return tuple(self._components)

    def filter(self, predicate: Callable[[ComponentRecord], bool]) -> List[ComponentRecord]:
        """Records matching *predicate*, in index order."""
        return [c for c in self._components if predicate(c)]

    def find(self, name: str, file_path: str) -> Optional[ComponentRecord]:
        for record in self._components:
            if record.name == name and record.file_path == file_path:
                return record
        return None

    def __len__(self) -> int:
        return len(self._components)

    def __iter__(self):
        return iter(self._components)

    # ------------------------------------------------------------------
    # Build API (indexing pipeline only)
    # ------------------------------------------------------------------

    def append(self, record: ComponentRecord) -> None:
        self._components.append(record)

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "createdAt": self.created_at,
            "dim": self.dim,
            "components": [c.to_dict() for c in self._components],
        }

    def save(self, path: Path) -> Path:
        """Write the whole index to *path*, replacing any previous file."""
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(prefix=".index-", suffix=".json", dir=str(path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self.to_dict(), f, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info("Wrote %d components to %s", len(self), path)
        return path

    @classmethod
    def load(cls, path: Path) -> "ComponentIndex":
        """Load an index document.

        Accepts ``{"createdAt", "dim", "components": [...]}``, a bare JSON
        array of records, or JSON Lines.

        Raises:
            IndexLoadError: missing or empty file, unrecognized format, or no
                structurally valid record.
        """
        if not path.exists():
            raise IndexLoadError(f"Missing index file {path}. Run: crag index <path>")
        raw = path.read_text(encoding="utf-8").strip()
        if not raw:
            raise IndexLoadError(f"Index file is empty: {path}")

        try:
            parsed: Any = json.loads(raw)
        except json.JSONDecodeError:
            try:
                parsed = [json.loads(line) for line in raw.splitlines() if line.strip()]
            except json.JSONDecodeError as exc:
                raise IndexLoadError(f"Index file is not JSON or JSON Lines: {path}") from exc

        created_at: Optional[str] = None
        if isinstance(parsed, dict) and "name" in parsed:
            parsed = [parsed]  # one-line JSON Lines file
        if isinstance(parsed, list):
            entries = parsed
        elif isinstance(parsed, dict) and isinstance(parsed.get("components"), list):
            entries = parsed["components"]
            created_at = parsed.get("createdAt")
        else:
            keys = ", ".join(parsed.keys()) if isinstance(parsed, dict) else type(parsed).__name__
            raise IndexLoadError(
                f"Index format not recognized. Expected array or {{components:[...]}}. Got: {keys}"
            )

        records: List[ComponentRecord] = []
        invalid = 0
        for entry in entries:
            if not is_valid_record(entry):
                invalid += 1
                continue
            records.append(ComponentRecord.from_dict(entry))

        if not records:
            first = json.dumps(entries[0])[:200] + "..." if entries else "none"
            raise IndexLoadError(f"No valid components found in {path}. First entry: {first}")
        if invalid:
            logger.warning("Dropped %d malformed index entries from %s", invalid, path)

        logger.info("Loaded %d components from %s", len(records), path)
        return cls(records, created_at=created_at)


def is_valid_record(entry: Any) -> bool:
    """Structural check for one persisted record (current or legacy keys)."""
    if not isinstance(entry, dict):
        return False
    name = entry.get("name")
    file_path = entry.get("filePath", entry.get("file"))
    snippet = entry.get("codeSnippet", entry.get("code"))
    if not isinstance(name, str) or not name or not isinstance(file_path, str):
        return False
    if not isinstance(snippet, str):
        return False
    embedding = entry.get("embedding")
    if embedding is not None:
        if not isinstance(embedding, list):
            return False
        if not all(isinstance(v, (int, float)) and not isinstance(v, bool) for v in embedding):
            return False
    return True
