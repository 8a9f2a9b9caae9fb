"""Source discovery: candidate JS/TS files under a scan root."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, List

from .config import EXCLUDED_DIRS, SOURCE_EXTENSIONS


def find_source_files(
    root: Path,
    extensions: Iterable[str] = SOURCE_EXTENSIONS,
    exclude_dirs: Iterable[str] = EXCLUDED_DIRS,
) -> List[Path]:
    """Return sorted absolute paths of source files under *root*.

    Files inside any directory named in *exclude_dirs* (at any depth) are
    skipped, as is anything under a hidden (dot-prefixed) path segment.
    """
    root = root.resolve()
    exts = {e.lower() for e in extensions}
    skip = set(exclude_dirs)

    found: List[Path] = []
    for path in root.rglob("*"):
        if not path.is_file() or path.suffix.lower() not in exts:
            continue
        rel_parts = path.relative_to(root).parts
        if any(part in skip for part in rel_parts[:-1]):
            continue
        if any(part.startswith(".") for part in rel_parts):
            continue
        found.append(path)
    return sorted(found)
