"""Tree-sitter grammar loading and a data-driven syntax-tree walk.

Grammars come from the per-language ``tree-sitter-javascript`` and
``tree-sitter-typescript`` packages.  A :class:`NodeVisitor` declares the node
types it handles; :func:`walk` builds a dispatch table from those declarations
and makes a single depth-first pass over the tree.
"""

from __future__ import annotations

import importlib
import logging
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Optional, Tuple

from .errors import ParseError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Language <-> file-extension mapping
# ---------------------------------------------------------------------------
LANGUAGE_MAP: Dict[str, str] = {
    ".js": "javascript",
    ".jsx": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".ts": "typescript",
    ".tsx": "tsx",
}

# language -> (grammar module, function returning the Language capsule)
_GRAMMAR_MODULES: Dict[str, Tuple[str, str]] = {
    "javascript": ("tree_sitter_javascript", "language"),
    "typescript": ("tree_sitter_typescript", "language_typescript"),
    "tsx": ("tree_sitter_typescript", "language_tsx"),
}

MARKUP_TYPES: FrozenSet[str] = frozenset({
    "jsx_element",
    "jsx_self_closing_element",
    "jsx_fragment",
})

FUNCTION_TYPES: FrozenSet[str] = frozenset({
    "function_declaration",
    "generator_function_declaration",
    "function_expression",
    "function",
    "generator_function",
    "arrow_function",
    "method_definition",
})

_languages: Dict[str, Any] = {}


def _load_language(lang: str) -> Any:
    cached = _languages.get(lang)
    if cached is not None:
        return cached

    from tree_sitter import Language  # type: ignore[import-untyped]

    mod_name, func_name = _GRAMMAR_MODULES[lang]
    mod = importlib.import_module(mod_name)
    ts_lang = Language(getattr(mod, func_name)())
    _languages[lang] = ts_lang
    logger.debug("Loaded tree-sitter grammar for %s", lang)
    return ts_lang


def language_for(path: str) -> Optional[str]:
    """Return the grammar name for *path*, or ``None`` if unsupported."""
    for ext, lang in LANGUAGE_MAP.items():
        if path.lower().endswith(ext):
            return lang
    return None


def parse_source(source: bytes, path: str, tolerate_errors: bool = False) -> Any:
    """Parse *source* and return the tree-sitter root node.

    Raises:
        ParseError: the bytes are not UTF-8, the extension has no grammar, or
            the tree contains syntax errors and *tolerate_errors* is false.
    """
    from tree_sitter import Parser as TSParser  # type: ignore[import-untyped]

    lang = language_for(path)
    if lang is None:
        raise ParseError(path, "unsupported file extension")
    try:
        source.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise ParseError(path, f"not valid UTF-8 ({exc.reason})") from exc

    # Parser objects are cheap and not shared between threads.
    parser = TSParser(_load_language(lang))
    tree = parser.parse(source)
    root = tree.root_node
    if root.has_error and not tolerate_errors:
        raise ParseError(path, "syntax error")
    return root


# ---------------------------------------------------------------------------
# Node helpers
# ---------------------------------------------------------------------------

def node_text(node: Any) -> str:
    return node.text.decode("utf-8")


def field_text(node: Any, field: str) -> Optional[str]:
    child = node.child_by_field_name(field)
    if child is None:
        return None
    return node_text(child)


def iter_descendants(
    node: Any,
    skip: FrozenSet[str] = frozenset(),
    include_self: bool = True,
) -> Iterator[Any]:
    """Yield *node* and its descendants depth-first in source order.

    Subtrees rooted at a node whose type is in *skip* are not entered (the
    root itself is always entered).
    """
    stack: List[Any] = [node]
    first = True
    while stack:
        current = stack.pop()
        if not first or include_self:
            yield current
        if not first and current.type in skip:
            continue
        first = False
        stack.extend(reversed(current.children))


def contains_markup(node: Any) -> bool:
    return any(n.type in MARKUP_TYPES for n in iter_descendants(node))


def is_capitalized(name: Optional[str]) -> bool:
    return bool(name) and name[0].isupper()


# ---------------------------------------------------------------------------
# Visitor / walk
# ---------------------------------------------------------------------------

class NodeVisitor:
    """One syntax-tree rule.  Subclasses set ``node_types`` and ``visit``."""

    node_types: FrozenSet[str] = frozenset()

    def visit(self, node: Any) -> None:
        raise NotImplementedError


def walk(root: Any, visitors: Iterable[NodeVisitor]) -> None:
    """Visit every node under *root* once, dispatching by node type."""
    table: Dict[str, List[NodeVisitor]] = {}
    for visitor in visitors:
        for node_type in visitor.node_types:
            table.setdefault(node_type, []).append(visitor)

    for node in iter_descendants(root):
        for visitor in table.get(node.type, ()):
            visitor.visit(node)
