"""Static extraction of UI-component declarations from JS/TS source files.

Three recognition rules run in one walk over each file's syntax tree:

1. :class:`FunctionDeclarationRule` -- ``function Nav() { return <a/>; }``
2. :class:`VariableInitializerRule` -- ``const Nav = () => <a/>`` and
   ``const Nav = function () { ... }``
3. :class:`ClassDeclarationRule` -- ``class Nav extends React.Component``
   with markup in ``render``.

Candidates are ordered by rule (function, variable, class) and then by
position; when a name is recognized more than once in a file the first
candidate in that order wins.  Every candidate must contain JSX markup, so
capitalized helpers and non-visual classes never produce records.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from .config import ExtractionConfig
from .errors import ParseError
from .models import Candidate, ComponentRecord, make_summary
from .syntax import (
    FUNCTION_TYPES,
    NodeVisitor,
    contains_markup,
    field_text,
    is_capitalized,
    iter_descendants,
    node_text,
    parse_source,
    walk,
)

logger = logging.getLogger(__name__)

HOOK_RE = re.compile(r"^use[A-Z]")
_LOADING_TAG_RE = re.compile(r"Spinner|Skeleton|Loader|Progress", re.IGNORECASE)
_ERROR_TAG_RE = re.compile(r"Error|Alert|Snackbar", re.IGNORECASE)

EFFECT_HOOKS = frozenset({"useEffect", "useLayoutEffect", "useInsertionEffect"})
FETCH_HOOKS = frozenset({"useSWR", "useQuery"})
STATE_HOOKS = frozenset({"useState", "useReducer"})
CATCH_METHODS = frozenset({"componentDidCatch", "getDerivedStateFromError"})

_INITIALIZER_TYPES = frozenset({
    "arrow_function", "function_expression", "function", "generator_function",
})
_DECLARATION_TYPES = frozenset({"lexical_declaration", "variable_declaration"})


# ===================================================================
# Recognition rules
# ===================================================================

class _Rule(NodeVisitor):
    """Collects :class:`Candidate` objects for one recognition rule."""

    kind = ""

    def __init__(self, config: ExtractionConfig) -> None:
        self.config = config
        self.candidates: List[Candidate] = []


class FunctionDeclarationRule(_Rule):
    node_types = frozenset({"function_declaration", "generator_function_declaration"})
    kind = "function"

    def visit(self, node: Any) -> None:
        name = field_text(node, "name")
        if not is_capitalized(name) or not contains_markup(node):
            return
        self.candidates.append(Candidate(
            name=name,
            kind=self.kind,
            node=node,
            span_node=_statement_span(node),
            metadata_node=node,
        ))


class VariableInitializerRule(_Rule):
    node_types = frozenset({"variable_declarator"})
    kind = "arrow"

    def visit(self, node: Any) -> None:
        name_node = node.child_by_field_name("name")
        if name_node is None or name_node.type != "identifier":
            return
        name = node_text(name_node)
        if not is_capitalized(name):
            return
        value = node.child_by_field_name("value")
        if value is None or value.type not in _INITIALIZER_TYPES:
            return
        if not contains_markup(value):
            return
        self.candidates.append(Candidate(
            name=name,
            kind=self.kind,
            node=value,
            span_node=_statement_span(node),
            metadata_node=value,
        ))


class ClassDeclarationRule(_Rule):
    node_types = frozenset({"class_declaration"})
    kind = "class"

    def visit(self, node: Any) -> None:
        name = field_text(node, "name")
        if not is_capitalized(name):
            return
        if not _extends_component(_superclass(node), self.config.component_bases):
            return

        methods = _class_methods(node)
        renders = [m for m in methods if field_text(m, "name") == "render"]
        if not any(contains_markup(m) for m in renders):
            return

        # Error-boundary detection looks at every method, not just render.
        has_boundary = any(field_text(m, "name") in CATCH_METHODS for m in methods)
        self.candidates.append(Candidate(
            name=name,
            kind=self.kind,
            node=node,
            span_node=_statement_span(node),
            metadata_node=node,
            has_error_boundary=has_boundary,
        ))


class ImportCollector(NodeVisitor):
    node_types = frozenset({"import_statement"})

    def __init__(self) -> None:
        self.modules: List[str] = []

    def visit(self, node: Any) -> None:
        source = node.child_by_field_name("source")
        if source is not None:
            self.modules.append(_string_value(source))


class ExportCollector(NodeVisitor):
    node_types = frozenset({"export_statement"})

    def __init__(self) -> None:
        self.names: List[str] = []

    def visit(self, node: Any) -> None:
        if any(child.type == "default" for child in node.children):
            self.names.append("default")
            return

        decl = node.child_by_field_name("declaration")
        if decl is not None:
            if decl.type in _DECLARATION_TYPES:
                for declarator in decl.named_children:
                    if declarator.type != "variable_declarator":
                        continue
                    name_node = declarator.child_by_field_name("name")
                    if name_node is not None and name_node.type == "identifier":
                        self.names.append(node_text(name_node))
            else:
                name = field_text(decl, "name")
                if name:
                    self.names.append(name)

        for child in node.named_children:
            if child.type != "export_clause":
                continue
            for spec in child.named_children:
                if spec.type != "export_specifier":
                    continue
                exported = field_text(spec, "alias") or field_text(spec, "name")
                if exported:
                    self.names.append(exported)


# ===================================================================
# Extractor
# ===================================================================

@dataclass
class ExtractionResult:
    file_path: str
    records: List[ComponentRecord] = field(default_factory=list)
    skipped: bool = False
    error: Optional[str] = None


class ComponentExtractor:
    """Turns one source file into zero or more :class:`ComponentRecord`."""

    def __init__(self, config: Optional[ExtractionConfig] = None) -> None:
        self.config = config or ExtractionConfig()

    def extract_source(self, source: bytes, file_path: str) -> List[ComponentRecord]:
        """Extract components from *source*.

        Raises:
            ParseError: if the file cannot be parsed.
        """
        root = parse_source(
            source, file_path, tolerate_errors=self.config.tolerate_syntax_errors,
        )

        rules: List[_Rule] = [
            FunctionDeclarationRule(self.config),
            VariableInitializerRule(self.config),
            ClassDeclarationRule(self.config),
        ]
        imports = ImportCollector()
        exports = ExportCollector()
        walk(root, [*rules, imports, exports])

        file_imports = _unique(imports.modules)
        file_exports = _unique(exports.names)

        records: List[ComponentRecord] = []
        seen: set = set()
        for rule in rules:
            for cand in rule.candidates:
                if cand.name in seen:
                    continue
                seen.add(cand.name)
                records.append(self._build_record(cand, file_path, file_imports, file_exports))
        return records

    def extract_file(self, path: Path, root: Path) -> ExtractionResult:
        """Extract components from the file at *path*; never raises ParseError."""
        rel_path = path.relative_to(root).as_posix() if path.is_absolute() else path.as_posix()
        try:
            source = path.read_bytes()
            records = self.extract_source(source, rel_path)
        except (ParseError, OSError) as exc:
            logger.debug("Skipping %s: %s", rel_path, exc)
            return ExtractionResult(file_path=rel_path, skipped=True, error=str(exc))
        return ExtractionResult(file_path=rel_path, records=records)

    # ------------------------------------------------------------------
    # Record building
    # ------------------------------------------------------------------

    def _build_record(
        self,
        cand: Candidate,
        file_path: str,
        imports: Tuple[str, ...],
        exports: Tuple[str, ...],
    ) -> ComponentRecord:
        scope = cand.metadata_node
        hooks = collect_hooks(scope)
        uses = collect_tags(scope)
        props = collect_props(cand.node) if cand.kind != "class" else ()
        record = ComponentRecord(
            id=ComponentRecord.make_id(file_path, cand.name),
            file_path=file_path,
            name=cand.name,
            kind=cand.kind,
            props=props,
            hooks=hooks,
            uses=uses,
            imports=imports,
            exports=exports,
            patterns=infer_patterns(scope, hooks, uses),
            has_error_boundary=cand.has_error_boundary,
            code_snippet=cap_snippet(
                node_text(cand.span_node),
                self.config.snippet_max_lines,
                self.config.snippet_max_chars,
            ),
        )
        return replace(record, summary=make_summary(record))


def extract_components(
    source: str,
    file_path: str,
    config: Optional[ExtractionConfig] = None,
) -> List[ComponentRecord]:
    """Convenience wrapper: extract records from a source string."""
    return ComponentExtractor(config).extract_source(source.encode("utf-8"), file_path)


# ===================================================================
# Derived metadata
# ===================================================================

def collect_props(fn_node: Any) -> Tuple[str, ...]:
    """Prop names from the top-level parameter shape only.

    ``(props)`` gives ``props``; ``({a, b: c, d = 1, ...rest})`` gives
    ``a, b, d``.  Nested destructuring is not resolved.
    """
    single = fn_node.child_by_field_name("parameter")
    if single is not None:
        return (node_text(single),) if single.type == "identifier" else ()

    params = fn_node.child_by_field_name("parameters")
    if params is None:
        return ()

    names: List[str] = []
    for param in params.named_children:
        pattern = _unwrap_parameter(param)
        if pattern is None:
            continue
        if pattern.type == "identifier":
            names.append(node_text(pattern))
        elif pattern.type == "object_pattern":
            names.extend(_object_pattern_keys(pattern))
    return _unique(names)


def collect_hooks(node: Any) -> Tuple[str, ...]:
    hooks: List[str] = []
    for call in _calls(node):
        callee = call.child_by_field_name("function")
        if callee is not None and callee.type == "identifier":
            name = node_text(callee)
            if HOOK_RE.match(name):
                hooks.append(name)
    return _unique(hooks)


def collect_tags(node: Any) -> Tuple[str, ...]:
    tags: List[str] = []
    for n in iter_descendants(node):
        if n.type in ("jsx_opening_element", "jsx_self_closing_element"):
            name = field_text(n, "name")
            if name:
                tags.append(name)
    return _unique(tags)


def infer_patterns(
    node: Any,
    hooks: Sequence[str],
    uses: Sequence[str],
) -> Tuple[str, ...]:
    """Best-effort behavioural tags for a component subtree."""
    patterns: List[str] = []
    if any(h in EFFECT_HOOKS for h in hooks) and _has_effect_cleanup(node):
        patterns.append("cleanup-effect")
    if any(_LOADING_TAG_RE.search(t) for t in uses):
        patterns.append("loading-state")
    if any(_ERROR_TAG_RE.search(t) for t in uses):
        patterns.append("error-state")
    if any(h in FETCH_HOOKS for h in hooks) or _has_network_call(node):
        patterns.append("data-fetching")
    if any(h in STATE_HOOKS for h in hooks):
        patterns.append("stateful")
    if "useContext" in hooks:
        patterns.append("context-consumer")
    return tuple(patterns)


def cap_snippet(text: str, max_lines: int, max_chars: int) -> str:
    lines = text.strip().splitlines()
    return "\n".join(lines[:max_lines])[:max_chars]


# ===================================================================
# Helpers
# ===================================================================

def _statement_span(node: Any) -> Any:
    """Widen a declaration to its enclosing statement for the code snippet."""
    span = node
    parent = span.parent
    if (
        node.type == "variable_declarator"
        and parent is not None
        and parent.type in _DECLARATION_TYPES
        and len([c for c in parent.named_children if c.type == "variable_declarator"]) == 1
    ):
        span = parent
        parent = span.parent
    if parent is not None and parent.type == "export_statement":
        span = parent
    return span


def _superclass(class_node: Any) -> Optional[Any]:
    for child in class_node.children:
        if child.type != "class_heritage":
            continue
        for sub in child.named_children:
            if sub.type == "extends_clause":
                return sub.child_by_field_name("value")
            if sub.type == "implements_clause":
                continue
            return sub
    return None


def _extends_component(expr: Optional[Any], bases: Iterable[str]) -> bool:
    if expr is None:
        return False
    bases = set(bases)
    if expr.type == "identifier":
        return node_text(expr) in bases
    if expr.type == "member_expression":
        obj = expr.child_by_field_name("object")
        prop = expr.child_by_field_name("property")
        return (
            obj is not None
            and obj.type == "identifier"
            and prop is not None
            and node_text(prop) in bases
        )
    return False


def _class_methods(class_node: Any) -> List[Any]:
    body = class_node.child_by_field_name("body")
    if body is None:
        return []
    return [c for c in body.named_children if c.type == "method_definition"]


def _unwrap_parameter(param: Any) -> Optional[Any]:
    if param.type in ("required_parameter", "optional_parameter"):
        param = param.child_by_field_name("pattern")
        if param is None:
            return None
    if param.type == "assignment_pattern":
        param = param.child_by_field_name("left")
    return param


def _object_pattern_keys(pattern: Any) -> List[str]:
    keys: List[str] = []
    for prop in pattern.named_children:
        if prop.type == "shorthand_property_identifier_pattern":
            keys.append(node_text(prop))
        elif prop.type == "pair_pattern":
            key = prop.child_by_field_name("key")
            if key is not None and key.type in ("property_identifier", "identifier"):
                keys.append(node_text(key))
            elif key is not None and key.type == "string":
                keys.append(_string_value(key))
        elif prop.type == "object_assignment_pattern":
            left = prop.child_by_field_name("left")
            if left is not None and left.type in (
                "shorthand_property_identifier_pattern", "identifier",
            ):
                keys.append(node_text(left))
    return keys


def _calls(node: Any) -> Iterable[Any]:
    return (n for n in iter_descendants(node) if n.type == "call_expression")


def _has_network_call(node: Any) -> bool:
    for call in _calls(node):
        callee = call.child_by_field_name("function")
        if callee is None:
            continue
        if callee.type == "identifier" and node_text(callee) in ("fetch", "axios"):
            return True
        if callee.type == "member_expression":
            obj = callee.child_by_field_name("object")
            if obj is not None and obj.type == "identifier" and node_text(obj) == "axios":
                return True
    return False


def _has_effect_cleanup(node: Any) -> bool:
    """True when an effect hook's callback returns a value (its cleanup)."""
    for call in _calls(node):
        callee = call.child_by_field_name("function")
        if callee is None or callee.type != "identifier" or node_text(callee) not in EFFECT_HOOKS:
            continue
        args = call.child_by_field_name("arguments")
        if args is None or not args.named_children:
            continue
        callback = args.named_children[0]
        if callback.type not in FUNCTION_TYPES:
            continue
        body = callback.child_by_field_name("body")
        if body is None or body.type != "statement_block":
            continue
        for n in iter_descendants(body, skip=FUNCTION_TYPES):
            if n.type == "return_statement" and any(
                c.type != "comment" for c in n.named_children
            ):
                return True
    return False


def _string_value(node: Any) -> str:
    return node_text(node).strip("'\"`")


def _unique(items: Iterable[str]) -> Tuple[str, ...]:
    return tuple(dict.fromkeys(items))
