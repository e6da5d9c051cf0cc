"""
javalang-based Spring endpoint extractor.

Used in-process or as an isolated worker:

    python -m javacli.extractors.spring.ast_engine <file.java> [source_root]

The worker prints one JSON object per endpoint per line
({"httpMethod", "path", "className", "methodName", "lineNumber", "parameters"})
and exits 1 with a message on stderr when the file cannot be parsed.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Iterable, Optional

import javalang
from javalang import tree as T

from javacli.domain.models import AstEndpointRecord
from javacli.errors import AstEngineError
from javacli.extractors.paths import build_full_path
from javacli.extractors.spring.annotations import (
    CONTROLLER_ANNOTATIONS,
    PATH_ATTRIBUTES,
    REQUEST_MAPPING,
    simple_name,
    unresolved,
    verb_for_annotation,
    verb_for_request_method,
)

logger = logging.getLogger(__name__)

_PARSE_ERRORS = (
    javalang.parser.JavaSyntaxError,
    javalang.tokenizer.LexerError,
    TypeError,
    IndexError,
    AttributeError,
    RecursionError,
    StopIteration,
)

# max chained constant lookups (A = B + "/x", B = C ...)
_MAX_RESOLVE_DEPTH = 6


def parse_unit(source: str) -> T.CompilationUnit:
    try:
        return javalang.parse.parse(source)
    except _PARSE_ERRORS as exc:
        raise AstEngineError(f"cannot parse Java source: {exc.__class__.__name__}: {exc}") from exc


def _iter_type_decls(node) -> Iterable[T.TypeDeclaration]:
    for _path, decl in node.filter(T.ClassDeclaration):
        yield decl
    for _path, decl in node.filter(T.InterfaceDeclaration):
        yield decl


def _body(decl) -> list:
    body = getattr(decl, "body", None)
    return body if isinstance(body, list) else []


def _field_table(decl) -> dict[str, object]:
    table: dict[str, object] = {}
    for member in _body(decl):
        if not isinstance(member, T.FieldDeclaration):
            continue
        for declarator in member.declarators or []:
            if declarator.initializer is not None:
                table[declarator.name] = declarator.initializer
    return table


def expr_text(node) -> str:
    """Source-like rendering of an annotation value, used for unresolved placeholders."""
    if node is None:
        return ""
    if isinstance(node, T.Literal):
        return str(node.value)
    if isinstance(node, T.MemberReference):
        return f"{node.qualifier}.{node.member}" if node.qualifier else str(node.member)
    if isinstance(node, T.BinaryOperation):
        return f"{expr_text(node.operandl)} {node.operator} {expr_text(node.operandr)}"
    if isinstance(node, T.ElementArrayValue):
        return "{" + ", ".join(expr_text(v) for v in node.values or []) + "}"
    return node.__class__.__name__


def _string_literal(node) -> Optional[str]:
    if not isinstance(node, T.Literal):
        return None
    raw = str(node.value)
    if len(raw) >= 2 and raw[0] == '"' and raw[-1] == '"':
        return raw[1:-1].replace('\\"', '"').replace("\\\\", "\\")
    return None


class ConstantResolver:
    """
    Best-effort lookup of `static final String` constants.

    Looks in the compilation unit first, then in sibling types found through
    the file's directory, explicit imports, static imports and wildcard imports
    under the package source root. Other files are parsed at most once.
    """

    def __init__(self, unit: T.CompilationUnit, file_path: Optional[Path], source_root: Optional[Path]):
        self.unit = unit
        self.file_path = file_path
        self.package = unit.package.name if unit.package is not None else ""
        self.package_root = self._package_root(file_path, self.package, source_root)
        self.source_root = source_root
        self._local = {decl.name: _field_table(decl) for decl in _iter_type_decls(unit)}
        self._foreign: dict[Path, dict[str, dict[str, object]]] = {}

    @staticmethod
    def _package_root(file_path: Optional[Path], package: str, source_root: Optional[Path]) -> Optional[Path]:
        if file_path is None:
            return source_root
        directory = file_path.resolve().parent
        parts = package.split(".") if package else []
        if parts and tuple(directory.parts[-len(parts):]) == tuple(parts):
            return Path(*directory.parts[: -len(parts)])
        return source_root or directory

    # ----------------------------
    # lookup
    # ----------------------------

    def resolve(self, node, owner: Optional[str] = None, depth: int = 0, tables=None) -> Optional[str]:
        tables = self._local if tables is None else tables
        if node is None or depth > _MAX_RESOLVE_DEPTH:
            return None

        literal = _string_literal(node)
        if literal is not None:
            return literal

        if isinstance(node, T.BinaryOperation) and node.operator == "+":
            left = self.resolve(node.operandl, owner, depth + 1, tables)
            right = self.resolve(node.operandr, owner, depth + 1, tables)
            if left is None or right is None:
                return None
            return left + right

        if isinstance(node, T.ElementArrayValue):
            values = node.values or []
            return self.resolve(values[0], owner, depth + 1, tables) if values else ""

        if isinstance(node, T.MemberReference):
            found = self._lookup(node.qualifier or "", node.member, owner, tables)
            if found is None:
                return None
            init, type_name, scope = found
            # the initializer is resolved in the scope of the file that declared it
            return self.resolve(init, type_name, depth + 1, scope)

        return None

    def _lookup(self, qualifier: str, member: str, owner: Optional[str], tables: dict[str, dict[str, object]]):
        if not qualifier:
            scopes = ([owner] if owner else []) + [n for n in tables if n != owner]
            for name in scopes:
                table = tables.get(name) or {}
                if member in table:
                    return table[member], name, tables
            for imp in self.unit.imports or []:
                if imp.static and not imp.wildcard and imp.path.endswith("." + member):
                    type_path = imp.path[: -(len(member) + 1)]
                    return self._lookup_foreign(type_path, member)
            return None

        type_name = qualifier.split(".")[-1]
        for scope in (tables, self._local):
            table = scope.get(type_name)
            if table is not None and member in table:
                return table[member], type_name, scope
        return self._lookup_foreign(qualifier, member)

    def _lookup_foreign(self, qualifier: str, member: str):
        segments = qualifier.split(".")
        type_name = segments[-1]
        tables = None
        for candidate in self._candidate_files(segments):
            tables = self._tables_for(candidate)
            if tables and type_name in tables:
                break
            tables = None
        if not tables:
            return None
        table = tables[type_name]
        if member not in table:
            return None
        return table[member], type_name, tables

    def _candidate_files(self, segments: list[str]) -> list[Path]:
        # first capitalised segment is the top-level type; anything before it is a package
        top_index = next((i for i, s in enumerate(segments) if s[:1].isupper()), 0)
        top = segments[top_index]
        package_parts = segments[:top_index]

        out: list[Path] = []
        if package_parts and self.package_root is not None:
            out.append(self.package_root.joinpath(*package_parts, f"{top}.java"))
        if self.file_path is not None:
            out.append(self.file_path.resolve().parent / f"{top}.java")
        for imp in self.unit.imports or []:
            path = imp.path
            if imp.wildcard:
                if self.package_root is not None:
                    out.append(self.package_root.joinpath(*path.split("."), f"{top}.java"))
                continue
            parts = path.split(".")
            if top in parts and self.package_root is not None:
                cut = parts.index(top)
                out.append(self.package_root.joinpath(*parts[:cut], f"{top}.java"))
        if self.source_root is not None and self.package:
            out.append(self.source_root.joinpath(*self.package.split("."), f"{top}.java"))

        seen: set[Path] = set()
        unique: list[Path] = []
        for p in out:
            if p not in seen:
                seen.add(p)
                unique.append(p)
        return unique

    def _tables_for(self, path: Path) -> Optional[dict[str, dict[str, object]]]:
        if path in self._foreign:
            return self._foreign[path]
        tables: Optional[dict[str, dict[str, object]]] = None
        if path.is_file() and (self.file_path is None or path.resolve() != self.file_path.resolve()):
            try:
                unit = parse_unit(path.read_text(encoding="utf-8", errors="replace"))
                tables = {decl.name: _field_table(decl) for decl in _iter_type_decls(unit)}
            except (AstEngineError, OSError) as exc:
                logger.debug("constant lookup skipped %s: %s", path, exc)
        self._foreign[path] = tables or {}
        return self._foreign[path]


# ----------------------------
# annotation helpers
# ----------------------------


_NO_VALUE = object()


def _annotation_attr(ann: T.Annotation, names: tuple[str, ...], allow_single: bool = True):
    """Value node of the first matching attribute; _NO_VALUE when absent."""
    element = ann.element
    if element is None:
        return _NO_VALUE
    if isinstance(element, list):
        pairs = {p.name: p.value for p in element if isinstance(p, T.ElementValuePair)}
        for name in names:
            if name in pairs:
                return pairs[name]
        return _NO_VALUE
    return element if allow_single else _NO_VALUE


def _path_value(resolver: ConstantResolver, node, owner: str) -> str:
    if node is _NO_VALUE or node is None:
        return ""
    resolved = resolver.resolve(node, owner)
    if resolved is not None:
        return resolved
    if isinstance(node, T.ElementArrayValue) and node.values:
        node = node.values[0]
    return unresolved(expr_text(node))


def _request_methods(ann: T.Annotation) -> list[str]:
    node = _annotation_attr(ann, ("method",), allow_single=False)
    if node is _NO_VALUE:
        return ["GET"]
    nodes = node.values if isinstance(node, T.ElementArrayValue) else [node]
    verbs: list[str] = []
    for n in nodes or []:
        verb = verb_for_request_method(expr_text(n))
        if verb and verb not in verbs:
            verbs.append(verb)
    return verbs


def _is_controller(decl) -> bool:
    return any(simple_name(a.name) in CONTROLLER_ANNOTATIONS for a in decl.annotations or [])


def class_base_path(decl, resolver: ConstantResolver) -> str:
    for ann in decl.annotations or []:
        if simple_name(ann.name) == REQUEST_MAPPING:
            node = _annotation_attr(ann, PATH_ATTRIBUTES)
            # produces=/consumes= only: the path may still come from @RestController
            if node is not _NO_VALUE:
                return _path_value(resolver, node, decl.name)
    for ann in decl.annotations or []:
        if simple_name(ann.name) == "RestController":
            node = _annotation_attr(ann, ("path",), allow_single=False)
            if node is not _NO_VALUE:
                return _path_value(resolver, node, decl.name)
    return ""


def _line_of(*nodes) -> int:
    for node in nodes:
        pos = getattr(node, "position", None)
        line = getattr(pos, "line", None) if pos is not None else None
        if line:
            return int(line)
    return 1


def _method_mappings(method: T.MethodDeclaration, resolver: ConstantResolver, owner: str) -> list[tuple[str, str, int]]:
    out: list[tuple[str, str, int]] = []
    for ann in method.annotations or []:
        name = simple_name(ann.name)
        line = _line_of(ann, method)
        verb = verb_for_annotation(name)
        if verb:
            out.append((verb, _path_value(resolver, _annotation_attr(ann, PATH_ATTRIBUTES), owner), line))
        elif name == REQUEST_MAPPING:
            path = _path_value(resolver, _annotation_attr(ann, PATH_ATTRIBUTES), owner)
            for v in _request_methods(ann):
                out.append((v, path, line))
    return out


# ----------------------------
# public API
# ----------------------------


def extract_from_unit(
    unit: T.CompilationUnit,
    file_path: Optional[Path] = None,
    source_root: Optional[Path] = None,
) -> list[AstEndpointRecord]:
    resolver = ConstantResolver(unit, file_path, source_root)
    records: list[AstEndpointRecord] = []

    for decl in _iter_type_decls(unit):
        if not isinstance(decl, T.ClassDeclaration) or not _is_controller(decl):
            continue
        base = class_base_path(decl, resolver)

        for member in _body(decl):
            if not isinstance(member, T.MethodDeclaration):
                continue
            for verb, method_path, line in _method_mappings(member, resolver, decl.name):
                records.append(
                    AstEndpointRecord(
                        http_method=verb,
                        path=build_full_path(base, method_path),
                        class_name=decl.name,
                        method_name=member.name,
                        line_number=line,
                        parameters=[p.name for p in member.parameters or []],
                    )
                )
    return records


def extract_from_source(
    source: str,
    file_path: Optional[Path] = None,
    source_root: Optional[Path] = None,
) -> list[AstEndpointRecord]:
    return extract_from_unit(parse_unit(source), file_path=file_path, source_root=source_root)


def extract_from_file(path: Path, source_root: Optional[Path] = None) -> list[AstEndpointRecord]:
    try:
        source = path.read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        raise AstEngineError(f"cannot read {path}: {exc}") from exc
    return extract_from_source(source, file_path=path, source_root=source_root)


def main(argv: Optional[list[str]] = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        sys.stderr.write("Usage: python -m javacli.extractors.spring.ast_engine <java-file> [source-root]\n")
        return 2

    path = Path(args[0])
    source_root = Path(args[1]) if len(args) > 1 else None
    try:
        records = extract_from_file(path, source_root)
    except AstEngineError as exc:
        sys.stderr.write(f"Error parsing file: {exc}\n")
        return 1

    for record in records:
        sys.stdout.write(json.dumps(record.model_dump(by_alias=True)) + "\n")
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
