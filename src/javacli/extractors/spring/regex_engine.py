"""
Line-oriented Spring endpoint scanner.

Works on raw text, so it survives files javalang cannot parse. The scan is a
small state machine: every line produces a new ``ScanState`` snapshot via
``dataclasses.replace``; nothing is mutated in place.

Known approximations:
  - the controller flag is file-global: once ``@RestController``/``@Controller``
    is seen, mappings in every later class of the file are accepted.
  - constants in annotation values are not resolved; they are kept as
    ``{Const.NAME}`` placeholders.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Optional

from javacli.domain.models import Endpoint, FileExtraction
from javacli.extractors.params import ANNOTATION, parse_parameters, split_top_level
from javacli.extractors.paths import build_full_path
from javacli.extractors.spring.annotations import (
    PATH_ATTRIBUTES,
    unresolved,
    verb_for_request_method,
)

logger = logging.getLogger(__name__)

# lines after the annotation searched for the handler signature
METHOD_LOOKAHEAD = 2
# max lines joined for a multi-line annotation, parameter list or annotation run
MAX_JOIN_LINES = 20

_CONTROLLER = re.compile(r"@(?:[\w.]+\.)?(?:RestController|Controller)\b")
_CLASS_DECL = re.compile(r"(?:^|[\s;{}])(?:class|interface|enum|record)\s+([A-Za-z_$][\w$]*)")
_REQUEST_MAPPING = re.compile(r"@(?:[\w.]+\.)?RequestMapping\b")
_VERB_MAPPING = re.compile(r"@(?:[\w.]+\.)?(Get|Post|Put|Delete|Patch)Mapping\b", re.IGNORECASE)
_ANNOTATION_NAME = re.compile(r"@[\w.]+")

_METHOD_DECL = re.compile(
    r"^(?:" + ANNOTATION.pattern + r"\s+)*"
    r"(?:(?:public|private|protected|static|final|synchronized|abstract|default|native)\s+)*"
    r"(?:<[^>]*>\s+)?"
    r"(?!(?:return|new|throw|else|if|for|while|switch|catch|case)\b)"
    r"[\w$.]+(?:\s*<.*>)?(?:\s*\[\s*\])*\s+"
    r"([A-Za-z_$][\w$]*)\s*\("
)

_STRING_LITERAL = re.compile(r'"(?:\\.|[^"\\])*"')
_CHAR_LITERAL = re.compile(r"'(?:\\.|[^'\\])'")
_NAMED_ARG = re.compile(r"^([A-Za-z_]\w*)\s*=(?!=)\s*(.*)$", re.DOTALL)


@dataclass(frozen=True)
class ClassFrame:
    name: str
    base_path: str
    body_depth: int
    entered: bool = False


@dataclass(frozen=True)
class ScanState:
    classes: tuple[ClassFrame, ...] = ()
    last_class: str = ""
    pending_base_path: str = ""
    is_controller: bool = False
    depth: int = 0
    in_block_comment: bool = False

    @property
    def current_class(self) -> str:
        return self.classes[-1].name if self.classes else self.last_class

    @property
    def class_base_path(self) -> str:
        return self.classes[-1].base_path if self.classes else ""


@dataclass(frozen=True)
class Mapping:
    """A verb mapping found on one line (before method-name resolution)."""

    verbs: tuple[str, ...]
    path: str
    line_index: int
    end_line_index: int
    trailing_text: str


# ----------------------------
# text helpers
# ----------------------------


def _code_only(line: str, in_block_comment: bool) -> tuple[str, bool]:
    """Strip comments and string/char literals; returns (code, still_in_block_comment)."""
    out: list[str] = []
    i = 0
    text = _CHAR_LITERAL.sub("''", _STRING_LITERAL.sub('""', line))
    n = len(text)
    while i < n:
        if in_block_comment:
            end = text.find("*/", i)
            if end < 0:
                return "".join(out), True
            i = end + 2
            in_block_comment = False
            continue
        if text.startswith("//", i):
            break
        if text.startswith("/*", i):
            in_block_comment = True
            i += 2
            continue
        out.append(text[i])
        i += 1
    return "".join(out), in_block_comment


def _balanced_parens(lines: list[str], line_index: int, col: int) -> Optional[tuple[str, int, int]]:
    """
    Starting at an opening paren at lines[line_index][col], return
    (inner_text, end_line_index, end_col) where end_col is just past the closing paren.
    """
    depth = 0
    in_string = False
    parts: list[str] = []
    last = min(len(lines), line_index + MAX_JOIN_LINES)

    for li in range(line_index, last):
        line = lines[li]
        start = col if li == line_index else 0
        prev = ""
        for ci in range(start, len(line)):
            ch = line[ci]
            if in_string:
                if ch == '"' and prev != "\\":
                    in_string = False
                parts.append(ch)
                prev = ch
                continue
            if ch == '"':
                in_string = True
            elif ch == "(":
                depth += 1
                if depth == 1:
                    prev = ch
                    continue
            elif ch == ")":
                depth -= 1
                if depth == 0:
                    return "".join(parts), li, ci + 1
            parts.append(ch)
            prev = ch
        parts.append(" ")
    return None


def _annotation_args(lines: list[str], line_index: int, end_of_name: int) -> tuple[Optional[str], int, int]:
    """Return (args or None for a marker annotation, end_line_index, end_col)."""
    line = lines[line_index]
    rest = line[end_of_name:]
    stripped = rest.lstrip()
    if not stripped.startswith("("):
        return None, line_index, end_of_name
    col = end_of_name + (len(rest) - len(stripped))
    found = _balanced_parens(lines, line_index, col)
    if found is None:
        return None, line_index, len(line)
    return found


def _split_args(args: Optional[str]) -> tuple[list[str], dict[str, str]]:
    positional: list[str] = []
    named: dict[str, str] = {}
    if not args:
        return positional, named
    for part in split_top_level(args):
        m = _NAMED_ARG.match(part)
        if m and not part.startswith('"'):
            named[m.group(1)] = m.group(2).strip()
        else:
            positional.append(part.strip())
    return positional, named


def _is_string_literal(expr: str) -> bool:
    return len(expr) >= 2 and expr[0] == '"' and expr[-1] == '"' and _STRING_LITERAL.fullmatch(expr) is not None


def _value_to_path(expr: str) -> str:
    expr = expr.strip()
    if expr.startswith("{") and expr.endswith("}"):
        items = split_top_level(expr[1:-1])
        if not items:
            return ""
        # first entry of a multi-path mapping
        expr = items[0].strip()
    if not expr:
        return ""
    if _is_string_literal(expr):
        return expr[1:-1]
    return unresolved(expr)


def path_from_args(args: Optional[str]) -> str:
    """URL fragment carried by an annotation's arguments ("" when there is none)."""
    positional, named = _split_args(args)
    if positional:
        return _value_to_path(positional[0])
    for attr in PATH_ATTRIBUTES:
        if attr in named:
            return _value_to_path(named[attr])
    return ""


def verbs_from_request_mapping(args: Optional[str]) -> tuple[str, ...]:
    _, named = _split_args(args)
    expr = named.get("method")
    if expr is None:
        return ("GET",)
    expr = expr.strip()
    if expr.startswith("{") and expr.endswith("}"):
        items = split_top_level(expr[1:-1])
    else:
        items = [expr]
    verbs: list[str] = []
    for item in items:
        verb = verb_for_request_method(item)
        if verb and verb not in verbs:
            verbs.append(verb)
    return tuple(verbs)


def _declares_type(lines: list[str], line_index: int, start_col: int) -> bool:
    """Is the annotation ending at (line_index, start_col) followed by a type declaration?

    Annotations in between are skipped whole, arguments included, so a
    multi-line ``@Tag(...)`` or a long run of markers does not hide the class.
    """
    li, col = line_index, start_col
    in_comment = False
    last = min(len(lines), line_index + MAX_JOIN_LINES)
    while li < last:
        raw = lines[li][col:]
        code, in_comment = _code_only(raw, in_comment)
        code = code.strip()
        if not code:
            li, col = li + 1, 0
            continue
        if not code.startswith("@"):
            return _CLASS_DECL.search(code) is not None
        if code.startswith("@interface"):
            return True
        name = _ANNOTATION_NAME.search(raw)
        if name is None:
            return False
        _, end_li, end_col = _annotation_args(lines, li, col + name.end())
        if end_li >= last:
            return False
        li, col = end_li, end_col
        in_comment = False
    return False


def _find_method(lines: list[str], mapping: Mapping) -> Optional[tuple[str, list[str]]]:
    candidates: list[tuple[int, int, str]] = [
        (mapping.end_line_index, len(lines[mapping.end_line_index]) - len(mapping.trailing_text), mapping.trailing_text)
    ]
    first = mapping.end_line_index + 1
    for li in range(first, min(len(lines), first + METHOD_LOOKAHEAD)):
        candidates.append((li, 0, lines[li]))

    for li, offset, text in candidates:
        stripped = text.strip()
        if not stripped or stripped.startswith(("//", "/*", "*")):
            continue
        m = _METHOD_DECL.match(stripped)
        if not m:
            continue
        name = m.group(1)
        lead = len(text) - len(text.lstrip())
        paren_col = offset + lead + m.end() - 1
        found = _balanced_parens(lines, li, paren_col)
        params = parse_parameters(found[0]) if found else []
        return name, params
    return None


# ----------------------------
# state transitions
# ----------------------------


def _enter_class(state: ScanState, name: str, base_path: str) -> ScanState:
    frame = ClassFrame(name=name, base_path=base_path, body_depth=state.depth + 1)
    return replace(state, classes=state.classes + (frame,), last_class=name, pending_base_path="")


def _apply_braces(state: ScanState, code: str) -> ScanState:
    depth = state.depth
    classes = list(state.classes)
    for ch in code:
        if ch == "{":
            depth += 1
            if classes and not classes[-1].entered and depth == classes[-1].body_depth:
                classes[-1] = replace(classes[-1], entered=True)
        elif ch == "}":
            depth = max(0, depth - 1)
            while classes and classes[-1].entered and depth < classes[-1].body_depth:
                classes.pop()
    return replace(state, depth=depth, classes=tuple(classes))


# ----------------------------
# public API
# ----------------------------


def extract_from_source(
    content: str,
    file_path: str = "",
    module_name: Optional[str] = None,
    strict: bool = True,
) -> FileExtraction:
    """
    Scan Java source text for Spring mappings.

    strict=True drops a mapping whose handler signature is not found within
    the lookahead window; strict=False keeps it with an empty method_name.
    """
    lines = content.splitlines()
    state = ScanState()
    endpoints: list[Endpoint] = []

    i = 0
    while i < len(lines):
        raw = lines[i]
        code, in_comment = _code_only(raw, state.in_block_comment)
        consumed_to = i

        if not code.strip():
            state = replace(state, in_block_comment=in_comment)
            i += 1
            continue

        # 1. controller marker (file-global latch)
        if _CONTROLLER.search(code):
            state = replace(state, is_controller=True)

        # 2. class declaration (bound after the mapping check so a same-line
        #    @RequestMapping applies to this class)
        class_match = _CLASS_DECL.search(code)

        # 3./4. request mappings
        mapping: Optional[Mapping] = None
        rm = _REQUEST_MAPPING.search(raw) if _REQUEST_MAPPING.search(code) else None
        if rm:
            args, end_li, end_col = _annotation_args(lines, i, rm.end())
            if _declares_type(lines, end_li, end_col):
                state = replace(state, pending_base_path=path_from_args(args))
            elif state.is_controller:
                verbs = verbs_from_request_mapping(args)
                if verbs:
                    mapping = Mapping(verbs, path_from_args(args), i, end_li, lines[end_li][end_col:])
            consumed_to = max(consumed_to, end_li)
        else:
            vm = _VERB_MAPPING.search(raw) if _VERB_MAPPING.search(code) else None
            if vm and state.is_controller:
                args, end_li, end_col = _annotation_args(lines, i, vm.end())
                verb = vm.group(1).upper()
                mapping = Mapping((verb,), path_from_args(args), i, end_li, lines[end_li][end_col:])
                consumed_to = max(consumed_to, end_li)

        if class_match:
            state = _enter_class(state, class_match.group(1), state.pending_base_path)

        if mapping is not None:
            found = _find_method(lines, mapping)
            if found is None and strict:
                logger.debug("%s:%d: no handler signature after mapping, skipped", file_path, i + 1)
            else:
                method_name, params = found if found else ("", [])
                full_path = build_full_path(state.class_base_path, mapping.path)
                for verb in mapping.verbs:
                    endpoints.append(
                        Endpoint(
                            method=verb,
                            path=full_path,
                            class_name=state.current_class,
                            method_name=method_name,
                            file_path=file_path,
                            line_number=i + 1,
                            parameters=tuple(params),
                            module_name=module_name,
                        )
                    )

        # braces of every physical line consumed by this step
        state = replace(state, in_block_comment=in_comment)
        state = _apply_braces(state, code)
        for extra in range(i + 1, consumed_to + 1):
            extra_code, extra_comment = _code_only(lines[extra], state.in_block_comment)
            state = replace(state, in_block_comment=extra_comment)
            state = _apply_braces(state, extra_code)
        i = consumed_to + 1

    logger.debug("%s: regex engine found %d endpoints", file_path, len(endpoints))
    return FileExtraction(endpoints=endpoints, is_controller=state.is_controller)


def extract_from_file(
    path: Path,
    module_name: Optional[str] = None,
    strict: bool = True,
    max_bytes: int = 2_000_000,
) -> FileExtraction:
    data = path.read_bytes()[:max_bytes]
    content = data.decode("utf-8", errors="replace")
    return extract_from_source(content, file_path=str(path), module_name=module_name, strict=strict)
