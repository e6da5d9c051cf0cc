from __future__ import annotations

import re

ANNOTATION = re.compile(r"@[\w.]+(?:\s*\([^()]*(?:\([^()]*\)[^()]*)*\))?")
_GENERICS = re.compile(r"<[^<>]*>")
_ARRAY = re.compile(r"\[\s*\]")
_VARARGS = re.compile(r"\.\.\.")
_JAVA_IDENT = re.compile(r"^[A-Za-z_$][A-Za-z0-9_$]*$")


def split_top_level(raw: str) -> list[str]:
    parts: list[str] = []
    current: list[str] = []
    angle = paren = brace = 0
    in_string = False
    prev = ""

    for ch in raw:
        if in_string:
            current.append(ch)
            if ch == '"' and prev != "\\":
                in_string = False
            prev = ch
            continue

        if ch == '"':
            in_string = True
        elif ch == "<":
            angle += 1
        elif ch == ">":
            angle = max(0, angle - 1)
        elif ch == "(":
            paren += 1
        elif ch == ")":
            paren = max(0, paren - 1)
        elif ch == "{":
            brace += 1
        elif ch == "}":
            brace = max(0, brace - 1)

        if ch == "," and angle == 0 and paren == 0 and brace == 0:
            parts.append("".join(current).strip())
            current = []
        else:
            current.append(ch)
        prev = ch

    tail = "".join(current).strip()
    if tail:
        parts.append(tail)
    return [p for p in parts if p]


def parse_parameters(raw: str) -> list[str]:
    """
    Extract formal parameter names from the text between a method's parentheses.

    Tolerates annotations (with arguments), generics (nested), arrays, varargs
    and `final`. Entries without a valid identifier in name position are skipped.
    """
    if not raw or not raw.strip():
        return []

    names: list[str] = []
    for part in split_top_level(raw):
        text = ANNOTATION.sub(" ", part)

        # nested generics: strip innermost first until stable
        prev = None
        while prev != text:
            prev = text
            text = _GENERICS.sub("", text)

        text = _ARRAY.sub(" ", text)
        text = _VARARGS.sub(" ", text)

        words = text.split()
        if len(words) < 2:
            # a bare type or a bare name is not a declaration
            continue
        name = words[-1]
        if _JAVA_IDENT.match(name):
            names.append(name)
    return names
