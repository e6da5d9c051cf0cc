from __future__ import annotations

from typing import Optional

CONTROLLER_ANNOTATIONS = frozenset({"RestController", "Controller"})

# annotation simple name -> HTTP verb
VERB_MAPPINGS: dict[str, str] = {
    "GetMapping": "GET",
    "PostMapping": "POST",
    "PutMapping": "PUT",
    "DeleteMapping": "DELETE",
    "PatchMapping": "PATCH",
}

REQUEST_MAPPING = "RequestMapping"

# RequestMethod.X members we emit endpoints for
REQUEST_METHODS = frozenset(VERB_MAPPINGS.values())

# attributes carrying the URL fragment, in lookup order
PATH_ATTRIBUTES = ("value", "path")


def simple_name(annotation_name: str) -> str:
    """`org.springframework...GetMapping` -> `GetMapping`."""
    return annotation_name.rsplit(".", 1)[-1]


def verb_for_annotation(annotation_name: str) -> Optional[str]:
    name = simple_name(annotation_name)
    for key, verb in VERB_MAPPINGS.items():
        if key.lower() == name.lower():
            return verb
    return None


def verb_for_request_method(member: str) -> Optional[str]:
    """`RequestMethod.POST` / `POST` -> `POST`; unsupported verbs -> None."""
    verb = member.rsplit(".", 1)[-1].strip().upper()
    return verb if verb in REQUEST_METHODS else None


def unresolved(expr: str) -> str:
    """Placeholder for a symbolic value that could not be turned into a literal."""
    expr = " ".join(expr.split())
    return "{" + expr + "}" if expr else ""
