from __future__ import annotations


def ensure_leading_slash(path: str) -> str:
    if not path:
        return "/"
    if not path.startswith("/"):
        return "/" + path
    return path


def build_full_path(base_path: str, method_path: str) -> str:
    """
    Join a class-level and a method-level mapping fragment.

      ("", "")          -> "/"
      ("api", "x")      -> "/api/x"
      ("/api/", "/x")   -> "/api/x"
      ("/api", "")      -> "/api"
    """
    base_path = (base_path or "").strip()
    method_path = (method_path or "").strip()

    if not base_path and not method_path:
        return "/"
    if not base_path:
        return ensure_leading_slash(method_path)
    if not method_path:
        return ensure_leading_slash(base_path)

    full = ensure_leading_slash(base_path)
    if not full.endswith("/"):
        full += "/"
    return full + method_path.lstrip("/")
