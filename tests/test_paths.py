from javacli.extractors.paths import build_full_path, ensure_leading_slash


def test_ensure_leading_slash():
    assert ensure_leading_slash("") == "/"
    assert ensure_leading_slash("api") == "/api"
    assert ensure_leading_slash("/api") == "/api"


def test_build_full_path_joins_fragments():
    assert build_full_path("", "") == "/"
    assert build_full_path("api", "x") == "/api/x"
    assert build_full_path("/api/", "/x") == "/api/x"
    assert build_full_path("/api", "x") == "/api/x"


def test_build_full_path_single_fragment():
    assert build_full_path("/api", "") == "/api"
    assert build_full_path("", "/hello") == "/hello"
    assert build_full_path("", "hello") == "/hello"
    assert build_full_path("  ", "  ") == "/"


def test_build_full_path_always_starts_with_slash():
    for base in ("", "a", "/a", "a/", "/a/"):
        for method in ("", "b", "/b", "b/"):
            assert build_full_path(base, method).startswith("/")
