import textwrap

import pytest

from java_fixtures import PACKAGE_PRIVATE_HELLO
from javacli.extractors.spring import ast_engine, regex_engine


def via_regex(src: str) -> list[tuple[str, str, str, str]]:
    ext = regex_engine.extract_from_source(src)
    return [(e.method, e.path, e.class_name, e.method_name) for e in ext.endpoints]


def via_ast(src: str) -> list[tuple[str, str, str, str]]:
    return [(r.http_method, r.path, r.class_name, r.method_name) for r in ast_engine.extract_from_source(src)]


engines = pytest.mark.parametrize("extract", [via_regex, via_ast], ids=["regex", "ast"])


@engines
def test_package_private_controller_and_handlers(extract):
    assert extract(PACKAGE_PRIVATE_HELLO) == [
        ("GET", "/api/hello", "HelloController", "hello"),
        ("GET", "/api/test", "HelloController", "test"),
    ]


@engines
def test_multiline_annotation_between_class_mapping_and_class(extract):
    src = textwrap.dedent(
        """
        @RestController
        @RequestMapping("/api")
        @Tag(
            name = "users",
            description = "User management (v2)"
        )
        public class UserController {
            @GetMapping("/users")
            public List<User> list() { return null; }
        }
        """
    )
    assert extract(src) == [("GET", "/api/users", "UserController", "list")]


@engines
def test_long_annotation_run_between_class_mapping_and_class(extract):
    src = textwrap.dedent(
        """
        @RestController
        @RequestMapping("/api")
        @Validated
        @Slf4j
        @CrossOrigin(origins = "*")
        @Tag(name = "users")
        @SecurityRequirement(name = "bearer")
        @Transactional(readOnly = true)
        public class UserController {
            @GetMapping("/users")
            public List<User> list() { return null; }
        }
        """
    )
    assert extract(src) == [("GET", "/api/users", "UserController", "list")]


@engines
def test_method_mapping_followed_by_annotations_is_not_a_class_mapping(extract):
    src = textwrap.dedent(
        """
        @RestController
        @RequestMapping("/api")
        public class UserController {
            @RequestMapping("/users")
            @ResponseBody
            public List<User> list() { return null; }
        }
        """
    )
    assert extract(src) == [("GET", "/api/users", "UserController", "list")]


@engines
def test_one_endpoint_per_verb_annotation(extract):
    src = textwrap.dedent(
        """
        @RestController
        public class MixedController {
            @GetMapping("/a")
            @PostMapping("/b")
            public String both() { return ""; }
        }
        """
    )
    assert extract(src) == [
        ("GET", "/a", "MixedController", "both"),
        ("POST", "/b", "MixedController", "both"),
    ]


@engines
def test_handler_after_annotation_with_nested_parens(extract):
    src = textwrap.dedent(
        """
        @RestController
        public class SecuredController {
            @GetMapping("/x") @PreAuthorize("hasRole('A')") public String x() { return ""; }
        }
        """
    )
    assert extract(src) == [("GET", "/x", "SecuredController", "x")]
