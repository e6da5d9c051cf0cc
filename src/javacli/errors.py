from __future__ import annotations


class JavacliError(Exception):
    """Base class for errors raised by javacli."""


class ExtractionError(JavacliError):
    """A single file could not be turned into endpoints by one engine."""


class AstEngineError(ExtractionError):
    """The javalang engine failed (parse error, bad exit, timeout, unusable output)."""


class IndexStoreError(JavacliError):
    """The on-disk index could not be read or written."""


class ProjectPathError(JavacliError):
    """The project path does not exist or is not a directory."""
