from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

HttpMethod = Literal["GET", "POST", "PUT", "DELETE", "PATCH"]

HTTP_METHODS: tuple[str, ...] = ("GET", "POST", "PUT", "DELETE", "PATCH")


class Endpoint(BaseModel):
    """One (verb, path) mapping plus the place it was declared."""

    model_config = ConfigDict(frozen=True)

    method: HttpMethod
    path: str = "/"
    class_name: str
    method_name: str = ""
    file_path: str
    line_number: int = 1
    parameters: tuple[str, ...] = ()
    module_name: Optional[str] = None

    @field_validator("method", mode="before")
    @classmethod
    def _upper_method(cls, v):
        return v.upper() if isinstance(v, str) else v

    @field_validator("path", mode="before")
    @classmethod
    def _non_empty_path(cls, v):
        return v or "/"


class AstEndpointRecord(BaseModel):
    """JSON-line shape printed by the javalang engine worker."""

    model_config = ConfigDict(populate_by_name=True)

    http_method: HttpMethod = Field(alias="httpMethod")
    path: str
    class_name: str = Field(alias="className")
    method_name: str = Field(default="", alias="methodName")
    line_number: int = Field(default=1, alias="lineNumber")
    parameters: list[str] = Field(default_factory=list)

    @field_validator("http_method", mode="before")
    @classmethod
    def _upper_method(cls, v):
        return v.upper() if isinstance(v, str) else v

    def to_endpoint(self, file_path: str, module_name: Optional[str] = None) -> Endpoint:
        return Endpoint(
            method=self.http_method,
            path=self.path,
            class_name=self.class_name,
            method_name=self.method_name,
            file_path=file_path,
            line_number=self.line_number or 1,
            parameters=tuple(self.parameters),
            module_name=module_name,
        )


class IndexStats(BaseModel):
    total_endpoints: int = 0
    method_counts: dict[str, int] = Field(default_factory=dict)
    total_java_files: int = 0
    controller_count: int = 0
    scan_duration_ms: int = 0


class IndexMetadata(BaseModel):
    version: str
    project_path: str
    generated_at: int
    fingerprint: str
    stats: IndexStats


@dataclass(frozen=True)
class SourceFile:
    path: str
    module_name: Optional[str] = None


@dataclass(frozen=True)
class FileExtraction:
    endpoints: list[Endpoint] = field(default_factory=list)
    is_controller: bool = False


@dataclass(frozen=True)
class AnalysisResult:
    endpoints: list[Endpoint]
    controller_count: int
    files_analyzed: int = 0
    files_failed: int = 0


def count_controllers(endpoints: list[Endpoint]) -> int:
    # classes without endpoints are not counted
    return len({ep.class_name for ep in endpoints})


def count_methods(endpoints: list[Endpoint]) -> dict[str, int]:
    counts: dict[str, int] = {}
    for ep in endpoints:
        counts[ep.method] = counts.get(ep.method, 0) + 1
    return counts


def build_stats(
    endpoints: list[Endpoint],
    total_java_files: int,
    scan_duration_ms: int,
) -> IndexStats:
    return IndexStats(
        total_endpoints=len(endpoints),
        method_counts=count_methods(endpoints),
        total_java_files=total_java_files,
        controller_count=count_controllers(endpoints),
        scan_duration_ms=scan_duration_ms,
    )
