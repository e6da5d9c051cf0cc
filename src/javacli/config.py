from __future__ import annotations

from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

AstEngineMode = Literal["subprocess", "inprocess", "off"]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

    index_dir_name: str = Field(default=".javacli", alias="JAVACLI_INDEX_DIR")

    ast_engine: AstEngineMode = Field(default="subprocess", alias="JAVACLI_AST_ENGINE")
    ast_timeout_s: float = Field(default=30.0, alias="JAVACLI_AST_TIMEOUT")

    batch_size: int = Field(default=10, alias="JAVACLI_BATCH_SIZE")
    max_workers: Optional[int] = Field(default=None, alias="JAVACLI_MAX_WORKERS")

    # drop mappings whose handler method cannot be found (False: keep with empty name)
    strict_method_names: bool = Field(default=True, alias="JAVACLI_STRICT_METHOD_NAMES")
    max_file_bytes: int = Field(default=2_000_000, alias="JAVACLI_MAX_FILE_BYTES")


def load_settings(**overrides) -> Settings:
    return Settings(**overrides)
