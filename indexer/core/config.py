"""indexer.core.config

Two config surfaces only:
1) `config/default.yaml` (or `config/user.yaml` when present)
2) Environment variables, prefixed `SHOPINDEX_`. These win over YAML.

Contract addresses are normalised to lowercase on load.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource

from indexer.core.exceptions import ConfigError


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Config file is not valid YAML: {path}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"Config file must contain a mapping: {path}")
    return raw


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if k in result and isinstance(result[k], dict) and isinstance(v, dict):
            result[k] = _deep_merge(result[k], v)
        else:
            result[k] = v
    return result


class SourcesConfig(BaseModel):
    """Statically known contracts. Shops are discovered at runtime."""

    hub: str = ""
    identity_registry: str = ""
    reputation_registry: str = ""
    validation_registry: str = ""
    start_block: int = 0

    @field_validator("hub", "identity_registry", "reputation_registry", "validation_registry")
    @classmethod
    def lowercase_address(cls, v: str) -> str:
        v = v.strip().lower()
        if v and not v.startswith("0x"):
            raise ValueError(f"address must be 0x-prefixed hex, got {v!r}")
        return v

    @field_validator("start_block")
    @classmethod
    def start_block_not_negative(cls, v: int) -> int:
        if v < 0:
            raise ValueError("start_block must be >= 0")
        return v


class IndexerConfig(BaseModel):
    partition: str = "main"
    db_filename: str = "index.db"


class LoggingConfig(BaseModel):
    level: str = "INFO"
    json_output: bool = False


class ApiConfig(BaseModel):
    host: str = "127.0.0.1"
    port: int = 5060
    auth_token: str = ""
    cors_origins: list[str] = Field(default_factory=list)


class Config(BaseSettings):
    """Root configuration. Single source of truth."""

    data_dir: Path = Path("data")
    config_dir: Path = Path("config")

    sources: SourcesConfig = Field(default_factory=SourcesConfig)
    indexer: IndexerConfig = Field(default_factory=IndexerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    api: ApiConfig = Field(default_factory=ApiConfig)

    model_config = {"env_prefix": "SHOPINDEX_", "env_nested_delimiter": "__"}

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # YAML arrives as init kwargs; environment variables override it.
        return env_settings, init_settings, dotenv_settings, file_secret_settings

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.indexer.db_filename

    @classmethod
    def from_yaml(cls, path: Path, *, overlay: dict[str, Any] | None = None) -> Config:
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")

        raw = _read_yaml(path)
        if overlay:
            raw = _deep_merge(raw, overlay)
        return cls(**raw)

    @classmethod
    def from_repo_defaults(cls, repo_root: Path | None = None) -> Config:
        root = repo_root or Path.cwd()
        default_path = root / "config" / "default.yaml"
        user_path = root / "config" / "user.yaml"
        if user_path.exists():
            return cls.from_yaml(default_path, overlay=_read_yaml(user_path))
        return cls.from_yaml(default_path)
