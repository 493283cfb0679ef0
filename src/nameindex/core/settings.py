"""
Centralized settings for nameindex.

Values resolve in this order (first wins):

1. ``NAMEINDEX_*`` environment variables (and a ``.env`` file)
2. The JSON config file named by ``NAMEINDEX_CONFIG``
3. Field defaults

Settings are read once per process through ``get_settings()`` and are never
re-read in the middle of a cycle.

Tags:
    configuration, settings, pydantic, environment
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Literal

from pydantic import Field, field_validator
from pydantic.fields import FieldInfo
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
)

from nameindex.core.errors import ConfigError

CONFIG_FILE_ENV = "NAMEINDEX_CONFIG"


class _JsonConfigFileSource(PydanticBaseSettingsSource):
    """Settings source reading the JSON file named by ``NAMEINDEX_CONFIG``."""

    def __init__(self, settings_cls: type[BaseSettings]):
        super().__init__(settings_cls)
        self._values = self._load()

    @staticmethod
    def _load() -> dict[str, Any]:
        path = os.environ.get(CONFIG_FILE_ENV)
        if not path:
            return {}
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise ConfigError(f"Cannot read config file: {path}", cause=e) from e
        if not isinstance(data, dict):
            raise ConfigError(f"Config file must contain a JSON object: {path}")
        return data

    def get_field_value(self, field: FieldInfo, field_name: str) -> tuple[Any, str, bool]:
        return self._values.get(field_name), field_name, False

    def __call__(self) -> dict[str, Any]:
        return {
            name: self._values[name]
            for name in self.settings_cls.model_fields
            if name in self._values
        }


class IndexerSettings(BaseSettings):
    """nameindex configuration.

    All fields can be set via ``NAMEINDEX_*`` environment variables (e.g.
    ``NAMEINDEX_PAGES_TO_FETCH=5``).
    """

    model_config = SettingsConfigDict(
        env_prefix="NAMEINDEX_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Directory service ────────────────────────────────────────
    api_url: str = Field(default="http://localhost:6270", description="Base URL of the name directory")
    pages_to_fetch: int = Field(default=-1, description="Listing page limit; <= 0 means unbounded")
    max_simultaneous_fetches: int = Field(default=75, ge=1, description="Process-wide outbound connection ceiling")
    batch_size: int = Field(default=50, ge=1)
    lookup_timeout_seconds: float = Field(default=30.0, gt=0)

    # ── Storage ──────────────────────────────────────────────────
    store_url: str = Field(default="sqlite:///data/search.db", description="memory:// or sqlite:///path")
    names_file: Path = Field(default=Path("/var/nameindex/blockchain_data.json"))
    profiles_file: Path = Field(default=Path("/var/nameindex/profile_data.json"))

    # ── Service ──────────────────────────────────────────────────
    minutes_between_index: float = Field(default=120.0, gt=0)

    # ── Logging ──────────────────────────────────────────────────
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(default="INFO")
    log_format: Literal["json", "console"] = Field(default="console")

    @field_validator("log_level", mode="before")
    @classmethod
    def _upper_level(cls, value: Any) -> Any:
        return value.upper() if isinstance(value, str) else value

    @field_validator("api_url")
    @classmethod
    def _strip_slash(cls, value: str) -> str:
        return value.rstrip("/")

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            _JsonConfigFileSource(settings_cls),
            file_secret_settings,
        )

    @property
    def index_interval_seconds(self) -> float:
        return self.minutes_between_index * 60.0


_settings_cache: IndexerSettings | None = None


def get_settings(*, _force_reload: bool = False) -> IndexerSettings:
    """Load, validate, and cache the process settings."""
    global _settings_cache
    if _settings_cache is None or _force_reload:
        _settings_cache = IndexerSettings()
    return _settings_cache


def clear_settings_cache() -> None:
    global _settings_cache
    _settings_cache = None
