"""Configuration loading.

Settings are loaded in priority order (highest first):
  1. Environment variables  (PAGEBRIEF__PROVIDER__DEV_MODE=true)
  2. pagebrief.yaml         (searched in cwd, then platform config dir)
  3. Hardcoded defaults

The config file is optional. ``OPENAI_API_KEY`` is honoured as a fallback for
``provider.api_key`` so an existing proxy ``.env`` keeps working.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Literal

import platformdirs
from pydantic import BaseModel, Field, model_validator
from pydantic_settings import (
    BaseSettings,
    PydanticBaseSettingsSource,
    SettingsConfigDict,
    YamlConfigSettingsSource,
)

_DEFAULT_DATA_DIR = platformdirs.user_data_dir("pagebrief")
_DEFAULT_DB_PATH = str(Path(_DEFAULT_DATA_DIR) / "summaries.db")


def _find_config_file() -> str | None:
    """Return the path of the first pagebrief.yaml found, or None."""
    candidates = [
        Path("pagebrief.yaml"),
        Path(platformdirs.user_config_dir("pagebrief")) / "pagebrief.yaml",
    ]
    for path in candidates:
        if path.exists():
            return str(path)
    return None


class ServerSettings(BaseModel):
    host: str = "127.0.0.1"
    port: int = 3000


class ProviderSettings(BaseModel):
    api_url: str = "https://api.openai.com/v1/chat/completions"
    api_key: str = ""
    model: str = "gpt-3.5-turbo"
    temperature: float = 0.7
    max_tokens: int = 250
    timeout_seconds: float = 30.0
    # Return canned responses instead of calling the remote model
    dev_mode: bool = False

    @model_validator(mode="after")
    def _api_key_from_env(self) -> ProviderSettings:
        if not self.api_key:
            self.api_key = os.environ.get("OPENAI_API_KEY", "")
        return self


class SummarizerSettings(BaseModel):
    # ~1024 tokens at 4 chars/token
    max_input_chars: int = 4096
    min_input_chars: int = 100


class ConversationSettings(BaseModel):
    ttl_minutes: int = 30
    history_turns: int = 2


class CacheSettings(BaseModel):
    ttl_hours: int = 24
    db_path: str = _DEFAULT_DB_PATH


class PrefetchSettings(BaseModel):
    debounce_ms: int = 500


class GateSettings(BaseModel):
    min_word_count: int = 150
    min_paragraph_count: int = 2
    max_link_density: float = 0.5
    min_title_length: int = 10


class ClientSettings(BaseModel):
    server_url: str = "http://localhost:3000"


class LoggingSettings(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    format: Literal["json", "text"] = "json"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        # Double-underscore separates nesting: PAGEBRIEF__SERVER__PORT=9090
        env_prefix="PAGEBRIEF__",
        env_nested_delimiter="__",
        yaml_file=_find_config_file(),
        yaml_file_encoding="utf-8",
    )

    server: ServerSettings = ServerSettings()
    # Built per instance so the OPENAI_API_KEY fallback reads the current environment
    provider: ProviderSettings = Field(default_factory=ProviderSettings)
    summarizer: SummarizerSettings = SummarizerSettings()
    conversation: ConversationSettings = ConversationSettings()
    cache: CacheSettings = CacheSettings()
    prefetch: PrefetchSettings = PrefetchSettings()
    gate: GateSettings = GateSettings()
    client: ClientSettings = ClientSettings()
    logging: LoggingSettings = LoggingSettings()

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
        **kwargs: Any,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        return (
            init_settings,  # Constructor args (highest priority)
            env_settings,  # Environment variables
            YamlConfigSettingsSource(settings_cls),  # YAML file
        )
