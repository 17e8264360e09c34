"""Configuration models for the browser copilot."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class LLMConfig(BaseModel):
    """Settings for the text generator."""

    provider: str = Field(default="openai")
    model: Optional[str] = "gpt-4o"
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout_seconds: float = Field(default=30.0, description="Upper bound for one completion call.")
    parameters: dict[str, Any] = Field(default_factory=dict)


class BrowserConfig(BaseModel):
    """Settings for the browser backend."""

    headless: bool = True
    viewport_width: int = 1280
    viewport_height: int = 800
    timeout_seconds: float = Field(default=30.0, description="Default timeout for page operations.")
    home_url: str = "https://www.google.com"


class ServerConfig(BaseModel):
    """Binding for the WebSocket transport."""

    host: str = Field(default="127.0.0.1")
    port: int = Field(default=3000)


class AppConfig(BaseSettings):
    """Top-level configuration for the copilot."""

    model_config = SettingsConfigDict(
        env_prefix="BROWSER_COPILOT_",
        env_file=(".env",),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    llm: LLMConfig = Field(default_factory=LLMConfig)
    browser: BrowserConfig = Field(default_factory=BrowserConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)


def load_config(
    path: Path | None = None,
    *,
    env_file: Path | None = None,
    **overrides: object,
) -> AppConfig:
    """Build the configuration from a YAML file, the environment and overrides.

    Precedence, highest first: keyword ``overrides``, the YAML file, environment
    variables, the ``.env`` file, defaults. Nested sections merge key by key.
    """

    values: dict[str, Any] = _read_yaml(path) if path else {}
    _merge(values, overrides)
    if env_file is None:
        config = AppConfig(**values)
    else:
        config = AppConfig(**values, _env_file=env_file)
    return _with_api_key_fallback(config)


def _read_yaml(path: Path) -> dict[str, Any]:
    import yaml

    loaded = yaml.safe_load(path.read_text(encoding="utf-8"))
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ValueError(f"Configuration file {path} must contain a mapping")
    return loaded


def _with_api_key_fallback(config: AppConfig) -> AppConfig:
    fallback = os.environ.get("OPENAI_API_KEY")
    if config.llm.api_key or not fallback:
        return config
    return config.model_copy(
        update={"llm": config.llm.model_copy(update={"api_key": fallback})}
    )


def _merge(base: dict[str, Any], extra: Mapping[str, Any]) -> None:
    """Merge ``extra`` into ``base`` in place, descending into nested mappings."""

    for key, value in extra.items():
        current = base.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged = dict(current)
            _merge(merged, value)
            base[key] = merged
        else:
            base[key] = value
