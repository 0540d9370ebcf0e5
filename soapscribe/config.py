"""Global configuration using Pydantic settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application wide settings loaded from environment variables."""

    sample_rate: int = 48_000
    channels: int = 1
    chunk_seconds: float = 3.0
    capture_poll_seconds: float = 0.05
    debounce_seconds: float = 5.0
    transcription_timeout_seconds: float = 15.0
    generation_token_timeout_seconds: float = 30.0
    max_out_of_order: int = 8
    transcription_backend: str = "deepgram"
    notes_backend: str = "openai"
    deepgram_api_key: Optional[str] = None
    deepgram_url: str = "https://api.deepgram.com/v1/listen"
    deepgram_model: str = "nova-3"
    deepgram_language: str = "en-US"
    openai_api_key: Optional[str] = None
    openai_transcription_model: str = "gpt-4o-mini-transcribe"
    openai_notes_model: str = "gpt-4o-mini"
    default_mic_device: Optional[str] = None
    host: str = "127.0.0.1"
    port: int = Field(default=8000, ge=1, le=65_535)

    model_config = SettingsConfigDict(
        env_prefix="SOAPSCRIBE_",
        env_file=".env",
        case_sensitive=False,
    )


_settings: Optional[Settings] = None

_ENV_PREFIX: str = str(Settings.model_config.get("env_prefix") or "").upper()
_ENV_PATH = Path(str(Settings.model_config.get("env_file") or ".env"))
_SECRET_SUFFIX = "_api_key"


@dataclass
class EnvironmentSetting:
    """Metadata about a configuration option backed by an environment variable."""

    field: str
    env_name: str
    value: Any
    default: Any
    annotation: Any

    @property
    def is_secret(self) -> bool:
        return self.field.endswith(_SECRET_SUFFIX)

    @property
    def display_value(self) -> str:
        if self.value is None:
            return "-"
        if self.is_secret:
            return "********"
        return str(self.value)


class EnvironmentSettingError(RuntimeError):
    """Raised when environment-backed configuration updates fail."""


def _env_key(field: str) -> str:
    if field not in Settings.model_fields:
        raise EnvironmentSettingError(f"Unknown setting: {field}")
    return f"{_ENV_PREFIX}{field}".upper()


def _field_default(field_info) -> Any:
    if field_info.default_factory is not None:  # type: ignore[truthy-function]
        return field_info.default_factory()
    return field_info.default


def _write_env_file(env_name: str, value: Optional[str]) -> None:
    """Set or drop ``env_name`` in the ``.env`` file, keeping unrelated lines."""

    lines = _ENV_PATH.read_text().splitlines() if _ENV_PATH.exists() else []
    kept: List[str] = []
    for line in lines:
        key, sep, _ = line.partition("=")
        if sep and not line.lstrip().startswith("#") and key.strip() == env_name:
            continue
        kept.append(line)
    if value is not None:
        kept.append(f"{env_name}={value}")

    if kept:
        _ENV_PATH.write_text("\n".join(kept) + "\n")
    elif _ENV_PATH.exists():
        _ENV_PATH.unlink()


def list_environment_settings(settings: Optional[Settings] = None) -> Iterable[EnvironmentSetting]:
    """Return metadata for all environment-backed settings."""

    settings = settings or get_settings()
    for name, field in Settings.model_fields.items():
        yield EnvironmentSetting(
            field=name,
            env_name=_env_key(name),
            value=getattr(settings, name),
            default=_field_default(field),
            annotation=field.annotation,
        )


def _reload_with(field: str, raw_value: Optional[str]) -> Settings:
    env_name = _env_key(field)
    previous = os.environ.get(env_name)

    if raw_value is None:
        os.environ.pop(env_name, None)
    else:
        os.environ[env_name] = raw_value

    try:
        reloaded = Settings()
    except ValidationError as exc:
        if previous is None:
            os.environ.pop(env_name, None)
        else:
            os.environ[env_name] = previous
        raise EnvironmentSettingError(str(exc)) from exc

    global _settings
    _settings = reloaded
    _write_env_file(env_name, raw_value)
    return reloaded


def update_environment_setting(field: str, raw_value: str) -> Settings:
    """Update an environment setting and reload configuration."""

    return _reload_with(field, raw_value)


def clear_environment_setting(field: str) -> Settings:
    """Remove an environment override for the given field and reload configuration."""

    return _reload_with(field, None)


def get_settings() -> Settings:
    """Return a singleton instance of the application settings."""

    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


__all__ = [
    "Settings",
    "EnvironmentSetting",
    "EnvironmentSettingError",
    "clear_environment_setting",
    "get_settings",
    "list_environment_settings",
    "update_environment_setting",
]
