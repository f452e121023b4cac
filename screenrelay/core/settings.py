"""
Runtime settings for the relay.

Stored in ~/.screenrelay/settings.yaml. Environment variables named
``SCREENRELAY_<FIELD>`` override values from the file, e.g.::

    SCREENRELAY_PROVIDER=openrouter
    SCREENRELAY_CHAT_MODEL=openai/gpt-4o
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from screenrelay.models.session import Provider

logger = logging.getLogger(__name__)

ENV_PREFIX = "SCREENRELAY_"


class RelaySettings(BaseModel):
    """Provider selection, model ids, timeouts and reconnection policy."""

    provider: Provider = Field(
        default=Provider.STREAMING_REALTIME,
        description="Active provider (gemini, openrouter or grok)",
    )
    chat_model: str = Field(default="anthropic/claude-3.5-sonnet")
    chat_provider_prefix: str = Field(
        default="openrouter", description="LiteLLM routing prefix for chat completions"
    )
    realtime_model: str = Field(default="gemini-live-2.5-flash-preview")
    placeholder_base_url: str = Field(default="https://api.grok.com/v1")
    placeholder_model: str = Field(default="grok-live")
    search_enabled: bool = Field(default=True)

    init_timeout: float = Field(default=30.0, gt=0)
    text_timeout: float = Field(default=30.0, gt=0)
    image_timeout: float = Field(default=45.0, gt=0)
    min_image_chars: int = Field(default=100, ge=1, description="Smallest plausible base64 image")

    reconnect_max_attempts: int = Field(default=3, ge=0)
    reconnect_base_delay: float = Field(default=2.0, ge=0, description="Seconds between attempts")

    @field_validator("provider", mode="before")
    @classmethod
    def _parse_provider(cls, value: Any) -> Provider:
        return Provider.parse(value)

    def model_for(self, provider: Provider) -> str:
        """Model id used when initializing ``provider``."""
        if provider is Provider.CHAT_COMPLETION:
            return self.chat_model
        if provider is Provider.PLACEHOLDER_THIRD:
            return self.placeholder_model
        return self.realtime_model


class SettingsStore:
    """
    Loads and saves ``RelaySettings`` as YAML.

    Reads are cached; ``reload()`` drops the cache.
    """

    def __init__(self, base_dir: Path | None = None, environ: dict[str, str] | None = None):
        if base_dir is None:
            base_dir = Path.home() / ".screenrelay"
        self.base_dir = base_dir
        self._environ = environ if environ is not None else os.environ
        self._cache: RelaySettings | None = None

    def _settings_path(self) -> Path:
        return self.base_dir / "settings.yaml"

    def _load_file(self) -> dict[str, Any]:
        path = self._settings_path()
        if not path.exists():
            return {}
        try:
            with open(path) as f:
                data = yaml.safe_load(f)
        except (yaml.YAMLError, OSError) as e:
            logger.warning("Ignoring unreadable settings file %s: %s", path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def _env_overrides(self) -> dict[str, Any]:
        overrides: dict[str, Any] = {}
        for name in RelaySettings.model_fields:
            key = f"{ENV_PREFIX}{name.upper()}"
            if key in self._environ:
                overrides[name] = self._environ[key]
        return overrides

    def load(self) -> RelaySettings:
        """Current settings: file values overridden by environment."""
        if self._cache is not None:
            return self._cache
        data = {**self._load_file(), **self._env_overrides()}
        try:
            settings = RelaySettings(**data)
        except ValidationError as e:
            logger.warning("Invalid settings, falling back to defaults: %s", e)
            settings = RelaySettings()
        self._cache = settings
        return settings

    def reload(self) -> RelaySettings:
        self._cache = None
        return self.load()

    def save(self, settings: RelaySettings) -> None:
        """Persist settings to the YAML file."""
        self.base_dir.mkdir(parents=True, exist_ok=True)
        data = settings.model_dump(mode="json")
        with open(self._settings_path(), "w") as f:
            yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False)
        self._cache = settings

    def set(self, name: str, value: Any) -> RelaySettings:
        """Update one field and persist. Raises ValueError for unknown fields."""
        if name not in RelaySettings.model_fields:
            raise ValueError(f"Unknown setting: {name}")
        data = self._load_file()
        data[name] = value
        settings = RelaySettings(**data)
        self.save(settings)
        return self.reload()

    def current_provider(self) -> Provider:
        """Provider selector bound to this store (a pure read)."""
        return self.load().provider
