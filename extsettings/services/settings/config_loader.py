from __future__ import annotations

import asyncio
import json
import logging
import re
import time
from pathlib import Path
from typing import Any, Mapping, Protocol

from pydantic import ValidationError as PydanticValidationError

from ...errors import ConfigurationError
from .schema import SUPPORTED_TYPES, Setting, settings_from_mapping

logger = logging.getLogger(__name__)

DEFAULTS_PATH = Path(__file__).resolve().parents[2] / "config" / "defaults.json"
DEFAULT_CACHE_TTL_S = 5 * 60


class ConfigurationSource(Protocol):
    async def load_configuration(self) -> dict[str, Setting]: ...

    def load_fallback_configuration(self) -> dict[str, Setting]: ...


FALLBACK_CONFIGURATION: dict[str, dict[str, Any]] = {
    "feature_enabled": {
        "type": "boolean",
        "value": True,
        "description": "Enable main feature functionality",
        "displayName": "Enable Main Feature",
        "category": "general",
        "order": 1,
    },
    "api_key": {
        "type": "text",
        "value": "",
        "description": "API key for external service",
        "displayName": "API Key",
        "category": "general",
        "maxLength": 100,
        "order": 2,
    },
    "refresh_interval": {
        "type": "enum",
        "value": "60",
        "description": "Auto-refresh interval",
        "displayName": "Refresh Interval",
        "category": "general",
        "options": {
            "30": "30 seconds",
            "60": "1 minute",
            "300": "5 minutes",
            "900": "15 minutes",
            "1800": "30 minutes",
        },
        "order": 3,
    },
    "custom_css": {
        "type": "longtext",
        "value": "/* Custom CSS styles */\n.example { color: blue; }",
        "description": "Custom CSS for content injection",
        "displayName": "Custom CSS",
        "category": "appearance",
        "maxLength": 50000,
        "order": 1,
    },
    "advanced_config": {
        "type": "json",
        "value": {"endpoint": "https://api.example.com", "timeout": 5000, "retries": 3},
        "description": "Advanced configuration object",
        "displayName": "Advanced Configuration",
        "category": "advanced",
        "order": 1,
    },
}


def validate_configuration(config: Any) -> None:
    """Structural check of a raw defaults mapping. Raises ConfigurationError."""

    if not isinstance(config, Mapping):
        raise ConfigurationError("Configuration must be a valid object")

    for key, setting in config.items():
        if not isinstance(setting, Mapping):
            raise ConfigurationError(f"Invalid setting configuration for '{key}': must be an object")
        if not setting.get("type"):
            raise ConfigurationError(f"Invalid setting configuration for '{key}': missing 'type' field")
        if "value" not in setting:
            raise ConfigurationError(f"Invalid setting configuration for '{key}': missing 'value' field")
        if not setting.get("description"):
            raise ConfigurationError(f"Invalid setting configuration for '{key}': missing 'description' field")

        stype = setting["type"]
        if stype not in SUPPORTED_TYPES:
            raise ConfigurationError(
                f"Invalid setting type for '{key}': {stype}. Must be one of: {', '.join(SUPPORTED_TYPES)}"
            )

        value = setting["value"]
        if stype == "enum":
            options = setting.get("options")
            if not isinstance(options, Mapping):
                raise ConfigurationError(f"Enum setting '{key}' must have 'options' object")
            if not options:
                raise ConfigurationError(f"Enum setting '{key}' must have at least one option")
            for opt_key, label in options.items():
                if not isinstance(label, str):
                    raise ConfigurationError(
                        f"Enum setting '{key}' option '{opt_key}' must have string display value, "
                        f"got {type(label).__name__}"
                    )
            if not isinstance(value, str):
                raise ConfigurationError(
                    f"Default value for enum setting '{key}' must be a string, got {type(value).__name__}"
                )
            if value not in options:
                raise ConfigurationError(f"Default value '{value}' for enum setting '{key}' must exist in options")

        if stype == "number":
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise ConfigurationError(f"Number setting '{key}' must have numeric default value")
            if setting.get("min") is not None and value < setting["min"]:
                raise ConfigurationError(f"Default value for '{key}' is below minimum constraint")
            if setting.get("max") is not None and value > setting["max"]:
                raise ConfigurationError(f"Default value for '{key}' is above maximum constraint")


def format_key(key: str) -> str:
    """`api_key` -> `Api Key`."""
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), key.replace("_", " "))


class ConfigurationLoader:
    """Loads setting definitions from a JSON defaults file, with a short-lived cache."""

    def __init__(self, path: str | Path | None = None, *, cache_ttl_s: float = DEFAULT_CACHE_TTL_S):
        self.path = Path(path) if path else DEFAULTS_PATH
        self.cache_ttl_s = cache_ttl_s
        self._config: dict[str, Setting] | None = None
        self._cache: dict[str, Setting] | None = None
        self._cache_ts: float | None = None

    def _read(self) -> Any:
        with open(self.path, "r", encoding="utf-8") as f:
            return json.load(f)

    def _is_cache_valid(self) -> bool:
        return (
            self._cache is not None
            and self._cache_ts is not None
            and time.monotonic() - self._cache_ts < self.cache_ttl_s
        )

    async def load_configuration(self) -> dict[str, Setting]:
        if self._is_cache_valid():
            return dict(self._cache)

        try:
            raw = await asyncio.to_thread(self._read)
        except (OSError, ValueError) as e:
            logger.error("Configuration loading failed (%s): %s", self.path, e)
            raise ConfigurationError(f"Failed to load configuration from {self.path}: {e}") from e

        validate_configuration(raw)
        try:
            config = settings_from_mapping(raw)
        except PydanticValidationError as e:
            raise ConfigurationError(f"Invalid configuration in {self.path}: {e}") from e

        self._cache = config
        self._config = config
        self._cache_ts = time.monotonic()
        logger.info("Configuration loaded: %s", ", ".join(config))
        return dict(config)

    def load_fallback_configuration(self) -> dict[str, Setting]:
        """Embedded defaults. Deprecated: only used with ConfigStrategy.FALLBACK."""
        logger.warning("Using fallback configuration")
        config = settings_from_mapping(FALLBACK_CONFIGURATION)
        self._config = config
        return dict(config)

    # --- lookups over the last loaded configuration -------------------------

    def get_setting(self, key: str) -> Setting | None:
        return (self._config or {}).get(key)

    def has_setting(self, key: str) -> bool:
        return key in (self._config or {})

    def get_setting_keys(self) -> list[str]:
        return list(self._config or {})

    def get_display_name(self, key: str) -> str:
        setting = self.get_setting(key)
        if setting is not None and setting.display_name:
            return setting.display_name
        return format_key(key)

    def get_categories(self) -> list[str]:
        return sorted({s.category for s in (self._config or {}).values() if s.category})

    def get_category_settings(self, category: str) -> list[tuple[str, Setting]]:
        items = [(k, s) for k, s in (self._config or {}).items() if s.category == category]
        return sorted(items, key=lambda kv: kv[1].order or 0)

    def get_category_display_name(self, category: str) -> str:
        return format_key(category)

    def clear_cache(self) -> None:
        self._config = None
        self._cache = None
        self._cache_ts = None

    def get_cache_info(self) -> dict[str, Any]:
        age = time.monotonic() - self._cache_ts if self._cache_ts is not None else None
        return {
            "cached": self._cache is not None,
            "age_s": age,
            "valid": self._is_cache_valid(),
        }
