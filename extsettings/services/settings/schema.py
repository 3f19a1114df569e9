from __future__ import annotations

import copy
from enum import Enum
from typing import Any, Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field

EXPORT_FORMAT_VERSION = "1.0"

SUPPORTED_TYPES: tuple[str, ...] = ("boolean", "text", "longtext", "number", "json", "enum")

SettingType = Literal["boolean", "text", "longtext", "number", "json", "enum"]
StorageAreaName = Literal["local", "sync"]
STORAGE_AREAS: tuple[str, ...] = ("local", "sync")


class ConfigStrategy(str, Enum):
    """Where setting definitions come from on initialization."""

    PRIMARY = "primary"
    FALLBACK = "fallback"  # embedded defaults, kept for compatibility


class ManagerState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"


class Setting(BaseModel):
    """One setting definition plus its current value.

    Field names follow Python style; the wire form (defaults file, export
    payload) uses the camelCase aliases. `type` is a plain string so that
    unknown types reach the validator instead of failing at parse time.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str
    value: Any = None
    description: str = ""

    max_length: int | None = Field(default=None, alias="maxLength", ge=0)
    min: int | float | None = None
    max: int | float | None = None
    options: dict[str, str] | None = None

    # presentation metadata from the defaults file
    display_name: str | None = Field(default=None, alias="displayName")
    category: str | None = None
    order: int | None = None

    def with_value(self, value: Any) -> "Setting":
        return self.model_copy(update={"value": copy.deepcopy(value)}, deep=True)

    def to_record(self) -> dict[str, Any]:
        """Wire form: camelCase names, unset constraints omitted, value always present."""
        d = self.model_dump(by_alias=True, exclude_none=True)
        d["value"] = copy.deepcopy(self.value)
        return d


def settings_from_mapping(raw: Mapping[str, Any]) -> dict[str, Setting]:
    return {str(k): v if isinstance(v, Setting) else Setting.model_validate(v) for k, v in raw.items()}


def snapshot(settings: Mapping[str, Setting]) -> dict[str, dict[str, Any]]:
    return {k: s.to_record() for k, s in settings.items()}


class ExportEnvelope(BaseModel):
    """Export/import payload: `{version, timestamp, settings}`."""

    model_config = ConfigDict(extra="ignore")

    # payloads from other extension versions may carry anything here
    version: Any = Field(default=EXPORT_FORMAT_VERSION)
    timestamp: Any = Field(default="")
    settings: dict[str, Any]
