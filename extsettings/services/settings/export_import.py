from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError

from ...errors import FormatError, ValidationError
from .schema import EXPORT_FORMAT_VERSION, ExportEnvelope, Setting, snapshot
from .validator import validate

logger = logging.getLogger(__name__)


@dataclass
class ImportReport:
    imported_keys: list[str] = field(default_factory=list)
    skipped: dict[str, str] = field(default_factory=dict)

    @property
    def total_imported(self) -> int:
        return len(self.imported_keys)

    def to_dict(self) -> dict[str, Any]:
        return {
            "imported_keys": list(self.imported_keys),
            "skipped": dict(self.skipped),
            "total_imported": self.total_imported,
        }


def export_settings(settings: Mapping[str, Setting], *, now: datetime | None = None) -> dict[str, Any]:
    """Build the JSON-serializable export envelope."""

    ts = (now or datetime.now(timezone.utc)).isoformat().replace("+00:00", "Z")
    return {
        "version": EXPORT_FORMAT_VERSION,
        "timestamp": ts,
        "settings": snapshot(settings),
    }


def dumps_export(envelope: Mapping[str, Any]) -> str:
    return json.dumps(envelope, indent=2, ensure_ascii=False)


def parse_import(payload: str | bytes | Mapping[str, Any]) -> ExportEnvelope:
    """Parse an export payload. Raises FormatError."""

    raw: Any = payload
    if isinstance(payload, (str, bytes)):
        try:
            if isinstance(payload, bytes):
                payload = payload.decode("utf-8", errors="replace")
            raw = json.loads(payload)
        except ValueError as e:
            raise FormatError(f"Invalid JSON format: {e}") from e

    if not isinstance(raw, Mapping) or not isinstance(raw.get("settings"), Mapping):
        raise FormatError("Invalid settings format - missing settings object")

    try:
        return ExportEnvelope.model_validate(raw)
    except PydanticValidationError as e:
        raise FormatError(f"Invalid settings format: {e}") from e


def filter_import(
    current: Mapping[str, Setting], incoming: Mapping[str, Any]
) -> tuple[dict[str, Any], ImportReport]:
    """Select the incoming values that may be applied to `current`.

    Only `value` is taken from an incoming record; it is checked against the
    current definition, so an import cannot change a type or loosen a
    constraint. Returns ({key: value}, report).
    """

    accepted: dict[str, Any] = {}
    report = ImportReport()

    for key, record in incoming.items():
        reason = None
        setting = current.get(key)
        if setting is None:
            reason = "unknown setting"
        elif not isinstance(record, Mapping) or not record.get("type") or "value" not in record:
            reason = "missing type or value"
        elif record["type"] != setting.type:
            reason = f"type mismatch: expected {setting.type}, got {record['type']}"
        else:
            try:
                validate(setting, record["value"], key=key)
            except ValidationError as e:
                reason = e.reason

        if reason is not None:
            logger.warning("Skipping setting '%s' on import: %s", key, reason)
            report.skipped[key] = reason
            continue

        accepted[key] = record["value"]
        report.imported_keys.append(key)

    return accepted, report
