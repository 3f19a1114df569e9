from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass
from typing import Any, Mapping

from ...errors import UnknownTypeError, ValidationError
from .schema import Setting

# wire name -> attribute name on Setting
_ATTRS = {"maxLength": "max_length", "displayName": "display_name"}

_DANGEROUS_PATTERNS = [
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"</script>", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
    re.compile(r"data:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),  # onclick=, onload= ...
    re.compile(r"DROP\s+TABLE", re.IGNORECASE),
    re.compile(r"INSERT\s+INTO", re.IGNORECASE),
    re.compile(r"DELETE\s+FROM", re.IGNORECASE),
    re.compile(r"<(iframe|object|embed|link|style|meta)", re.IGNORECASE),
    re.compile(r"<[^>]*>"),
]


@dataclass
class ValidateResult:
    ok: bool
    message: str
    details: str = ""
    hints: list[str] | None = None

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {"ok": self.ok, "message": self.message}
        if self.details:
            d["details"] = self.details
        if self.hints:
            d["hints"] = self.hints
        return d


def _field(setting: Setting | Mapping[str, Any], name: str) -> Any:
    if isinstance(setting, Setting):
        return getattr(setting, _ATTRS.get(name, name), None)
    return setting.get(name)


def _is_number(value: Any) -> bool:
    if isinstance(value, bool):
        return False
    if isinstance(value, int):
        return True
    return isinstance(value, float) and math.isfinite(value)


def _validate_boolean(desc: str, setting, value: Any) -> None:
    if not isinstance(value, bool):
        raise ValidationError(f"{desc} must be a boolean")


def _validate_text(desc: str, setting, value: Any) -> None:
    if not isinstance(value, str):
        raise ValidationError(f"{desc} must be a string")
    max_length = _field(setting, "maxLength")
    if max_length is not None and len(value) > max_length:
        raise ValidationError(f"{desc} exceeds maximum length of {max_length}")


def _validate_number(desc: str, setting, value: Any) -> None:
    if not _is_number(value):
        raise ValidationError(f"{desc} must be a valid number")
    lo = _field(setting, "min")
    hi = _field(setting, "max")
    if lo is not None and value < lo:
        raise ValidationError(f"{desc} must be at least {lo}")
    if hi is not None and value > hi:
        raise ValidationError(f"{desc} must be at most {hi}")


def _validate_json(desc: str, setting, value: Any) -> None:
    if not isinstance(value, (dict, list)):
        raise ValidationError(f"{desc} must be a valid object")
    # must survive storage unchanged: no NaN/Infinity, no non-string keys, no tuples
    try:
        lossless = json.loads(json.dumps(value, allow_nan=False)) == value
    except (TypeError, ValueError, RecursionError):
        lossless = False
    if not lossless:
        raise ValidationError(f"{desc} contains circular references or invalid JSON")


def _validate_enum(desc: str, setting, value: Any) -> None:
    options = _field(setting, "options")
    if not isinstance(options, Mapping) or not options:
        raise ValidationError(f"{desc} is missing enum options")
    try:
        present = value in options
    except TypeError:  # unhashable value
        present = False
    if not present:
        raise ValidationError(f"{desc} must be one of: {', '.join(str(k) for k in options)}")


_RULES = {
    "boolean": _validate_boolean,
    "text": _validate_text,
    "longtext": _validate_text,
    "number": _validate_number,
    "json": _validate_json,
    "enum": _validate_enum,
}


def validate(setting: Setting | Mapping[str, Any], value: Any, *, key: str | None = None) -> None:
    """Check `value` against the type and constraints of `setting`.

    Raises ValidationError (UnknownTypeError for an unsupported type) with a
    message built from the setting description. Returns None when valid.
    """

    stype = _field(setting, "type")
    desc = _field(setting, "description") or key or "Setting"

    if not isinstance(stype, str) or stype not in _RULES:
        raise UnknownTypeError(f"Unknown setting type: {stype}", key=key)

    try:
        _RULES[stype](desc, setting, value)
    except ValidationError as e:
        if e.key is None:
            e.key = key
        raise


def check(setting: Setting | Mapping[str, Any], value: Any, *, key: str | None = None) -> ValidateResult:
    """Non-raising form of `validate`."""
    try:
        validate(setting, value, key=key)
    except ValidationError as e:
        return ValidateResult(False, e.reason)
    return ValidateResult(True, "ok")


def validate_all(settings: Mapping[str, Setting | Mapping[str, Any]]) -> dict[str, str]:
    """Validate every record against its own value.

    Returns {key: reason} for the failing ones; empty dict means all valid.
    """

    errors: dict[str, str] = {}
    for key, setting in settings.items():
        if not isinstance(setting, Setting):
            if not isinstance(setting, Mapping) or not setting.get("type") or "value" not in setting:
                errors[key] = "Setting must have type and value properties"
                continue
        res = check(setting, _field(setting, "value"), key=key)
        if not res.ok:
            errors[key] = res.message
    return errors


def validate_integer(value: Any) -> bool:
    if not _is_number(value):
        return False
    return isinstance(value, int) or float(value).is_integer()


def validate_text_secure(text: Any) -> bool:
    """Pattern scan for markup/script/SQL injection payloads.

    Optional extra layer for callers that render or forward text; it is not
    part of `validate` and rejects any value containing an HTML tag.
    """

    if not isinstance(text, str):
        return False
    return not any(p.search(text) for p in _DANGEROUS_PATTERNS)
