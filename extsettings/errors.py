from __future__ import annotations

from datetime import datetime, timezone
from typing import Any


class SettingsError(Exception):
    """Base class for every error raised by the settings layer."""


class ConfigurationError(SettingsError):
    """Setting definitions could not be loaded (fatal for initialization)."""


class NotFoundError(SettingsError):
    def __init__(self, key: str):
        super().__init__(f"Setting '{key}' not found")
        self.key = key


class ValidationError(SettingsError):
    """Value rejected by a type/constraint rule.

    `reason` is the user-visible message; `key` is filled in by the manager
    when the failing setting is known.
    """

    def __init__(self, reason: str, key: str | None = None):
        super().__init__(reason)
        self.reason = reason
        self.key = key

    def __str__(self) -> str:
        if self.key:
            return f"{self.key}: {self.reason}"
        return self.reason


class UnknownTypeError(ValidationError):
    pass


class FormatError(SettingsError):
    """Import payload is not parseable or has no `settings` object."""


class SettingsImportError(SettingsError):
    """No key of an import payload survived filtering."""

    def __init__(self, message: str, skipped: dict[str, str] | None = None):
        super().__init__(message)
        self.skipped = dict(skipped or {})


class InvalidAreaError(SettingsError):
    def __init__(self, area: str, message: str | None = None):
        super().__init__(message or f"Storage area '{area}' not available")
        self.area = area


class InvalidCallbackError(SettingsError, TypeError):
    pass


# --- storage backend errors ------------------------------------------------

_USER_MESSAGES = {
    "QUOTA_EXCEEDED": "Storage quota exceeded. Please free up space or contact support.",
    "NETWORK_ERROR": "Network error occurred. Please check your connection and try again.",
    "DATA_CORRUPTION": "Data corruption detected. Settings will be reset to defaults.",
    "OPERATION_TIMEOUT": "Operation timed out. Please try again.",
    "PERMISSION_DENIED": "Storage access denied. Check extension permissions.",
}


class StorageError(SettingsError):
    """Failure reported by a storage area.

    `retryable` is a hint for callers; nothing in this package retries.
    """

    code = "GENERIC_ERROR"
    retryable = True

    def __init__(
        self,
        message: str,
        *,
        operation: str = "unknown",
        code: str | None = None,
        retryable: bool | None = None,
        metadata: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        if code is not None:
            self.code = code
        if retryable is not None:
            self.retryable = retryable
        self.metadata = dict(metadata or {})
        self.timestamp = datetime.now(timezone.utc)

    @property
    def user_message(self) -> str:
        return _USER_MESSAGES.get(self.code, self.message)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": type(self).__name__,
            "message": self.message,
            "code": self.code,
            "operation": self.operation,
            "retryable": self.retryable,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat(),
        }


class StorageQuotaExceededError(StorageError):
    code = "QUOTA_EXCEEDED"
    retryable = False


class StorageNetworkError(StorageError):
    code = "NETWORK_ERROR"


class StoragePermissionError(StorageError):
    code = "PERMISSION_DENIED"
    retryable = False


class StorageOperationTimeoutError(StorageError):
    code = "OPERATION_TIMEOUT"


class StorageCorruptionError(StorageError):
    code = "DATA_CORRUPTION"
    retryable = False


# Checked in order; first match wins.
_CLASSIFIERS: list[tuple[tuple[str, ...], type[StorageError]]] = [
    (("quota", "exceeded"), StorageQuotaExceededError),
    (("network", "offline", "connection"), StorageNetworkError),
    (("permission", "denied", "unauthorized", "readonly", "read-only"), StoragePermissionError),
    (("timeout", "timed out"), StorageOperationTimeoutError),
    (("corrupt", "malformed", "not a database"), StorageCorruptionError),
]


def classify_storage_error(exc: BaseException, operation: str) -> StorageError:
    """Map an arbitrary backend exception onto the storage error hierarchy."""

    if isinstance(exc, StorageError):
        return exc

    text = str(exc) or type(exc).__name__
    lowered = text.lower()
    metadata = {"original_error": type(exc).__name__}

    if isinstance(exc, TimeoutError):
        return StorageOperationTimeoutError(text, operation=operation, metadata=metadata)
    if isinstance(exc, PermissionError):
        return StoragePermissionError(text, operation=operation, metadata=metadata)

    for needles, cls in _CLASSIFIERS:
        if any(n in lowered for n in needles):
            return cls(text, operation=operation, metadata=metadata)

    return StorageError(text, operation=operation, metadata=metadata)
