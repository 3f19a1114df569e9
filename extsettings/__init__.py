"""Settings subsystem for browser extensions: defaults + stored overrides,
typed validation, persistence to `local`/`sync` storage areas and change
notifications."""

from .errors import (
    ConfigurationError,
    FormatError,
    InvalidAreaError,
    InvalidCallbackError,
    NotFoundError,
    SettingsError,
    SettingsImportError,
    StorageError,
    UnknownTypeError,
    ValidationError,
)
from .events import ListenerRegistry, SettingsEvent
from .services.settings import ConfigStrategy, ConfigurationLoader, Setting, SettingsManager
from .storage import MemoryStorageArea, SqlStorageArea, StorageProvider

__all__ = [
    "SettingsManager",
    "Setting",
    "ConfigStrategy",
    "ConfigurationLoader",
    "StorageProvider",
    "MemoryStorageArea",
    "SqlStorageArea",
    "ListenerRegistry",
    "SettingsEvent",
    "SettingsError",
    "ConfigurationError",
    "NotFoundError",
    "ValidationError",
    "UnknownTypeError",
    "FormatError",
    "SettingsImportError",
    "InvalidAreaError",
    "InvalidCallbackError",
    "StorageError",
]
