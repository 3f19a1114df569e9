"""Host key-value storage areas (`local`, `sync`)."""

from .areas import MemoryStorageArea, SqlStorageArea, StorageArea
from .provider import StorageProvider, build_storage_provider, check_storage_quota

__all__ = [
    "StorageArea",
    "MemoryStorageArea",
    "SqlStorageArea",
    "StorageProvider",
    "build_storage_provider",
    "check_storage_quota",
]
