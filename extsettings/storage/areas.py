from __future__ import annotations

import asyncio
import copy
import json
from typing import Any, Mapping, Protocol, runtime_checkable

from sqlalchemy.orm import sessionmaker

from .. import repo


@runtime_checkable
class StorageArea(Protocol):
    """Async key-value area as exposed by the host (`storage.local`, `storage.sync`).

    `get_bytes_in_use()` is optional; callers probe for it with getattr.
    """

    async def get(self) -> dict[str, Any]: ...

    async def set(self, items: Mapping[str, Any]) -> None: ...

    async def clear(self) -> None: ...


class MemoryStorageArea:
    """Process-local area. Values are JSON round-tripped like a real host does."""

    def __init__(self, initial: Mapping[str, Any] | None = None):
        self._data: dict[str, str] = {}
        if initial:
            self._data.update({k: json.dumps(v) for k, v in initial.items()})

    async def get(self) -> dict[str, Any]:
        return {k: json.loads(v) for k, v in self._data.items()}

    async def set(self, items: Mapping[str, Any]) -> None:
        encoded = {str(k): json.dumps(copy.deepcopy(v)) for k, v in items.items()}
        self._data.update(encoded)

    async def clear(self) -> None:
        self._data.clear()

    async def get_bytes_in_use(self) -> int:
        return sum(len(k.encode("utf-8")) + len(v.encode("utf-8")) for k, v in self._data.items())


class SqlStorageArea:
    """Area backed by the `stored_settings` table; blocking DB work runs in a thread."""

    def __init__(self, session_factory: sessionmaker, area: str):
        self._factory = session_factory
        self.area = area

    def _get(self) -> dict[str, Any]:
        with repo.db_session(self._factory) as db:
            return repo.load_area(db, self.area)

    def _set(self, items: Mapping[str, Any]) -> None:
        with repo.db_session(self._factory) as db:
            repo.upsert_records(db, self.area, items)

    def _clear(self) -> None:
        with repo.db_session(self._factory) as db:
            repo.clear_area(db, self.area)

    def _bytes(self) -> int:
        with repo.db_session(self._factory) as db:
            return repo.area_bytes_in_use(db, self.area)

    async def get(self) -> dict[str, Any]:
        return await asyncio.to_thread(self._get)

    async def set(self, items: Mapping[str, Any]) -> None:
        # encode now so later mutation by the caller cannot leak into the write
        await asyncio.to_thread(self._set, copy.deepcopy(dict(items)))

    async def clear(self) -> None:
        await asyncio.to_thread(self._clear)

    async def get_bytes_in_use(self) -> int:
        return await asyncio.to_thread(self._bytes)
