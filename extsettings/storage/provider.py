from __future__ import annotations

import logging
from typing import Any, Mapping

from ..db import create_sqlite_engine, make_session_factory
from ..env_settings import EnvSettings, get_env
from ..repo import init_schema
from .areas import MemoryStorageArea, SqlStorageArea, StorageArea

logger = logging.getLogger(__name__)

# Browser quotas: storage.local 5 MiB, storage.sync 100 KiB.
AREA_QUOTA_BYTES = {"local": 5 * 1024 * 1024, "sync": 100 * 1024}
QUOTA_WARN_RATIO = 0.9


class StorageProvider:
    """Named storage areas available to the host, resolved once."""

    def __init__(self, areas: Mapping[str, StorageArea | None]):
        self._areas = {name: a for name, a in areas.items() if a is not None}

    def area(self, name: str) -> StorageArea | None:
        return self._areas.get(name)

    def has_area(self, name: str) -> bool:
        return name in self._areas

    @property
    def area_names(self) -> list[str]:
        return sorted(self._areas)


def build_storage_provider(env: EnvSettings | None = None) -> StorageProvider:
    env = env or get_env()
    names = ["local", "sync"] if env.sync_enabled else ["local"]

    if env.storage_backend == "memory":
        logger.info("Using in-memory storage areas: %s", ", ".join(names))
        return StorageProvider({n: MemoryStorageArea() for n in names})

    engine = create_sqlite_engine(env.sqlite_path)
    init_schema(engine)
    factory = make_session_factory(engine)
    logger.info("Using SQLite storage areas %s at %s", ", ".join(names), engine.url)
    return StorageProvider({n: SqlStorageArea(factory, n) for n in names})


async def check_storage_quota(area: StorageArea | None, area_name: str) -> dict[str, Any]:
    """Advisory quota check; never raises."""

    get_bytes = getattr(area, "get_bytes_in_use", None)
    if area is None or get_bytes is None:
        return {"available": True, "used": 0, "quota": "unknown"}

    try:
        used = int(await get_bytes())
    except Exception as e:
        logger.warning("Storage quota check failed for '%s': %s", area_name, e)
        return {"available": True, "used": 0, "quota": "unknown", "error": str(e)}

    quota = AREA_QUOTA_BYTES.get(area_name, AREA_QUOTA_BYTES["local"])
    return {
        "available": used < quota * QUOTA_WARN_RATIO,
        "used": used,
        "quota": quota,
        "percent_used": used / quota * 100,
    }
