"""Settings store: merge defaults with stored values, validate, persist, notify."""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any, Iterable, Mapping

from ...env_settings import EnvSettings, get_env
from ...errors import (
    ConfigurationError,
    InvalidAreaError,
    NotFoundError,
    SettingsImportError,
    StorageError,
    ValidationError,
    classify_storage_error,
)
from ...events import Listener, ListenerRegistry, SettingsEvent
from ...storage import StorageProvider, build_storage_provider, check_storage_quota
from .config_loader import ConfigurationLoader, ConfigurationSource
from .export_import import ImportReport, dumps_export, export_settings, filter_import, parse_import
from .schema import STORAGE_AREAS, ConfigStrategy, ManagerState, Setting, settings_from_mapping, snapshot
from .validator import validate

logger = logging.getLogger(__name__)


class SettingsManager:
    """In-memory settings map backed by one storage area.

    Every read/write initializes lazily on first use. Writers are serialized
    by a per-instance asyncio lock that spans validate, mutate and persist;
    the instance must be used from a single event loop.
    """

    def __init__(
        self,
        source: ConfigurationSource,
        storage: StorageProvider,
        *,
        area: str = "local",
        strategy: ConfigStrategy = ConfigStrategy.PRIMARY,
    ):
        self._source = source
        self._storage = storage
        self._strategy = ConfigStrategy(strategy)
        self._area = "local"
        self.set_storage_area(area)

        self._settings: dict[str, Setting] = {}
        self._listeners = ListenerRegistry()
        self._state = ManagerState.UNINITIALIZED
        self._init_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()

    @classmethod
    def from_env(cls, env: EnvSettings | None = None) -> "SettingsManager":
        env = env or get_env()
        source = ConfigurationLoader(env.defaults_path or None, cache_ttl_s=env.config_cache_ttl_s)
        return cls(source, build_storage_provider(env), area=env.default_area)

    # ------------------------------------------------------------------ #
    #  state                                                             #
    # ------------------------------------------------------------------ #
    @property
    def state(self) -> ManagerState:
        return self._state

    @property
    def storage_area(self) -> str:
        return self._area

    async def initialize(self) -> None:
        async with self._init_lock:
            await self._initialize()

    async def _ensure_ready(self) -> None:
        if self._state is ManagerState.READY:
            return
        async with self._init_lock:
            # another caller may have finished initialization while we waited
            if self._state is not ManagerState.READY:
                await self._initialize()

    async def _initialize(self) -> None:
        self._state = ManagerState.INITIALIZING
        try:
            defaults = await self._load_definitions()
        except BaseException:
            self._state = ManagerState.UNINITIALIZED
            raise

        stored = await self._read_stored()
        self._settings = self._merge(defaults, stored)
        self._state = ManagerState.READY
        logger.info("Settings initialized: %d settings, area=%s", len(self._settings), self._area)
        self._listeners.notify(SettingsEvent.INITIALIZED, {"settings": snapshot(self._settings)})

    async def _load_definitions(self) -> dict[str, Setting]:
        try:
            if self._strategy is ConfigStrategy.FALLBACK:
                defaults = self._source.load_fallback_configuration()
            else:
                defaults = await self._source.load_configuration()
            if not isinstance(defaults, Mapping):
                raise ConfigurationError("Settings initialization failed: configuration source returned no mapping")
            definitions = settings_from_mapping(defaults)
            for key, setting in definitions.items():
                try:
                    validate(setting, setting.value, key=key)
                except ValidationError as e:
                    raise ConfigurationError(f"Invalid definition for '{key}': {e.reason}") from e
            return definitions
        except ConfigurationError:
            raise
        except Exception as e:
            raise ConfigurationError(f"Settings initialization failed: {e}") from e

    async def _read_stored(self) -> Mapping[str, Any]:
        area = self._storage.area(self._area)
        if area is None:
            logger.warning("Storage area '%s' not available", self._area)
            return {}
        try:
            stored = await area.get()
        except Exception:
            logger.exception("Failed to read stored settings from '%s'", self._area)
            return {}
        return stored if isinstance(stored, Mapping) else {}

    @staticmethod
    def _merge(defaults: Mapping[str, Setting], stored: Mapping[str, Any]) -> dict[str, Setting]:
        merged: dict[str, Setting] = {}
        for key, definition in defaults.items():
            setting = definition.model_copy(deep=True)
            record = stored.get(key)
            if isinstance(record, Mapping) and "value" in record:
                try:
                    validate(setting, record["value"], key=key)
                except ValidationError as e:
                    logger.warning("Ignoring stored value for '%s': %s", key, e.reason)
                else:
                    setting = setting.with_value(record["value"])
            merged[key] = setting
        return merged

    # ------------------------------------------------------------------ #
    #  reads                                                             #
    # ------------------------------------------------------------------ #
    def _require(self, key: str) -> Setting:
        setting = self._settings.get(key)
        if setting is None:
            raise NotFoundError(key)
        return setting

    async def get_setting(self, key: str) -> Setting:
        await self._ensure_ready()
        return self._require(key).model_copy(deep=True)

    async def get_settings(self, keys: Iterable[str]) -> dict[str, Setting]:
        """Best effort: unknown keys are left out of the result."""
        await self._ensure_ready()
        return {k: self._settings[k].model_copy(deep=True) for k in keys if k in self._settings}

    async def get_all_settings(self) -> dict[str, Setting]:
        await self._ensure_ready()
        return {k: s.model_copy(deep=True) for k, s in self._settings.items()}

    # ------------------------------------------------------------------ #
    #  writes                                                            #
    # ------------------------------------------------------------------ #
    async def _persist(self, values: Mapping[str, Any], operation: str) -> None:
        area = self._storage.area(self._area)
        if area is None:
            raise InvalidAreaError(self._area)
        records = {k: {"value": copy.deepcopy(v)} for k, v in values.items()}
        try:
            await area.set(records)
        except StorageError:
            logger.exception("Failed to persist settings (%s)", operation)
            raise
        except Exception as e:
            err = classify_storage_error(e, operation)
            logger.error("Failed to persist settings (%s): [%s] %s", operation, err.code, err.message)
            raise err from e

    async def update_setting(self, key: str, value: Any) -> None:
        await self._ensure_ready()
        async with self._write_lock:
            setting = self._require(key)
            validate(setting, value, key=key)

            updated = setting.with_value(value)
            self._settings[key] = updated
            # memory is already updated; a failed write leaves storage behind (no rollback)
            await self._persist({key: updated.value}, "update_setting")

        self._listeners.notify(
            SettingsEvent.UPDATED,
            {"key": key, "value": copy.deepcopy(updated.value), "setting": updated.to_record()},
        )

    async def update_settings(self, updates: Mapping[str, Any]) -> None:
        """Validate the whole batch, then apply and persist it in one write."""
        await self._ensure_ready()
        if not updates:
            return

        async with self._write_lock:
            staged: dict[str, Setting] = {}
            for key, value in updates.items():
                setting = self._require(key)
                validate(setting, value, key=key)
                staged[key] = setting.with_value(value)

            self._settings.update(staged)
            await self._persist({k: s.value for k, s in staged.items()}, "update_settings")

        self._listeners.notify(
            SettingsEvent.UPDATED,
            {
                "updates": {k: copy.deepcopy(s.value) for k, s in staged.items()},
                "settings": snapshot(staged),
            },
        )

    async def export_settings(self) -> str:
        await self._ensure_ready()
        return dumps_export(export_settings(self._settings))

    async def import_settings(self, data: str | bytes | Mapping[str, Any]) -> ImportReport:
        """Apply the valid subset of an export payload.

        Unknown or invalid keys are skipped with a warning and listed in the
        returned report; SettingsImportError is raised only when nothing is
        left to apply.
        """
        envelope = parse_import(data)
        await self._ensure_ready()

        async with self._write_lock:
            accepted, report = filter_import(self._settings, envelope.settings)
            if not accepted:
                raise SettingsImportError("No valid settings found in import data", report.skipped)

            applied = {k: self._settings[k].with_value(v) for k, v in accepted.items()}
            self._settings.update(applied)
            await self._persist(accepted, "import_settings")

        logger.info("Imported %d settings (%d skipped)", report.total_imported, len(report.skipped))
        self._listeners.notify(
            SettingsEvent.IMPORTED,
            {**report.to_dict(), "settings": snapshot(applied)},
        )
        return report

    async def reset_to_defaults(self) -> None:
        async with self._write_lock:
            area = self._storage.area(self._area)
            if area is not None:
                try:
                    await area.clear()
                except StorageError:
                    logger.exception("Failed to reset to defaults")
                    raise
                except Exception as e:
                    err = classify_storage_error(e, "reset_to_defaults")
                    logger.error("Failed to reset to defaults: [%s] %s", err.code, err.message)
                    raise err from e

            clear_cache = getattr(self._source, "clear_cache", None)
            if callable(clear_cache):
                clear_cache()
            self._settings = {}
            self._state = ManagerState.UNINITIALIZED

            async with self._init_lock:
                await self._initialize()

        self._listeners.notify(SettingsEvent.RESET, {"settings": snapshot(self._settings)})

    # ------------------------------------------------------------------ #
    #  listeners                                                         #
    # ------------------------------------------------------------------ #
    def add_listener(self, callback: Listener) -> None:
        self._listeners.add(callback)

    def remove_listener(self, callback: Listener) -> None:
        self._listeners.remove(callback)

    # ------------------------------------------------------------------ #
    #  storage area / diagnostics                                        #
    # ------------------------------------------------------------------ #
    def set_storage_area(self, area: str) -> None:
        """Switch the active area. Existing data is not migrated."""
        if area not in STORAGE_AREAS:
            raise InvalidAreaError(area, 'Storage area must be "local" or "sync"')
        if not self._storage.has_area(area):
            raise InvalidAreaError(area)
        self._area = area

    async def check_storage_quota(self) -> dict[str, Any]:
        return await check_storage_quota(self._storage.area(self._area), self._area)

    async def get_storage_stats(self) -> dict[str, Any]:
        area = self._storage.area(self._area)
        get_bytes = getattr(area, "get_bytes_in_use", None)
        if area is None or get_bytes is None:
            return {"error": "Storage statistics not available"}

        try:
            await self._ensure_ready()
            total_bytes = int(await get_bytes())
        except Exception as e:
            logger.error("Failed to get storage stats: %s", e)
            return {"error": str(e)}

        count = len(self._settings)
        return {
            "total_bytes": total_bytes,
            "settings_count": count,
            "quota": await self.check_storage_quota(),
            "average_setting_size": total_bytes / count if count else 0,
        }

    def destroy(self) -> None:
        self._listeners.clear()
        self._settings.clear()
        self._state = ManagerState.UNINITIALIZED
