import asyncio

import pytest

from conftest import DEFAULTS, BareArea, BrokenArea, CountingSource
from extsettings.errors import (
    ConfigurationError,
    InvalidAreaError,
    InvalidCallbackError,
    NotFoundError,
    StorageError,
    StorageQuotaExceededError,
    ValidationError,
)
from extsettings.events import SettingsEvent
from extsettings.services.settings import ConfigStrategy, ConfigurationLoader, ManagerState, SettingsManager
from extsettings.storage import MemoryStorageArea, StorageProvider


class TestInitialize:
    async def test_merges_stored_values_over_defaults(self, loader):
        local = MemoryStorageArea(
            {
                "count": {"value": 7},
                "name": {"type": "text"},  # no value -> default kept
                "gone": {"value": 1},  # not in the schema
            }
        )
        manager = SettingsManager(loader, StorageProvider({"local": local}))

        await manager.initialize()
        settings = await manager.get_all_settings()

        assert manager.state is ManagerState.READY
        assert set(settings) == set(DEFAULTS)
        assert settings["count"].value == 7
        assert settings["count"].max == 10
        assert settings["name"].value == "abc"

    async def test_invalid_stored_value_keeps_default(self, loader):
        local = MemoryStorageArea({"count": {"value": 99}, "enabled": {"value": "yes"}})
        manager = SettingsManager(loader, StorageProvider({"local": local}))

        assert (await manager.get_setting("count")).value == 5
        assert (await manager.get_setting("enabled")).value is True

    async def test_emits_initialized(self, manager, events):
        await manager.initialize()

        assert events[0][0] is SettingsEvent.INITIALIZED
        assert events[0][1]["settings"]["count"]["value"] == 5

    async def test_lazy_initialization_runs_once(self, provider):
        source = CountingSource()
        manager = SettingsManager(source, provider)

        await asyncio.gather(
            manager.get_setting("count"),
            manager.get_all_settings(),
            manager.get_settings(["name"]),
        )

        assert source.loads == 1
        assert manager.state is ManagerState.READY

    async def test_merge_is_idempotent(self, manager, local_area):
        await local_area.set({"count": {"value": 3}, "mode": {"value": "slow"}})

        await manager.initialize()
        first = await manager.get_all_settings()
        await manager.initialize()
        second = await manager.get_all_settings()

        assert first == second

    async def test_missing_defaults_is_fatal(self, tmp_path, provider):
        manager = SettingsManager(ConfigurationLoader(tmp_path / "missing.json"), provider)

        with pytest.raises(ConfigurationError):
            await manager.get_setting("count")
        assert manager.state is ManagerState.UNINITIALIZED

    async def test_source_errors_are_wrapped(self, provider):
        class Exploding(CountingSource):
            async def load_configuration(self):
                raise RuntimeError("network down")

        manager = SettingsManager(Exploding(), provider)
        with pytest.raises(ConfigurationError, match="network down") as exc:
            await manager.initialize()
        assert isinstance(exc.value.__cause__, RuntimeError)

    @pytest.mark.parametrize(
        "definition,message",
        [
            ({"type": "color", "value": "#fff", "description": "Color"}, "Unknown setting type: color"),
            ({"type": "boolean", "value": "yes", "description": "Flag"}, "Flag must be a boolean"),
            ({"type": "number", "value": 20, "max": 10, "description": "Limit"}, "Limit must be at most 10"),
        ],
    )
    async def test_invalid_definitions_are_rejected(self, provider, definition, message):
        manager = SettingsManager(CountingSource({**DEFAULTS, "bad": definition}), provider)

        with pytest.raises(ConfigurationError, match=message) as exc:
            await manager.get_all_settings()
        assert "'bad'" in str(exc.value)
        assert manager.state is ManagerState.UNINITIALIZED

    async def test_fallback_strategy(self, loader, provider):
        manager = SettingsManager(loader, provider, strategy=ConfigStrategy.FALLBACK)
        settings = await manager.get_all_settings()
        assert "feature_enabled" in settings
        assert "count" not in settings

    async def test_unreadable_storage_is_treated_as_empty(self, loader):
        class Unreadable(MemoryStorageArea):
            async def get(self):
                raise RuntimeError("io error")

        manager = SettingsManager(loader, StorageProvider({"local": Unreadable()}))
        assert (await manager.get_setting("count")).value == 5


class TestRead:
    async def test_get_setting_unknown_key(self, manager):
        with pytest.raises(NotFoundError) as exc:
            await manager.get_setting("nope")
        assert exc.value.key == "nope"

    async def test_get_settings_omits_unknown(self, manager):
        result = await manager.get_settings(["count", "nope", "mode"])
        assert set(result) == {"count", "mode"}

    async def test_returns_copies(self, manager):
        extra = await manager.get_setting("extra")
        extra.value["a"] = 2
        snapshot = await manager.get_all_settings()
        snapshot["extra"].value["a"] = 3

        assert (await manager.get_setting("extra")).value == {"a": 1}


class TestUpdateSetting:
    async def test_valid_update(self, manager, local_area, events):
        await manager.update_setting("count", 7)

        assert (await manager.get_setting("count")).value == 7
        assert await local_area.get() == {"count": {"value": 7}}
        event, data = events[-1]
        assert event is SettingsEvent.UPDATED
        assert data["key"] == "count"
        assert data["value"] == 7
        assert data["setting"]["max"] == 10

    async def test_out_of_range_names_bound(self, manager, local_area):
        with pytest.raises(ValidationError) as exc:
            await manager.update_setting("count", 11)

        assert exc.value.key == "count"
        assert "10" in exc.value.reason
        assert (await manager.get_setting("count")).value == 5
        assert await local_area.get() == {}

    async def test_unknown_key(self, manager):
        with pytest.raises(NotFoundError):
            await manager.update_setting("nope", 1)

    async def test_type_is_never_changed(self, manager):
        await manager.update_setting("mode", "slow")
        setting = await manager.get_setting("mode")
        assert setting.type == "enum"
        assert setting.options == {"fast": "Fast", "slow": "Slow"}

    async def test_persist_failure_keeps_memory_update(self, loader):
        manager = SettingsManager(loader, StorageProvider({"local": BrokenArea()}))

        with pytest.raises(StorageQuotaExceededError) as exc:
            await manager.update_setting("count", 8)

        assert exc.value.operation == "update_setting"
        assert exc.value.retryable is False
        # documented: no rollback of the in-memory value
        assert (await manager.get_setting("count")).value == 8

    async def test_concurrent_writers_all_land(self, manager, local_area):
        await asyncio.gather(
            manager.update_setting("count", 1),
            manager.update_setting("name", "x"),
            manager.update_setting("enabled", False),
        )
        stored = await local_area.get()
        assert stored == {"count": {"value": 1}, "name": {"value": "x"}, "enabled": {"value": False}}


class TestUpdateSettings:
    async def test_batch_is_atomic_on_validation(self, manager, local_area, events):
        await manager.initialize()
        events.clear()

        with pytest.raises(ValidationError) as exc:
            await manager.update_settings({"count": 3, "enabled": "yes"})

        assert exc.value.key == "enabled"
        assert (await manager.get_setting("count")).value == 5
        assert await local_area.get() == {}
        assert events == []

    async def test_batch_with_unknown_key(self, manager, local_area):
        with pytest.raises(NotFoundError):
            await manager.update_settings({"count": 3, "nope": 1})
        assert (await manager.get_setting("count")).value == 5
        assert await local_area.get() == {}

    async def test_batch_applies_and_emits_once(self, manager, local_area, events):
        await manager.initialize()
        events.clear()

        await manager.update_settings({"count": 3, "mode": "slow", "extra": [1, 2]})

        assert await local_area.get() == {
            "count": {"value": 3},
            "mode": {"value": "slow"},
            "extra": {"value": [1, 2]},
        }
        assert len(events) == 1
        event, data = events[0]
        assert event is SettingsEvent.UPDATED
        assert data["updates"] == {"count": 3, "mode": "slow", "extra": [1, 2]}
        assert set(data["settings"]) == {"count", "mode", "extra"}

    async def test_empty_batch_is_noop(self, manager, local_area, events):
        await manager.update_settings({})
        assert await local_area.get() == {}
        assert [e for e, _ in events] == [SettingsEvent.INITIALIZED]


class TestReset:
    async def test_restores_defaults_and_clears_storage(self, manager, local_area, events):
        await manager.update_setting("count", 9)
        await manager.reset_to_defaults()

        assert (await manager.get_setting("count")).value == 5
        assert await local_area.get() == {}
        event, data = events[-1]
        assert event is SettingsEvent.RESET
        assert data["settings"]["count"]["value"] == 5

    async def test_reloads_definitions(self, provider):
        source = CountingSource()
        manager = SettingsManager(source, provider)
        await manager.initialize()
        await manager.reset_to_defaults()
        assert source.loads == 2

    async def test_clear_failure_propagates(self, loader):
        manager = SettingsManager(loader, StorageProvider({"local": BrokenArea("permission denied")}))
        with pytest.raises(StorageError) as exc:
            await manager.reset_to_defaults()
        assert exc.value.code == "PERMISSION_DENIED"


class TestStorageArea:
    async def test_missing_sync_area(self, loader, local_area):
        manager = SettingsManager(loader, StorageProvider({"local": local_area}))

        with pytest.raises(InvalidAreaError):
            manager.set_storage_area("sync")
        assert manager.storage_area == "local"

    def test_unsupported_area_name(self, manager):
        with pytest.raises(InvalidAreaError, match='"local" or "sync"'):
            manager.set_storage_area("cloud")
        assert manager.storage_area == "local"

    def test_constructor_checks_area(self, loader, local_area):
        with pytest.raises(InvalidAreaError):
            SettingsManager(loader, StorageProvider({"local": local_area}), area="sync")

    async def test_switching_does_not_migrate(self, manager, local_area, sync_area):
        await manager.update_setting("count", 2)
        manager.set_storage_area("sync")
        await manager.initialize()

        assert manager.storage_area == "sync"
        assert (await manager.get_setting("count")).value == 5

        await manager.update_setting("count", 4)
        assert await sync_area.get() == {"count": {"value": 4}}
        assert await local_area.get() == {"count": {"value": 2}}


class TestDiagnostics:
    async def test_storage_stats(self, manager):
        await manager.update_setting("name", "hello")
        stats = await manager.get_storage_stats()

        assert stats["total_bytes"] > 0
        assert stats["settings_count"] == len(DEFAULTS)
        assert stats["average_setting_size"] == stats["total_bytes"] / len(DEFAULTS)
        assert stats["quota"]["quota"] == 5 * 1024 * 1024
        assert stats["quota"]["available"] is True

    async def test_stats_without_byte_usage(self, loader):
        manager = SettingsManager(loader, StorageProvider({"local": BareArea()}))
        assert await manager.get_storage_stats() == {"error": "Storage statistics not available"}
        assert await manager.check_storage_quota() == {"available": True, "used": 0, "quota": "unknown"}

    async def test_backend_failure_degrades(self, loader):
        manager = SettingsManager(loader, StorageProvider({"local": BrokenArea("disk I/O error")}))

        assert await manager.get_storage_stats() == {"error": "disk I/O error"}
        quota = await manager.check_storage_quota()
        assert quota["available"] is True
        assert quota["error"] == "disk I/O error"

    async def test_sync_quota(self, manager, sync_area):
        await sync_area.set({"big": {"value": "x" * 95_000}})
        manager.set_storage_area("sync")
        quota = await manager.check_storage_quota()

        assert quota["quota"] == 100 * 1024
        assert quota["available"] is False
        assert quota["percent_used"] > 90


class TestListeners:
    async def test_failing_listener_does_not_block_others(self, manager):
        received = []

        def boom(event, data):
            raise RuntimeError("broken listener")

        manager.add_listener(boom)
        manager.add_listener(lambda e, d: received.append(e))

        await manager.update_setting("count", 6)

        assert SettingsEvent.UPDATED in received

    def test_non_callable_rejected(self, manager):
        with pytest.raises(InvalidCallbackError):
            manager.add_listener(42)

    async def test_removed_listener_not_called(self, manager):
        received = []

        def cb(event, data):
            received.append(event)

        manager.add_listener(cb)
        manager.remove_listener(cb)
        manager.remove_listener(cb)
        await manager.initialize()

        assert received == []


async def test_destroy_releases_state(manager, events):
    await manager.update_setting("count", 4)
    manager.destroy()

    assert manager.state is ManagerState.UNINITIALIZED
    count = len(events)
    # usable again after lazy re-initialization, listeners are gone
    assert (await manager.get_setting("count")).value == 4
    assert len(events) == count


async def test_from_env(monkeypatch, defaults_file):
    from extsettings.env_settings import get_env

    monkeypatch.setenv("EXTSETTINGS_STORAGE_BACKEND", "memory")
    monkeypatch.setenv("EXTSETTINGS_DEFAULTS_PATH", str(defaults_file))
    monkeypatch.setenv("EXTSETTINGS_SYNC_ENABLED", "false")
    get_env.cache_clear()
    try:
        manager = SettingsManager.from_env()
        assert (await manager.get_setting("count")).value == 5
        with pytest.raises(InvalidAreaError):
            manager.set_storage_area("sync")
    finally:
        get_env.cache_clear()
