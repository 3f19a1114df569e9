"""
Shared fixtures: a small defaults file, in-memory storage areas and a
manager wired to both.
"""

import asyncio
import json

import pytest

from extsettings.services.settings import ConfigurationLoader, Setting, SettingsManager
from extsettings.storage import MemoryStorageArea, StorageProvider

DEFAULTS = {
    "enabled": {
        "type": "boolean",
        "value": True,
        "description": "Enable feature",
        "category": "general",
        "order": 2,
    },
    "count": {
        "type": "number",
        "value": 5,
        "min": 0,
        "max": 10,
        "description": "Item count",
        "displayName": "Items",
        "category": "general",
        "order": 1,
    },
    "name": {
        "type": "text",
        "value": "abc",
        "maxLength": 10,
        "description": "Display name",
        "category": "general",
        "order": 3,
    },
    "mode": {
        "type": "enum",
        "value": "fast",
        "options": {"fast": "Fast", "slow": "Slow"},
        "description": "Mode",
        "category": "advanced",
    },
    "extra": {
        "type": "json",
        "value": {"a": 1},
        "description": "Extra config",
        "category": "advanced",
    },
    "notes": {
        "type": "longtext",
        "value": "",
        "description": "Notes",
    },
}


class CountingSource:
    """Configuration source that counts loads and yields once per load."""

    def __init__(self, definitions=None):
        self.definitions = definitions if definitions is not None else DEFAULTS
        self.loads = 0

    async def load_configuration(self):
        self.loads += 1
        await asyncio.sleep(0)
        return {k: Setting.model_validate(v) for k, v in self.definitions.items()}

    def load_fallback_configuration(self):
        return {}


class BrokenArea(MemoryStorageArea):
    """Memory area whose writes and usage queries fail."""

    def __init__(self, message="QUOTA_BYTES quota exceeded", initial=None):
        super().__init__(initial)
        self.message = message

    async def set(self, items):
        raise RuntimeError(self.message)

    async def clear(self):
        raise RuntimeError(self.message)

    async def get_bytes_in_use(self):
        raise RuntimeError(self.message)


class BareArea:
    """Area without get_bytes_in_use (optional part of the contract)."""

    def __init__(self):
        self.data = {}

    async def get(self):
        return dict(self.data)

    async def set(self, items):
        self.data.update(items)

    async def clear(self):
        self.data.clear()


@pytest.fixture
def defaults_file(tmp_path):
    path = tmp_path / "defaults.json"
    path.write_text(json.dumps(DEFAULTS), encoding="utf-8")
    return path


@pytest.fixture
def loader(defaults_file):
    return ConfigurationLoader(defaults_file)


@pytest.fixture
def local_area():
    return MemoryStorageArea()


@pytest.fixture
def sync_area():
    return MemoryStorageArea()


@pytest.fixture
def provider(local_area, sync_area):
    return StorageProvider({"local": local_area, "sync": sync_area})


@pytest.fixture
def manager(loader, provider):
    return SettingsManager(loader, provider)


@pytest.fixture
def events(manager):
    received = []
    manager.add_listener(lambda event, data: received.append((event, data)))
    return received
