from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings
from pydantic import Field


class EnvSettings(BaseSettings):
    storage_backend: Literal["sqlite", "memory"] = Field("sqlite", alias="EXTSETTINGS_STORAGE_BACKEND")
    sqlite_path: str = Field("data/settings.db", alias="EXTSETTINGS_SQLITE_PATH")
    sync_enabled: bool = Field(True, alias="EXTSETTINGS_SYNC_ENABLED")
    default_area: Literal["local", "sync"] = Field("local", alias="EXTSETTINGS_DEFAULT_AREA")

    # empty -> packaged config/defaults.json
    defaults_path: str = Field("", alias="EXTSETTINGS_DEFAULTS_PATH")
    config_cache_ttl_s: int = Field(300, ge=0, alias="EXTSETTINGS_CONFIG_CACHE_TTL_S")

    log_level: str = Field("INFO", alias="EXTSETTINGS_LOG_LEVEL")
    log_dir: str = Field("data/logs", alias="EXTSETTINGS_LOG_DIR")
    log_retention_days: int = Field(30, alias="EXTSETTINGS_LOG_RETENTION_DAYS")

    class Config:
        populate_by_name = True


@lru_cache(maxsize=1)
def get_env() -> EnvSettings:
    return EnvSettings()
