"""Logging setup for hosts embedding the settings store.

Everything under the `extsettings` logger goes to `extsettings.log` in
`EXTSETTINGS_LOG_DIR` (default `data/logs`, relative to CWD) and to stderr.
The file rolls over at UTC midnight; `retention_days` rotated files are kept.
"""
from __future__ import annotations

import glob
import logging
import os
import time
from logging.handlers import TimedRotatingFileHandler

from .env_settings import get_env

PACKAGE_LOGGER = "extsettings"
LOG_FILE_NAME = "extsettings.log"

_LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
_LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

# installed by setup_logging(); replaced on every call
_installed: list[logging.Handler] = []
_log_dir: str | None = None


def _resolve_level(level: str | None) -> tuple[str, int]:
    name = (level or get_env().log_level or "INFO").strip().upper()
    if name not in _LEVELS:
        name = "INFO"
    return name, logging.getLevelName(name)


def _detach_installed(pkg_logger: logging.Logger) -> None:
    while _installed:
        handler = _installed.pop()
        pkg_logger.removeHandler(handler)
        handler.close()


def _build_handlers(log_dir: str, level: int, retention_days: int) -> list[logging.Handler]:
    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATE_FORMAT)

    rotating = TimedRotatingFileHandler(
        os.path.join(log_dir, LOG_FILE_NAME),
        when="midnight",
        backupCount=retention_days,
        encoding="utf-8",
        utc=True,
    )
    rotating.suffix = "%Y-%m-%d"

    handlers: list[logging.Handler] = [rotating, logging.StreamHandler()]
    for h in handlers:
        h.setLevel(level)
        h.setFormatter(formatter)
    return handlers


def setup_logging(
    level: str | None = None,
    retention_days: int | None = None,
    log_dir: str | None = None,
) -> None:
    """Configure the `extsettings` logger.

    Unset arguments fall back to the environment settings. Calling it again
    replaces the handlers installed by the previous call.
    """
    global _log_dir

    env = get_env()
    level_name, level_no = _resolve_level(level)
    keep_days = max(1, min(365, int(retention_days or env.log_retention_days or 30)))

    _log_dir = os.path.abspath(log_dir or env.log_dir)
    os.makedirs(_log_dir, exist_ok=True)

    pkg_logger = logging.getLogger(PACKAGE_LOGGER)
    _detach_installed(pkg_logger)
    for handler in _build_handlers(_log_dir, level_no, keep_days):
        pkg_logger.addHandler(handler)
        _installed.append(handler)
    pkg_logger.setLevel(level_no)

    _purge_rotated(_log_dir, keep_days)

    # engine echo stays quiet unless debugging
    logging.getLogger("sqlalchemy.engine").setLevel(max(level_no, logging.WARNING))

    pkg_logger.info("Logging configured: level=%s, retention=%d days, dir=%s", level_name, keep_days, _log_dir)


def reconfigure_logging(level: str | None = None, retention_days: int | None = None) -> None:
    setup_logging(level=level, retention_days=retention_days, log_dir=_log_dir)


def _purge_rotated(log_dir: str, keep_days: int) -> None:
    """Delete rotated files older than keep_days (left behind by a longer retention)."""
    oldest_allowed = time.time() - keep_days * 86400
    for path in glob.glob(os.path.join(log_dir, LOG_FILE_NAME + ".*")):
        try:
            if os.path.getmtime(path) < oldest_allowed:
                os.remove(path)
        except OSError:
            logging.getLogger(__name__).warning("Could not remove old log file %s", path)


def get_log_dir() -> str:
    return _log_dir or os.path.abspath(get_env().log_dir)
