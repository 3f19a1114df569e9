import logging
import os
from logging.handlers import TimedRotatingFileHandler

import pytest

from extsettings import log_config


@pytest.fixture
def pkg_logger():
    logger = logging.getLogger("extsettings")
    before = list(logger.handlers)
    level = logger.level
    yield logger
    for h in list(logger.handlers):
        if h not in before:
            logger.removeHandler(h)
            h.close()
    logger.setLevel(level)


def test_setup_writes_to_log_dir(tmp_path, pkg_logger):
    log_config.setup_logging(level="debug", retention_days=7, log_dir=str(tmp_path))

    assert pkg_logger.level == logging.DEBUG
    assert log_config.get_log_dir() == os.path.abspath(tmp_path)

    file_handlers = [h for h in pkg_logger.handlers if isinstance(h, TimedRotatingFileHandler)]
    assert len(file_handlers) == 1
    assert file_handlers[0].backupCount == 7

    logging.getLogger("extsettings.services.settings.manager").info("hello from manager")
    file_handlers[0].flush()
    assert "hello from manager" in (tmp_path / "extsettings.log").read_text(encoding="utf-8")


def test_reconfigure_replaces_handlers(tmp_path, pkg_logger):
    log_config.setup_logging(level="INFO", log_dir=str(tmp_path))
    count = len(pkg_logger.handlers)

    log_config.reconfigure_logging(level="WARNING", retention_days=3)

    assert len(pkg_logger.handlers) == count
    assert pkg_logger.level == logging.WARNING


def test_unknown_level_falls_back_to_info(tmp_path, pkg_logger):
    log_config.setup_logging(level="LOUD", log_dir=str(tmp_path))
    assert pkg_logger.level == logging.INFO
