"""
Tests for settings loading and logging setup.
"""
import logging
import os

import pytest
from pydantic import ValidationError

from crudgraph import CrudGraphSettings, configure_logging
from crudgraph.config import LOGGER_NAMES

ENV_NAMES = [
    "CRUDGRAPH_DATABASE_URL",
    "CRUDGRAPH_LOG_LEVEL",
    "CRUDGRAPH_TOTAL_COUNT_HEADER",
    "CRUDGRAPH_EXPOSE_HEADERS_HEADER",
    "CRUDGRAPH_SQL_ECHO",
]


@pytest.fixture
def clean_env(monkeypatch):
    """Start without CRUDGRAPH_* variables and restore the environment afterwards."""
    for name in ENV_NAMES:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    yield


def test_defaults():
    settings = CrudGraphSettings()
    assert settings.database_url == "memory://"
    assert settings.uses_memory_store
    assert settings.total_count_header == "X-total-count"
    assert settings.expose_headers_header == "Access-Control-Expose-Headers"
    assert settings.sql_echo is False


def test_from_environment(clean_env, monkeypatch):
    monkeypatch.setenv("CRUDGRAPH_DATABASE_URL", "sqlite:///crud.db")
    monkeypatch.setenv("CRUDGRAPH_LOG_LEVEL", "debug")
    monkeypatch.setenv("CRUDGRAPH_TOTAL_COUNT_HEADER", "X-Total")
    monkeypatch.setenv("CRUDGRAPH_SQL_ECHO", "true")

    settings = CrudGraphSettings.from_env()
    assert settings.database_url == "sqlite:///crud.db"
    assert not settings.uses_memory_store
    assert settings.log_level == "DEBUG"
    assert settings.total_count_header == "X-Total"
    assert settings.expose_headers_header == "Access-Control-Expose-Headers"
    assert settings.sql_echo is True


def test_from_env_file(clean_env, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("CRUDGRAPH_DATABASE_URL=sqlite:///from-file.db\nCRUDGRAPH_SQL_ECHO=0\n")

    settings = CrudGraphSettings.from_env(str(env_file))
    assert settings.database_url == "sqlite:///from-file.db"
    assert settings.sql_echo is False
    assert os.environ["CRUDGRAPH_DATABASE_URL"] == "sqlite:///from-file.db"


def test_settings_are_frozen():
    with pytest.raises(ValidationError):
        CrudGraphSettings().database_url = "sqlite://"


def test_configure_logging():
    before = {name: list(logging.getLogger(name).handlers) for name in LOGGER_NAMES}
    try:
        configure_logging("DEBUG")
        configure_logging(logging.WARNING)
        for name in LOGGER_NAMES:
            logger = logging.getLogger(name)
            assert logger.level == logging.WARNING
            assert len(logger.handlers) == len(before[name]) + 1
    finally:
        for name in LOGGER_NAMES:
            logger = logging.getLogger(name)
            logger.handlers = before[name]
            logger.setLevel(logging.NOTSET)


@pytest.fixture
def restore_loggers():
    """Put the crudgraph loggers back the way they were."""
    before = {name: list(logging.getLogger(name).handlers) for name in LOGGER_NAMES}
    yield
    for name in LOGGER_NAMES:
        logger = logging.getLogger(name)
        logger.handlers = before[name]
        logger.setLevel(logging.NOTSET)


def test_configure_logging_uses_settings_level(restore_loggers):
    configure_logging(settings=CrudGraphSettings(log_level="DEBUG"))
    assert all(logging.getLogger(name).level == logging.DEBUG for name in LOGGER_NAMES)

    configure_logging("ERROR", settings=CrudGraphSettings(log_level="DEBUG"))
    assert logging.getLogger("CrudService").level == logging.ERROR


def test_configure_logging_reads_level_from_environment(clean_env, monkeypatch, restore_loggers):
    monkeypatch.setenv("CRUDGRAPH_LOG_LEVEL", "warning")
    configure_logging()
    assert logging.getLogger("QueryExecutor").level == logging.WARNING
