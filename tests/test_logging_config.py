import logging

import pytest

from simfire.logging_config import configure_logging


@pytest.fixture(autouse=True)
def restore_level():
    app_logger = logging.getLogger("simfire")
    saved = app_logger.level
    yield
    app_logger.setLevel(saved)


def test_explicit_level():
    app_logger = configure_logging("debug")
    assert app_logger.name == "simfire"
    assert app_logger.level == logging.DEBUG


def test_level_from_environment(monkeypatch):
    monkeypatch.setenv("SIMFIRE_LOG_LEVEL", "warning")
    assert configure_logging().level == logging.WARNING


def test_default_level(monkeypatch):
    monkeypatch.delenv("SIMFIRE_LOG_LEVEL", raising=False)
    assert configure_logging().level == logging.INFO
