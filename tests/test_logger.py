"""Tests for the logger module."""

import pytest

import schooldata.logger as logger_module
from schooldata import configure
from schooldata.config import DataAccessSettings
from schooldata.logger import LOG_FORMAT, configure_logging, logger


@pytest.fixture
def captured(monkeypatch):
    monkeypatch.setattr(logger_module, "_handler_id", None)
    messages: list[str] = []
    yield messages
    if logger_module._handler_id is not None:
        logger.remove(logger_module._handler_id)
    logger.disable("schooldata")


class TestLogger:
    def test_format_fields(self) -> None:
        assert set(LOG_FORMAT) == {"time", "level", "sep", "name", "line", "message"}

    def test_package_is_silent_until_configured(self, captured) -> None:
        handler_id = logger.add(captured.append, level="DEBUG")
        try:
            configure(log_level="DEBUG")
        finally:
            logger.remove(handler_id)

        assert captured == []

    def test_configure_logging_enables_package(self, captured) -> None:
        settings = DataAccessSettings(log_level="debug")
        configure_logging(settings, sink=captured.append)

        configure(settings)

        assert any("Configured data access" in message for message in captured)

    def test_level_filters_package_records(self, captured) -> None:
        configure_logging(DataAccessSettings(log_level="warning"), sink=captured.append)

        configure()

        assert captured == []

    def test_reconfiguring_replaces_sink(self, captured) -> None:
        first = configure_logging(DataAccessSettings(), sink=captured.append)
        second = configure_logging(DataAccessSettings(), sink=captured.append)

        assert first != second
        with pytest.raises(ValueError):
            logger.remove(first)
