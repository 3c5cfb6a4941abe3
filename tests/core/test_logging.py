"""
Tests for BattleScope Structured Logging.
"""

from __future__ import annotations

import json
import logging
import sys

from battlescope.core.logging import (
    PACKAGE_LOGGER,
    BattlescopeFormatter,
    configure_logging,
    get_logger,
    reset_logging,
    set_log_level,
)


def _record(name: str = "battlescope.services.ingest.service", level: int = logging.INFO, **extra):
    record = logging.LogRecord(
        name=name,
        level=level,
        pathname="service.py",
        lineno=10,
        msg="Stored killmail %d",
        args=(123,),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestBattlescopeFormatter:
    """Test BattlescopeFormatter class."""

    def test_text_format_basic(self):
        """Text format includes level and module."""
        formatted = BattlescopeFormatter(json_output=False).format(_record())

        assert formatted == "[BATTLESCOPE INFO] [service] Stored killmail 123"

    def test_text_format_with_exception(self):
        formatter = BattlescopeFormatter(json_output=False)
        try:
            raise ValueError("bad payload")
        except ValueError:
            exc_info = sys.exc_info()

        record = _record(level=logging.ERROR)
        record.exc_info = exc_info

        formatted = formatter.format(record)
        assert "[BATTLESCOPE ERROR]" in formatted
        assert "ValueError: bad payload" in formatted

    def test_json_format_includes_extras(self):
        """JSON format carries user-supplied extra fields."""
        formatted = BattlescopeFormatter(json_output=True).format(_record(killmail_id=123))
        data = json.loads(formatted)

        assert data["level"] == "INFO"
        assert data["logger"] == "battlescope.services.ingest.service"
        assert data["message"] == "Stored killmail 123"
        assert data["killmail_id"] == 123
        assert "timestamp" in data


class TestGetLogger:
    """Test logger factory and package configuration."""

    def test_module_loggers_share_package_handler(self):
        first = get_logger("battlescope.test.first")
        second = get_logger("battlescope.test.second")
        package_logger = logging.getLogger(PACKAGE_LOGGER)

        assert first.propagate and second.propagate
        assert not first.handlers
        assert len(package_logger.handlers) == 1
        assert package_logger.propagate is False

    def test_configure_twice_keeps_one_handler(self):
        configure_logging(level=logging.DEBUG)
        configure_logging(level=logging.WARNING, json_output=True)
        package_logger = logging.getLogger(PACKAGE_LOGGER)

        assert len(package_logger.handlers) == 1
        assert package_logger.level == logging.WARNING
        assert package_logger.handlers[0].formatter.json_output is True

    def test_set_log_level(self):
        logger = get_logger("battlescope.test.level")
        set_log_level(logging.ERROR)
        assert logger.getEffectiveLevel() == logging.ERROR

    def test_reset_logging_restores_propagation(self):
        get_logger("battlescope.test.reset")
        reset_logging()
        package_logger = logging.getLogger(PACKAGE_LOGGER)

        assert package_logger.propagate is True
        assert package_logger.level == logging.NOTSET
        assert not package_logger.handlers
