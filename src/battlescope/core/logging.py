"""
BattleScope Logging

All modules log through children of the ``battlescope`` logger. That
package logger owns the only handler, which writes to stderr so command
output on stdout stays parseable JSON.

Usage:
    from battlescope.core.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Stored killmail %d", killmail_id, extra={"system_id": system_id})
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Optional

from .config import get_settings

PACKAGE_LOGGER = "battlescope"

# Attributes every LogRecord has; anything else came in through ``extra``
_STANDARD_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "taskName"}

_handler: Optional[logging.Handler] = None


class BattlescopeFormatter(logging.Formatter):
    """
    ``[BATTLESCOPE LEVEL] [module] message`` lines, or one JSON object per
    record carrying the ``extra`` fields when ``json_output`` is set.
    """

    def __init__(self, json_output: bool = False) -> None:
        super().__init__()
        self.json_output = json_output

    def format(self, record: logging.LogRecord) -> str:
        message = record.getMessage()
        exception = self.formatException(record.exc_info) if record.exc_info else None

        if not self.json_output:
            line = f"[BATTLESCOPE {record.levelname}] [{record.name.rsplit('.', 1)[-1]}] {message}"
            return f"{line}\n{exception}" if exception else line

        doc: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(
                timespec="seconds"
            ),
            "level": record.levelname,
            "logger": record.name,
            "message": message,
        }
        doc.update((k, v) for k, v in vars(record).items() if k not in _STANDARD_ATTRS)
        if exception:
            doc["exception"] = exception
        return json.dumps(doc, default=str)


def configure_logging(level: Optional[int] = None, json_output: Optional[bool] = None) -> None:
    """
    Attach the stderr handler to the package logger.

    Safe to call repeatedly; later calls replace the level and format.
    Unset arguments fall back to BATTLESCOPE_LOG_LEVEL and BATTLESCOPE_LOG_JSON.
    """
    global _handler
    settings = get_settings()
    package_logger = logging.getLogger(PACKAGE_LOGGER)

    if _handler is None:
        _handler = logging.StreamHandler(sys.stderr)
        package_logger.addHandler(_handler)
    _handler.setFormatter(
        BattlescopeFormatter(settings.log_json if json_output is None else json_output)
    )

    package_logger.setLevel(settings.log_level_int if level is None else level)
    package_logger.propagate = False


def get_logger(name: str) -> logging.Logger:
    """Return the logger for a module, configuring the package logger on first use."""
    if _handler is None:
        configure_logging()
    return logging.getLogger(name)


def set_log_level(level: int) -> None:
    logging.getLogger(PACKAGE_LOGGER).setLevel(level)


def reset_logging() -> None:
    """Detach the handler and let records propagate again (pytest's caplog needs this)."""
    global _handler
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    if _handler is not None:
        package_logger.removeHandler(_handler)
        _handler = None
    package_logger.propagate = True
    package_logger.setLevel(logging.NOTSET)
