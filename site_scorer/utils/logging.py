"""
Logging setup for the site scorer.

``configure_logging(config)`` is called once by each CLI command before any
analysis work. Library modules only ever use ``logging.getLogger(__name__)``.

Scorers attach per-hexagon context through ``extra=``::

    logger.warning("hexagon missing: %s", exc,
                   extra={"dimension": "risk", "hex_index": 4})

The text formatter renders that context as a ``[risk #4]`` suffix. With
``json_format = true`` under ``[logging]`` each record becomes one JSON line
and the context fields sit at the top level::

    {"ts": "2026-02-24T15:00:00Z", "level": "WARNING",
     "logger": "site_scorer.scoring.base", "msg": "...",
     "dimension": "risk", "hex_index": 4}

Log records go to stderr so that stdout stays free for command output.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from site_scorer.config import LoggingConfig

TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s%(scoring_context)s"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Loggers whose per-request lines drown out per-hexagon progress.
QUIET_LOGGERS = ("httpx", "httpcore", "shapely", "pyproj")

_RESERVED = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__) | {
    "message",
    "asctime",
    "scoring_context",
}


def _extras(record: logging.LogRecord) -> dict[str, Any]:
    return {
        k: v for k, v in record.__dict__.items()
        if k not in _RESERVED and not k.startswith("_")
    }


class _TextFormatter(logging.Formatter):
    """Plain text with an optional ``[dimension #hex_index]`` suffix."""

    converter = time.gmtime

    def __init__(self) -> None:
        super().__init__(TEXT_FORMAT, datefmt=TIMESTAMP_FORMAT)

    def format(self, record: logging.LogRecord) -> str:
        dimension = getattr(record, "dimension", None)
        hex_index = getattr(record, "hex_index", None)
        if dimension is None and hex_index is None:
            record.scoring_context = ""
        elif hex_index is None:
            record.scoring_context = f" [{dimension}]"
        else:
            record.scoring_context = f" [{dimension or '?'} #{hex_index}]"
        return super().format(record)


class _JsonFormatter(logging.Formatter):
    """One JSON object per record: ``ts``, ``level``, ``logger``, ``msg`` + extras."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).strftime(
                TIMESTAMP_FORMAT
            ),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            **_extras(record),
        }
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=str)


def build_formatter(json_format: bool) -> logging.Formatter:
    return _JsonFormatter() if json_format else _TextFormatter()


def configure_logging(config: "LoggingConfig") -> None:
    """Configure the root logger from ``config``.

    Installs a stderr handler and, when ``config.log_file`` is set, a UTF-8
    file handler (parent directories created). Both share one formatter and
    the configured level.
    """
    level = logging.getLevelName(config.level.upper())
    if not isinstance(level, int):
        level = logging.INFO
    formatter = build_formatter(config.json_format)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.log_file:
        log_path = Path(config.log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding="utf-8"))

    for handler in handlers:
        handler.setLevel(level)
        handler.setFormatter(formatter)
    logging.basicConfig(level=level, handlers=handlers, force=True)

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
