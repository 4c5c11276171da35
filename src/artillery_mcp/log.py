from __future__ import annotations

import json
import logging
from datetime import UTC, datetime

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER_NAME = "artillery_mcp"


class _JsonFormatter(logging.Formatter):
    """Emit one JSON object per log record.

    Example:
        ```python
        handler.setFormatter(_JsonFormatter())
        ```
    """

    def format(self, record: logging.LogRecord) -> str:
        """Render a record as a single JSON line.

        Example:
            ```python
            line = _JsonFormatter().format(record)
            ```
        """
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info and record.exc_info[1] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry)


def setup_logging(level: int = logging.INFO, *, json_format: bool = False) -> logging.Logger:
    """Configure the package logger with a single stderr handler.

    Repeated calls only adjust the level. Stdout is left alone so the
    JSON-lines `serve` mode can own it.

    Example:
        ```python
        logger = setup_logging(logging.DEBUG, json_format=True)
        ```
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(level)
    if logger.handlers:
        for handler in logger.handlers:
            handler.setLevel(level)
        return logger

    handler: logging.Handler
    if json_format:
        handler = logging.StreamHandler()
        handler.setFormatter(_JsonFormatter())
    else:
        handler = RichHandler(
            console=Console(stderr=True),
            show_path=False,
            rich_tracebacks=True,
        )
        handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    handler.setLevel(level)
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def get_logger(name: str) -> logging.Logger:
    """Return a child logger under the package namespace.

    Example:
        ```python
        log = get_logger("runner")  # artillery_mcp.runner
        ```
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
