"""Route the ``refsync`` logger to stderr through click."""

from __future__ import annotations

import logging

import click

LOG_FORMAT = "[%(asctime)s] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_PREFIXES = {
    logging.WARNING: "WARNING: ",
    logging.ERROR: "ERROR: ",
    logging.CRITICAL: "ERROR: ",
}


class _ClickHandler(logging.Handler):
    def emit(self, record: logging.LogRecord) -> None:
        try:
            click.echo(self.format(record), err=True)
        except Exception:
            self.handleError(record)


class _PrefixFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        text = super().format(record)
        prefix = _PREFIXES.get(record.levelno)
        if prefix:
            stamp, _, message = text.partition("] ")
            text = f"{stamp}] {prefix}{message}"
        return text


def setup_logging(level: int = logging.INFO) -> logging.Logger:
    """Install a single stderr handler on the ``refsync`` logger.

    Calling again replaces the handler instead of stacking another.
    """
    logger = logging.getLogger("refsync")
    logger.setLevel(level)
    logger.handlers.clear()
    handler = _ClickHandler()
    handler.setLevel(level)
    handler.setFormatter(_PrefixFormatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    logger.addHandler(handler)
    logger.propagate = False
    return logger
