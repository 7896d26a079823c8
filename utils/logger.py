"""Logging utilities for the ingestion engine."""
import logging
from pathlib import Path
from typing import Dict

from rich.logging import RichHandler
from rich.console import Console

import config

console = Console()

# Every logger handed out, so a run log can be attached to all of them
_loggers: Dict[str, logging.Logger] = {}

# httpx logs every request at INFO; a crawl makes thousands
for _noisy in ("httpx", "httpcore"):
    logging.getLogger(_noisy).setLevel(logging.WARNING)


def setup_logger(name: str, level: int | str = config.LOG_LEVEL) -> logging.Logger:
    """Set up a logger that prints to the shared rich console.

    Args:
        name: Logger name (usually ``__name__``)
        level: Logging level, as int or name such as "DEBUG"

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    if not any(isinstance(h, RichHandler) for h in logger.handlers):
        handler = RichHandler(
            rich_tracebacks=True,
            console=console,
            show_time=True,
            show_path=False
        )
        handler.setFormatter(logging.Formatter("%(message)s"))
        logger.addHandler(handler)

    _loggers[name] = logger
    return logger


def attach_run_log(log_file: Path) -> logging.FileHandler:
    """Mirror every engine logger into a plain-text run log.

    Args:
        log_file: Log path, appended to across resumed runs

    Returns:
        The handler, for :func:`detach_run_log`
    """
    log_file = Path(log_file)
    log_file.parent.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_file, encoding="utf-8")
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)-7s %(name)s: %(message)s"))
    for logger in _loggers.values():
        logger.addHandler(handler)
    return handler


def detach_run_log(handler: logging.FileHandler) -> None:
    for logger in _loggers.values():
        if handler in logger.handlers:
            logger.removeHandler(handler)
    handler.close()
