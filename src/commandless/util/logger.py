"""
Logging setup for the Commandless SDK.

Every SDK module logs through ``get_logger(name)``, which returns a
``commandless.<name>`` logger with two handlers:

- a console handler that prints through prompt_toolkit, so log lines do not
  break an interactive prompt the host bot may be showing;
- a daily rotating file under ``COMMANDLESS_LOG_DIR`` (default ``./logs``).

Environment:
    COMMANDLESS_LOG_DIR: Directory for log files.
    COMMANDLESS_LOG_LEVEL: Console level name (default ``INFO``). The file
        always records DEBUG.
    COMMANDLESS_LOG_CONSOLE: Set to ``0``/``false``/``no`` to log to file only,
        for hosts that already print their own console output.
"""

import logging
import os
import sys
from datetime import date
from logging.handlers import RotatingFileHandler
from pathlib import Path

from prompt_toolkit import print_formatted_text
from prompt_toolkit.formatted_text import ANSI

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"
FILE_LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

MAX_LOG_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3

LEVEL_COLORS = {
    "DEBUG": "\033[36m",
    "INFO": "\033[32m",
    "WARNING": "\033[33m",
    "ERROR": "\033[31m",
    "CRITICAL": "\033[1;31m",
}
RESET = "\033[0m"

_FALSE_VALUES = {"0", "false", "no", "off"}

# Resolved once per process; all loggers append to the same file.
_log_filepath: Path | None = None


def resolve_logs_dir() -> Path:
    """Return (and create) the directory log files are written to."""
    logs_dir = Path(os.getenv("COMMANDLESS_LOG_DIR", "./logs")).resolve()
    logs_dir.mkdir(parents=True, exist_ok=True)
    return logs_dir


def get_log_filepath() -> Path:
    """Path of this process's log file, ``commandless-<YYYY-MM-DD>.log``."""
    global _log_filepath
    if _log_filepath is None:
        _log_filepath = resolve_logs_dir() / f"commandless-{date.today().isoformat()}.log"
    return _log_filepath


def console_level() -> int:
    """Console level from ``COMMANDLESS_LOG_LEVEL``; unknown names fall back to INFO."""
    level = logging.getLevelName(os.getenv("COMMANDLESS_LOG_LEVEL", "INFO").strip().upper())
    return level if isinstance(level, int) else logging.INFO


def console_enabled() -> bool:
    return os.getenv("COMMANDLESS_LOG_CONSOLE", "1").strip().lower() not in _FALSE_VALUES


def should_use_color() -> bool:
    """True when stderr is a terminal that can render ANSI colors."""
    try:
        return sys.stderr.isatty()
    except (AttributeError, ValueError):
        return False


class LevelColorFormatter(logging.Formatter):
    """Formatter that colors only the ``[LEVEL]`` tag of each line.

    The record is copied before the level name is decorated, so other handlers
    sharing the record (the log file) still see the plain level name.
    """

    def format(self, record: logging.LogRecord) -> str:
        color = LEVEL_COLORS.get(record.levelname)
        if color is None:
            return super().format(record)
        colored = logging.makeLogRecord(record.__dict__)
        colored.levelname = f"{color}{record.levelname}{RESET}"
        return super().format(colored)


class PromptToolkitHandler(logging.Handler):
    """Console handler that writes through ``prompt_toolkit.print_formatted_text``."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            print_formatted_text(ANSI(self.format(record)))
        except Exception:
            self.handleError(record)


def _console_handler() -> logging.Handler:
    handler = PromptToolkitHandler()
    formatter_cls = LevelColorFormatter if should_use_color() else logging.Formatter
    handler.setFormatter(formatter_cls(LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.setLevel(console_level())
    return handler


def _file_handler() -> logging.Handler:
    handler = RotatingFileHandler(
        get_log_filepath(), maxBytes=MAX_LOG_BYTES, backupCount=LOG_BACKUP_COUNT, encoding="utf-8"
    )
    handler.setFormatter(logging.Formatter(FILE_LOG_FORMAT, datefmt=DATE_FORMAT))
    handler.setLevel(logging.DEBUG)
    return handler


def setup_logger(logger_name: str) -> logging.Logger:
    """Attach the SDK handlers to ``logger_name`` once and return the logger.

    Parameters
    ----------
    logger_name:
        Fully qualified logger name.

    Returns
    -------
    logging.Logger
        The configured logger. It does not propagate, so host applications'
        root handlers do not print SDK lines twice.
    """
    logger = logging.getLogger(logger_name)
    if logger.handlers:
        return logger

    logger.setLevel(logging.DEBUG)
    logger.propagate = False
    if console_enabled():
        logger.addHandler(_console_handler())
    logger.addHandler(_file_handler())
    return logger


def get_logger(logger_name: str) -> logging.Logger:
    """Return the ``commandless.<logger_name>`` logger, configuring it on first use."""
    return setup_logger(f"commandless.{logger_name}")


def handle_exception(exception_type, exception_instance, exception_traceback) -> None:
    """``sys.excepthook`` replacement that records uncaught errors in the SDK log.

    KeyboardInterrupt goes to the default hook so Ctrl+C still exits quietly.
    """
    if issubclass(exception_type, KeyboardInterrupt):
        sys.__excepthook__(exception_type, exception_instance, exception_traceback)
        return
    get_logger("main").critical(
        "Uncaught %s: %s",
        exception_type.__name__,
        exception_instance,
        exc_info=(exception_type, exception_instance, exception_traceback),
    )


NOISY_LOGGERS = (
    "discord",
    "discord.gateway",
    "discord.client",
    "discord.http",
    "websockets",
    "aiohttp",
    "aiohttp.access",
    "asyncio",
)


def silence_noisy_loggers() -> None:
    """Raise third-party loggers to ERROR so gateway chatter does not drown relay logs."""
    for name in NOISY_LOGGERS:
        noisy = logging.getLogger(name)
        noisy.setLevel(logging.ERROR)
        noisy.propagate = False
        noisy.handlers = []
