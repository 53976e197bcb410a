"""Logging setup for the ``shorthand`` package.

Handlers are installed on the package logger rather than the root logger so an
embedding application keeps control of its own logging. Re-running
:func:`setup_logging` with ``force=True`` closes and replaces the handlers it
installed earlier.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
from pathlib import Path
from typing import Mapping

__all__ = ["PACKAGE_LOGGER", "setup_logging", "get_logger", "get_log_path", "level_from_env"]

PACKAGE_LOGGER = "shorthand"
LOG_FILE_NAME = "shorthand.log"

_DEFAULT_LOG_DIR = Path.home() / ".shorthand" / "logs"
_LOG_DIR_ENV = "SHORTHAND_LOG_DIR"
_LOG_LEVEL_ENV = "SHORTHAND_LOG_LEVEL"
_NOISY_LOGGERS: tuple[str, ...] = ("asyncio",)
_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_CONSOLE_FORMAT = "%(levelname)-8s %(name)s: %(message)s"

_installed: list[logging.Handler] = []
_log_path: Path | None = None


def setup_logging(
    level: int = logging.INFO,
    *,
    log_dir: Path | str | None = None,
    console: bool = True,
    max_bytes: int = 1_000_000,
    backup_count: int = 3,
    force: bool = False,
) -> Path:
    """Attach a rotating file handler (and optionally stderr) to the package logger.

    Returns the log file path. A second call without ``force`` is a no-op and
    returns the path chosen the first time.
    """

    global _log_path
    if _log_path is not None and not force:
        return _log_path

    target_dir = _resolve_log_dir(log_dir)
    target_dir.mkdir(parents=True, exist_ok=True)
    log_path = target_dir / LOG_FILE_NAME

    file_handler = logging.handlers.RotatingFileHandler(
        log_path, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
    )
    file_handler.setFormatter(logging.Formatter(fmt=_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handlers: list[logging.Handler] = [file_handler]
    if console:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(logging.Formatter(fmt=_CONSOLE_FORMAT))
        handlers.append(console_handler)

    package_logger = logging.getLogger(PACKAGE_LOGGER)
    _remove_installed(package_logger)
    for handler in handlers:
        handler.setLevel(level)
        package_logger.addHandler(handler)
        _installed.append(handler)
    package_logger.setLevel(level)
    _tune_external_loggers(level)

    _log_path = log_path
    package_logger.debug("Logging to %s at %s", log_path, logging.getLevelName(level))
    return log_path


def get_logger(name: str) -> logging.Logger:
    """Return a logger below the package logger."""

    if name == PACKAGE_LOGGER or name.startswith(PACKAGE_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{PACKAGE_LOGGER}.{name}")


def get_log_path() -> Path | None:
    return _log_path


def level_from_env(default: int = logging.INFO, *, environ: Mapping[str, str] | None = None) -> int:
    """Read ``SHORTHAND_LOG_LEVEL`` as a level name or number; unknown values give ``default``."""

    env = os.environ if environ is None else environ
    raw = (env.get(_LOG_LEVEL_ENV) or "").strip()
    if not raw:
        return default
    if raw.isdigit():
        return int(raw)
    level = logging.getLevelName(raw.upper())
    return level if isinstance(level, int) else default


def _resolve_log_dir(log_dir: Path | str | None) -> Path:
    return Path(log_dir or os.environ.get(_LOG_DIR_ENV) or _DEFAULT_LOG_DIR).expanduser()


def _remove_installed(package_logger: logging.Logger) -> None:
    while _installed:
        handler = _installed.pop()
        package_logger.removeHandler(handler)
        handler.close()


def _tune_external_loggers(package_level: int) -> None:
    quiet_level = max(logging.WARNING, package_level)
    for logger_name in _NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(quiet_level)
