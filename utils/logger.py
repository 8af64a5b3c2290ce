"""
utils/logger.py
---------------
Console + rotating-file logging.  ``setup_logger`` configures one named
logger once; ``configure_from`` builds the engine logger from the LOG_*
settings in config.env.  Module loggers created at import time fall back to
the LOG_* environment variables.
"""
import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional, Union

ENGINE_LOGGER = "SignalEngine"
LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

DEFAULT_LOG_FILE = "logs/signal_engine.log"

_QUIET = ("aiohttp", "asyncio", "httpx", "telegram")


def resolve_level(level: Union[str, int, None]) -> int:
    """'debug' / 'DEBUG' / 10 -> 10; anything unknown is INFO."""
    if isinstance(level, int):
        return level
    value = getattr(logging, str(level or "INFO").strip().upper(), None)
    return value if isinstance(value, int) else logging.INFO


def _file_handler(path: str, max_mb: int, backups: int) -> RotatingFileHandler:
    folder = os.path.dirname(path)
    if folder:
        os.makedirs(folder, exist_ok=True)
    return RotatingFileHandler(
        path,
        maxBytes=max_mb * 1024 * 1024,
        backupCount=backups,
        encoding="utf-8",
    )


def setup_logger(
    name: str,
    level: Union[str, int, None] = None,
    log_file: Optional[str] = "",
    to_console: bool = True,
    max_mb: Optional[int] = None,
    backups: Optional[int] = None,
) -> logging.Logger:
    """
    Create/get a logger with console and rotating-file handlers.

    ``log_file=""`` means "use LOG_FILE or the default path", ``None``
    disables the file handler.  A logger that already has handlers is
    returned untouched.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    level = resolve_level(level if level is not None else os.getenv("LOG_LEVEL"))
    if log_file == "":
        log_file = os.getenv("LOG_FILE", DEFAULT_LOG_FILE)
    if max_mb is None:
        max_mb = int(os.getenv("LOG_MAX_MB", "5"))
    if backups is None:
        backups = int(os.getenv("LOG_BACKUPS", "5"))

    logger.setLevel(level)
    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT)

    handlers = []
    if log_file:
        handlers.append(_file_handler(log_file, max_mb, backups))
    if to_console:
        handlers.append(logging.StreamHandler())
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.setLevel(level)
        logger.addHandler(handler)

    for noisy in _QUIET:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger


def configure_from(cfg, name: str = ENGINE_LOGGER, to_console: bool = True) -> logging.Logger:
    """Engine logger from a ConfigManager (LOG_LEVEL, LOG_FILE, LOG_MAX_MB, LOG_BACKUPS)."""
    return setup_logger(
        name,
        level=cfg.get_log_level(),
        log_file=cfg.get_log_file(),
        to_console=to_console,
        max_mb=cfg.get_log_max_mb(),
        backups=cfg.get_log_backups(),
    )
