from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler
from pathlib import Path
from typing import Optional

from adstxt_updater.config.models import FileLoggingSettings, LoggingSettings

HANDLER_NAME = "adstxt_updater"

# Their INFO output repeats on every filesystem event and HTTP request.
_CHATTY_LOGGERS = ("watchfiles", "aiohttp.access", "aiohttp.client")

_FORMATTER = logging.Formatter(
    fmt="[%(asctime)s][%(levelname)s][%(name)s] %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


def _resolve_level(name: str) -> int:
    level = logging.getLevelNamesMapping().get(name.upper())
    if level is None:
        raise ValueError(f"Invalid logging level: {name}")
    return level


def _remove_own_handlers(root_logger: logging.Logger) -> None:
    for handler in list(root_logger.handlers):
        if handler.get_name() == HANDLER_NAME:
            root_logger.removeHandler(handler)
            handler.close()


def _file_handler(settings: FileLoggingSettings, level: int) -> Optional[logging.Handler]:
    file_path = settings.path.strip()
    if not file_path:
        return None

    path = Path(file_path).expanduser()
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = TimedRotatingFileHandler(
        filename=str(path),
        when="midnight",
        interval=1,
        backupCount=settings.backup_count,
        encoding="utf-8",
    )
    handler.suffix = "%Y-%m-%d"
    handler.setLevel(level)
    return handler


def _install(root_logger: logging.Logger, handler: logging.Handler) -> None:
    handler.set_name(HANDLER_NAME)
    handler.setFormatter(_FORMATTER)
    root_logger.addHandler(handler)


def init_logging(settings: LoggingSettings) -> None:
    """
    Route log records of the updater and its libraries to stderr, and to a daily rotated file
    when one is configured.

    Calling it again replaces the handlers it installed earlier and leaves handlers installed by
    anyone else alone. Unless the level is DEBUG, watchfiles and aiohttp only report warnings.
    """
    level = _resolve_level(settings.level)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    _remove_own_handlers(root_logger)

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    _install(root_logger, stream_handler)

    try:
        file_handler = _file_handler(settings.file, level)
    except OSError:
        root_logger.error("File logging handler failed to initialize. path=%s", settings.file.path, exc_info=True)
    else:
        if file_handler is not None:
            _install(root_logger, file_handler)

    library_level = level if level <= logging.DEBUG else max(level, logging.WARNING)
    for name in _CHATTY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)


__all__ = ["HANDLER_NAME", "init_logging"]
