from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TextIO

import structlog
from structlog.typing import EventDict, Processor

from backend.app.config import AppSettings

LOG_FILE_NAME = "newsdesk.log"
TELEMETRY_LOG_FILE_NAME = "newsdesk-telemetry.log"
ROOT_LOGGER_NAME = "newsdesk"
TELEMETRY_LOGGER_NAME = "newsdesk.telemetry"
_SERVER_LOGGER_NAMES: tuple[str, ...] = ("uvicorn", "uvicorn.error")


def configure_application_logging(settings: AppSettings) -> Path:
    """Route `newsdesk.*` loggers to stdout and to rotating JSON-lines files.

    Safe to call more than once (the API lifespan and the CLI both call it);
    previously installed handlers are closed and replaced.
    """
    settings.log_dir.mkdir(parents=True, exist_ok=True)
    log_file = settings.log_dir / LOG_FILE_NAME

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            *_shared_pre_chain(),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    file_handler = _json_file_handler(log_file, settings=settings, level=logging.DEBUG)
    console_handler = _console_handler(sys.stdout, level=_resolve_log_level(settings.log_level))
    _install(
        logging.getLogger(ROOT_LOGGER_NAME),
        level=logging.DEBUG,
        handlers=(console_handler, file_handler),
    )

    # Telemetry events only go to their own file, never to the console.
    _install(
        logging.getLogger(TELEMETRY_LOGGER_NAME),
        level=logging.INFO,
        handlers=(
            _json_file_handler(
                settings.log_dir / TELEMETRY_LOG_FILE_NAME,
                settings=settings,
                level=logging.INFO,
            ),
        ),
    )

    for name in _SERVER_LOGGER_NAMES:
        server_logger = logging.getLogger(name)
        if file_handler not in server_logger.handlers:
            server_logger.addHandler(file_handler)

    logging.getLogger(ROOT_LOGGER_NAME).info(
        "logging configured console_level=%s path=%s max_bytes=%s backups=%s",
        settings.log_level.upper(),
        log_file,
        settings.log_max_bytes,
        settings.log_backup_count,
    )
    return log_file


def _install(
    logger: logging.Logger,
    *,
    level: int,
    handlers: tuple[logging.Handler, ...],
) -> None:
    logger.setLevel(level)
    logger.propagate = False
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
        existing.close()
    for handler in handlers:
        logger.addHandler(handler)


def _json_file_handler(path: Path, *, settings: AppSettings, level: int) -> logging.Handler:
    handler = RotatingFileHandler(
        path,
        maxBytes=settings.log_max_bytes,
        backupCount=settings.log_backup_count,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_shared_pre_chain(),
            processors=[
                _add_source_location,
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.processors.format_exc_info,
                structlog.processors.JSONRenderer(sort_keys=True),
            ],
        )
    )
    return handler


def _console_handler(stream: TextIO, *, level: int) -> logging.Handler:
    handler = logging.StreamHandler(stream=stream)
    handler.setLevel(level)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_shared_pre_chain(),
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                structlog.dev.ConsoleRenderer(colors=_is_tty(stream)),
            ],
        )
    )
    return handler


def _shared_pre_chain() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        _add_component,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
    ]


def _add_component(_logger: object, _method_name: str, event_dict: EventDict) -> EventDict:
    # "newsdesk.scheduler" -> "scheduler"; lets log queries filter one pipeline stage.
    logger_name = event_dict.get("logger")
    if isinstance(logger_name, str) and logger_name.startswith(f"{ROOT_LOGGER_NAME}."):
        event_dict.setdefault("component", logger_name.split(".", 1)[1])
    return event_dict


def _add_source_location(
    _logger: object,
    _method_name: str,
    event_dict: EventDict,
) -> EventDict:
    record = event_dict.get("_record")
    if isinstance(record, logging.LogRecord):
        event_dict["module"] = record.module
        event_dict["lineno"] = record.lineno
        event_dict["thread_name"] = record.threadName
    return event_dict


def _resolve_log_level(raw_level: str) -> int:
    resolved = logging.getLevelName(raw_level.strip().upper())
    return resolved if isinstance(resolved, int) else logging.INFO


def _is_tty(stream: TextIO) -> bool:
    try:
        return stream.isatty()
    except (AttributeError, ValueError):
        return False
