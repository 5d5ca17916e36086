# logging.py

import logging
import os
from logging.handlers import RotatingFileHandler

import structlog
from structlog.contextvars import merge_contextvars

from Warden.config import Settings

_REDACTED = "[REDACTED]"
_SECRET_FIELDS = {"discord_bot_token", "discord_public_key", "relay_secret"}
_SECRET_SUFFIXES = ("_token", "_secret", "_key")

# Third-party loggers whose own handlers are dropped in favour of the root ones
_ADOPTED_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "asyncio", "httpx")


def _json_formatter() -> structlog.stdlib.ProcessorFormatter:
    # Renders both structlog events and plain stdlib records as one JSON line
    return structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.add_log_level,
            merge_contextvars,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ],
        foreign_pre_chain=[structlog.processors.add_log_level, merge_contextvars],
    )


def _level(name: str | None, fallback: int) -> int | None:
    """Map a handler level name to a logging level; ``NONE`` disables the handler."""
    name = (name or "").upper()
    if name == "NONE":
        return None
    return getattr(logging, name, fallback)


def _build_handlers(settings: Settings | None, level: int) -> list[logging.Handler]:
    formatter = _json_formatter()
    handlers: list[logging.Handler] = []

    console_level = _level(settings.logging_console if settings else None, level)
    if console_level is not None:
        console = logging.StreamHandler()
        console.setLevel(console_level)
        handlers.append(console)

    file_level = _level(settings.logging_file if settings else None, level)
    if file_level is not None:
        path = settings.logging_file_path if settings else "logs/warden.jsonl"
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        rotating = RotatingFileHandler(
            path,
            maxBytes=settings.logging_max_bytes if settings else 5_000_000,
            backupCount=settings.logging_backup_count if settings else 5,
        )
        rotating.setLevel(file_level)
        handlers.append(rotating)

    for h in handlers:
        h.setFormatter(formatter)
    return handlers


def setup_logging(settings: Settings | None = None) -> None:
    """Route structlog and stdlib logging to JSON console/file handlers.

    Without settings: INFO on the console and in logs/warden.jsonl.
    ``logging_enabled = false`` silences everything.
    """
    if settings is not None and not settings.logging_enabled:
        logging.basicConfig(
            level=logging.CRITICAL + 1, handlers=[logging.NullHandler()], force=True
        )
        return

    level = getattr(logging, (settings.logging_level if settings else "INFO").upper(), logging.INFO)
    logging.captureWarnings(True)
    logging.basicConfig(level=level, handlers=_build_handlers(settings, level), force=True)

    for name in _ADOPTED_LOGGERS:
        lg = logging.getLogger(name)
        lg.handlers = []
        lg.propagate = True

    structlog.configure(
        processors=[
            merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def redact_settings(settings: Settings) -> dict:
    """Return the settings as a dict with every secret replaced by ``[REDACTED]``."""
    data = settings.model_dump()
    for k in data:
        if k in _SECRET_FIELDS or k.endswith(_SECRET_SUFFIXES):
            data[k] = _REDACTED
    return data
