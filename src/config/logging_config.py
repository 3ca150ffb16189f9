"""Logging setup shared by the server and the storage engine.

structlog loggers (storage engine, audit) are rendered through the standard
library so both styles end up in the same handlers.
"""

import logging
import logging.handlers
import os

import structlog

from src.config.settings import get_log_dir, get_log_level, is_json_logging_enabled

AUDIT_LOGGER_NAME = "audit"


def _daily_file_handler(path: str, level: int) -> logging.Handler:
    os.makedirs(os.path.dirname(path), exist_ok=True)
    handler = logging.handlers.TimedRotatingFileHandler(
        path, when="midnight", backupCount=10, encoding="utf-8"
    )
    handler.setLevel(level)
    return handler


def configure_logging(level: str | None = None, log_dir: str | None = None) -> None:
    """Configure stdlib logging and structlog. Safe to call more than once."""
    level_name = (level or get_log_level()).upper()
    log_dir = log_dir if log_dir is not None else get_log_dir()
    json_output = is_json_logging_enabled()

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
    ]
    renderer = (
        structlog.processors.JSONRenderer()
        if json_output
        else structlog.dev.ConsoleRenderer(colors=False)
    )

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    console_formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer, foreign_pre_chain=shared_processors
    )
    file_formatter = structlog.stdlib.ProcessorFormatter(
        processor=structlog.processors.JSONRenderer(), foreign_pre_chain=shared_processors
    )

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    root.setLevel(level_name)

    console = logging.StreamHandler()
    console.setFormatter(console_formatter)
    root.addHandler(console)

    audit = logging.getLogger(AUDIT_LOGGER_NAME)
    for handler in list(audit.handlers):
        audit.removeHandler(handler)

    if log_dir:
        app_handler = _daily_file_handler(os.path.join(log_dir, "app.log"), logging.NOTSET)
        error_handler = _daily_file_handler(os.path.join(log_dir, "error.log"), logging.ERROR)
        audit_handler = _daily_file_handler(
            os.path.join(log_dir, "audit", "file-actions.log"), logging.INFO
        )
        for handler in (app_handler, error_handler, audit_handler):
            handler.setFormatter(file_formatter)
        root.addHandler(app_handler)
        root.addHandler(error_handler)
        audit.addHandler(audit_handler)

    logging.getLogger(__name__).debug(f"Logging configured (level={level_name}, dir={log_dir})")
