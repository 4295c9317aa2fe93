"""
Structured logging configuration.

structlog поверх стандартного logging: JSON или console renderer,
trace_id привязывается к логгеру операции в TransferOrchestrator (bind).
"""

import logging
import sys
from typing import Any, Callable, Optional

import structlog

from tiertransfer.config import Settings, get_settings


def app_context_processor(app_name: str) -> Callable[[Any, str, dict[str, Any]], dict[str, Any]]:
    """Processor, добавляющий app_name (из переданных Settings) в каждое событие лога."""

    def add_app_context(
        logger: Any, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        event_dict["app_name"] = app_name
        return event_dict

    return add_app_context


def setup_logging(settings: Optional[Settings] = None) -> None:
    """
    Настройка structlog и root logger.

    Args:
        settings: настройки (default: get_settings())
    """
    settings = settings or get_settings()

    renderer = (
        structlog.processors.JSONRenderer()
        if settings.log_json
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            app_context_processor(settings.app_name),
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, settings.log_level))

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)

    structlog.get_logger(__name__).info(
        "logging_configured", log_level=settings.log_level, log_json=settings.log_json
    )


def get_logger(name: str) -> Any:
    return structlog.get_logger(name)
