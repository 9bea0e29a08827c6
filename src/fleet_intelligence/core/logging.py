"""
Structured logging for the fleet intelligence layer.

This module configures structlog with JSON output in production and a
console renderer elsewhere, injects the periodic-task context (component
and tick id) into every event, and provides a performance logger for
timing model training and analysis passes.
"""

import logging
import logging.config
import sys
import time
from contextvars import ContextVar
from functools import wraps
from pathlib import Path
from typing import Any, Callable, Dict, Optional
from uuid import uuid4

import structlog
from structlog.types import FilteringBoundLogger

# Context variables for periodic task tracking
component_context: ContextVar[Optional[str]] = ContextVar("component", default=None)
tick_id_context: ContextVar[Optional[str]] = ContextVar("tick_id", default=None)

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class PerformanceLogger:
    """Specialized logger for performance metrics."""

    def __init__(self, logger: FilteringBoundLogger):
        self.logger = logger

    def log_execution_time(
        self,
        operation: str,
        duration_ms: float,
        success: bool = True,
        **kwargs: Any
    ) -> None:
        """Log operation execution time."""
        self.logger.debug(
            "Operation performance",
            event_type="performance",
            operation=operation,
            duration_ms=round(duration_ms, 3),
            success=success,
            **kwargs
        )

    def log_tick(
        self,
        component: str,
        duration_ms: float,
        services: int = 0,
        **kwargs: Any
    ) -> None:
        """Log the duration of one periodic analysis tick."""
        self.logger.debug(
            "Tick performance",
            event_type="tick_performance",
            component=component,
            duration_ms=round(duration_ms, 3),
            services=services,
            **kwargs
        )


def add_context_processor(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Add periodic task context to log events."""
    component = component_context.get()
    if component:
        event_dict.setdefault("component", component)

    tick_id = tick_id_context.get()
    if tick_id:
        event_dict["tick_id"] = tick_id

    event_dict["timestamp"] = time.time()

    return event_dict


def setup_logging(
    log_level: str = "INFO",
    environment: str = "development",
    log_file: Optional[Path] = None
) -> None:
    """
    Set up structured logging configuration.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        environment: Environment name (development, testing, staging, production)
        log_file: Optional log file path
    """
    level = _LEVELS.get(log_level.upper(), logging.INFO)

    processors = [
        structlog.contextvars.merge_contextvars,
        add_context_processor,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.dev.set_exc_info,
    ]

    if environment == "production":
        processors.extend([
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer()
        ])
    else:
        processors.extend([
            structlog.dev.ConsoleRenderer(colors=environment == "development")
        ])

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=False,
    )

    logging_config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "format": "%(asctime)s %(name)s %(levelname)s %(message)s",
                "class": "pythonjsonlogger.jsonlogger.JsonFormatter"
            },
            "standard": {
                "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
            }
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": log_level.upper(),
                "formatter": "json" if environment == "production" else "standard",
                "stream": sys.stdout
            }
        },
        "root": {
            "level": log_level.upper(),
            "handlers": ["console"]
        }
    }

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        logging_config["handlers"]["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "level": log_level.upper(),
            "formatter": "json",
            "filename": str(log_file),
            "maxBytes": 10485760,  # 10MB
            "backupCount": 5
        }
        logging_config["root"]["handlers"].append("file")

    logging.config.dictConfig(logging_config)


def get_logger(name: Optional[str] = None) -> FilteringBoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (defaults to the package name)

    Returns:
        FilteringBoundLogger: Configured logger instance
    """
    return structlog.get_logger(name or "fleet_intelligence")


def get_performance_logger(name: Optional[str] = None) -> PerformanceLogger:
    """Get a performance logger."""
    return PerformanceLogger(get_logger(name))


def bind_tick_context(component: str, tick_id: Optional[str] = None) -> str:
    """Bind the running component and tick id for subsequent log events."""
    tick_id = tick_id or generate_tick_id()
    component_context.set(component)
    tick_id_context.set(tick_id)
    return tick_id


def clear_tick_context() -> None:
    """Reset the periodic task context."""
    component_context.set(None)
    tick_id_context.set(None)


def generate_tick_id() -> str:
    """Generate a unique tick ID."""
    return uuid4().hex[:12]


def log_execution_time(operation_name: Optional[str] = None):
    """
    Decorator to log function execution time.

    Args:
        operation_name: Optional operation name (defaults to function name)
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            operation = operation_name or f"{func.__module__}.{func.__name__}"
            logger = get_performance_logger(func.__module__)

            try:
                result = func(*args, **kwargs)
                duration_ms = (time.perf_counter() - start_time) * 1000
                logger.log_execution_time(operation, duration_ms, success=True)
                return result
            except Exception as e:
                duration_ms = (time.perf_counter() - start_time) * 1000
                logger.log_execution_time(operation, duration_ms, success=False, error=str(e))
                raise

        return wrapper
    return decorator


__all__ = [
    "setup_logging",
    "get_logger",
    "get_performance_logger",
    "bind_tick_context",
    "clear_tick_context",
    "generate_tick_id",
    "log_execution_time",
    "PerformanceLogger",
]
