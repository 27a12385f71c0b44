"""
Centralized logging and error handling utilities for multipart loading.

This module provides decorators and helper functions to keep logging and
transport error reporting consistent across the loader.

Features:
- Structured logging with contextual information
- Operation timing decorator
- Classification of httpx failures into load error categories
"""

from __future__ import annotations

import functools
import logging
import time
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Any, ParamSpec, TypeVar

import httpx
import structlog

from .exceptions import MultipartLoadError, ResponseStatusError, TransportError

SHARED_PROCESSORS: list[Any] = [
    structlog.stdlib.filter_by_level,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.processors.TimeStamper(fmt="iso"),
]

# Configure structured logging
structlog.configure(
    processors=[*SHARED_PROCESSORS, structlog.dev.ConsoleRenderer(colors=True)],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=False,
)

# Type variables for generic decorators
P = ParamSpec("P")
T = TypeVar("T")
AsyncCallable = Callable[P, Awaitable[T]]

logger = structlog.get_logger(__name__)


def configure_logging(level: str = "INFO", renderer: str = "console") -> None:
    """
    Reconfigure structlog and the stdlib root level.

    Args:
        level: Standard logging level name
        renderer: "console" for colored dev output, "json" for one JSON object per line
    """
    logging.basicConfig(format="%(message)s", level=level.upper(), force=True)

    final_processor: Any
    if renderer == "json":
        final_processor = structlog.processors.JSONRenderer()
    else:
        final_processor = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[*SHARED_PROCESSORS, final_processor],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,
    )


class LoadErrorHandler:
    """Turns httpx failures into load errors with structured logging."""

    @staticmethod
    def classify_error(error: Exception) -> str:
        """
        Classify a transport error.

        Args:
            error: The exception raised by the transport

        Returns:
            Error category name
        """
        if isinstance(error, httpx.HTTPStatusError):
            return "http_status_error"
        if isinstance(error, httpx.TimeoutException | TimeoutError):
            return "timeout_error"
        if isinstance(error, httpx.NetworkError | ConnectionError | OSError):
            return "connection_error"
        if isinstance(error, httpx.ProtocolError | httpx.DecodingError):
            return "protocol_error"
        if isinstance(error, httpx.HTTPError | httpx.InvalidURL | httpx.StreamError):
            return "transport_error"
        return "unknown_error"

    @staticmethod
    def create_load_error(
        error: Exception,
        url: str,
        method: str,
        context: dict[str, Any] | None = None,
    ) -> MultipartLoadError:
        """
        Create a load error from a transport exception and log it.

        Args:
            error: Original exception
            url: Requested URL
            method: HTTP method used
            context: Additional context for logging

        Returns:
            ResponseStatusError for error statuses, TransportError otherwise.
            The original exception is kept as ``__cause__``.
        """
        category = LoadErrorHandler.classify_error(error)
        context = context or {}

        load_error: MultipartLoadError
        if isinstance(error, httpx.HTTPStatusError):
            response = error.response
            load_error = ResponseStatusError(
                f"{method} {url} failed with status {response.status_code}: "
                f"{response.reason_phrase}",
                url,
                method,
                status_code=response.status_code,
                reason_phrase=response.reason_phrase,
                response_text=response.text,
            )
        else:
            load_error = TransportError(
                f"{method} {url} failed: {error!s}",
                url,
                method,
                category=category,
            )
        load_error.__cause__ = error

        logger.error(
            "Load failed",
            url=url,
            method=method,
            error_type=type(error).__name__,
            error_category=category,
            status_code=load_error.status_code,
            error_message=str(error),
            **context,
        )
        return load_error


def log_operation(
    operation: str,
    *,
    log_args: bool = False,
    log_result: bool = False,
    log_timing: bool = True,
    context: dict[str, Any] | None = None,
) -> Callable[[AsyncCallable[P, T]], AsyncCallable[P, T]]:
    """
    Decorator for logging async operations with structured context.

    Args:
        operation: Description of the operation being performed
        log_args: Whether to log function arguments
        log_result: Whether to log function result
        log_timing: Whether to log execution timing
        context: Additional context to include in logs

    Returns:
        Decorated function with logging
    """
    def decorator(func: AsyncCallable[P, T]) -> AsyncCallable[P, T]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            operation_logger = logger.bind(
                operation=operation,
                function=func.__name__,
                **(context or {}),
            )

            log_data = {}
            if log_args:
                log_data.update({
                    "args": args[1:] if args else [],  # Skip 'self' if present
                    "kwargs": kwargs,
                })

            operation_logger.info("Operation started", **log_data)

            start_time = time.perf_counter() if log_timing else None

            try:
                result = await func(*args, **kwargs)

                end_log_data: dict[str, Any] = {}
                if log_timing and start_time is not None:
                    duration = round((time.perf_counter() - start_time) * 1000, 2)
                    end_log_data["duration_ms"] = duration
                if log_result:
                    end_log_data["result"] = result

                operation_logger.info(
                    "Operation completed successfully", **end_log_data
                )
                return result

            except Exception as e:
                error_log_data: dict[str, Any] = {
                    "error_type": type(e).__name__,
                    "error_message": str(e),
                }
                if log_timing and start_time is not None:
                    duration = round((time.perf_counter() - start_time) * 1000, 2)
                    error_log_data["duration_ms"] = duration

                operation_logger.error("Operation failed", **error_log_data)
                raise

        return wrapper
    return decorator


@asynccontextmanager
async def operation_context(
    operation: str,
    *,
    context: dict[str, Any] | None = None,
    log_timing: bool = True,
) -> AsyncIterator[Any]:
    """
    Async context manager for operation logging.

    Args:
        operation: Description of the operation
        context: Additional context for logging
        log_timing: Whether to log operation timing

    Yields:
        Bound logger for the operation
    """
    operation_logger = logger.bind(operation=operation, **(context or {}))

    operation_logger.info("Operation started")
    start_time = time.perf_counter() if log_timing else None

    try:
        yield operation_logger

        log_data: dict[str, Any] = {}
        if log_timing and start_time is not None:
            duration = round((time.perf_counter() - start_time) * 1000, 2)
            log_data["duration_ms"] = duration

        operation_logger.info("Operation completed successfully", **log_data)

    except Exception as e:
        error_log_data: dict[str, Any] = {
            "error_type": type(e).__name__,
            "error_message": str(e),
        }
        if log_timing and start_time is not None:
            duration = round((time.perf_counter() - start_time) * 1000, 2)
            error_log_data["duration_ms"] = duration

        operation_logger.error("Operation failed", **error_log_data)
        raise


class ContextualLogger:
    """Logger that maintains context across related operations."""

    def __init__(self, base_context: dict[str, Any] | None = None):
        self.base_context = base_context or {}
        self._logger = logger.bind(**self.base_context)

    def bind(self, **context: Any) -> ContextualLogger:
        """Create a new logger with additional context."""
        merged_context = {**self.base_context, **context}
        return ContextualLogger(merged_context)

    def info(self, message: str, **context: Any) -> None:
        self._logger.info(message, **context)

    def warning(self, message: str, **context: Any) -> None:
        self._logger.warning(message, **context)

    def error(self, message: str, **context: Any) -> None:
        self._logger.error(message, **context)

    def debug(self, message: str, **context: Any) -> None:
        self._logger.debug(message, **context)
