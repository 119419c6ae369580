"""Observability helpers for instrumenting closet and marketplace operations."""

from __future__ import annotations

import inspect
import logging
import time
from functools import wraps
from typing import Any, Callable, TypeVar

from closet_app.logging_config import ensure_correlation_id, get_logger, log_event, redact_for_log

LOGGER = get_logger(__name__)
F = TypeVar("F", bound=Callable[..., Any])


def _preview_kwargs(kwargs: dict, max_keys: int = 6) -> dict:
    preview: dict = {}
    for idx, (key, value) in enumerate(kwargs.items()):
        if idx >= max_keys:
            preview["truncated"] = True
            break
        if isinstance(value, (bytes, bytearray)):
            preview[key] = f"<{len(value)} bytes>"
            continue
        preview[key] = value
    return redact_for_log(preview)


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)


def instrument_operation(operation: str) -> Callable[[F], F]:
    """Wrap a sync or async callable to emit started/completed/failed events."""

    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):

            @wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                correlation_id = ensure_correlation_id()
                start = time.perf_counter()
                log_event(
                    LOGGER,
                    logging.INFO,
                    "operation_started",
                    operation=operation,
                    correlation_id=correlation_id,
                    kwargs=_preview_kwargs(kwargs),
                )
                try:
                    result = await func(*args, **kwargs)
                except Exception as exc:
                    log_event(
                        LOGGER,
                        logging.WARNING,
                        "operation_failed",
                        operation=operation,
                        correlation_id=correlation_id,
                        duration_ms=_elapsed_ms(start),
                        error=type(exc).__name__,
                    )
                    raise
                log_event(
                    LOGGER,
                    logging.INFO,
                    "operation_completed",
                    operation=operation,
                    correlation_id=correlation_id,
                    duration_ms=_elapsed_ms(start),
                )
                return result

            return async_wrapper  # type: ignore[return-value]

        @wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            correlation_id = ensure_correlation_id()
            start = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                log_event(
                    LOGGER,
                    logging.WARNING,
                    "operation_failed",
                    operation=operation,
                    correlation_id=correlation_id,
                    duration_ms=_elapsed_ms(start),
                    error=type(exc).__name__,
                )
                raise
            log_event(
                LOGGER,
                logging.DEBUG,
                "operation_completed",
                operation=operation,
                correlation_id=correlation_id,
                duration_ms=_elapsed_ms(start),
            )
            return result

        return wrapper  # type: ignore[return-value]

    return decorator


__all__ = ["instrument_operation"]
