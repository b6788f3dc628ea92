"""
Logging middleware and utilities for production-grade observability.

Provides correlation ID tracking, request/response logging, and performance timing.
"""
import asyncio
import functools
import time
import uuid
from contextvars import ContextVar
from typing import Any, Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

# Context variable for correlation ID (thread-safe)
correlation_id: ContextVar[str] = ContextVar("correlation_id", default="")

logger = structlog.get_logger(__name__)

# Sensitive fields to redact from logs
SENSITIVE_FIELDS = {
    "api_key", "gemini_api_key", "authorization",
    "token", "secret", "password",
}

# Payload fields too large to log (base64 page images)
BULKY_FIELDS = {"images", "image", "data"}


def get_correlation_id() -> str:
    """Get the current request's correlation ID."""
    return correlation_id.get()


def redact_sensitive_data(data: dict, depth: int = 0) -> dict:
    """
    Recursively redact sensitive fields from a dictionary.

    Args:
        data: Dictionary to redact
        depth: Current recursion depth (to prevent infinite loops)

    Returns:
        Dictionary with sensitive values replaced with "[REDACTED]" and
        bulky base64 payloads replaced with their length.
    """
    if depth > 5 or not isinstance(data, dict):
        return data

    redacted = {}
    for key, value in data.items():
        key_lower = str(key).lower()
        if any(sensitive in key_lower for sensitive in SENSITIVE_FIELDS):
            redacted[key] = "[REDACTED]"
        elif key_lower in BULKY_FIELDS and isinstance(value, (str, bytes, list)) and len(value) > 256:
            redacted[key] = f"[{len(value)} items]" if isinstance(value, list) else f"[{len(value)} bytes]"
        elif isinstance(value, dict):
            redacted[key] = redact_sensitive_data(value, depth + 1)
        elif isinstance(value, list):
            redacted[key] = [
                redact_sensitive_data(item, depth + 1) if isinstance(item, dict) else item
                for item in value
            ]
        else:
            redacted[key] = value

    return redacted


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Middleware that adds correlation ID to each request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
        correlation_id.set(request_id)

        response = await call_next(request)

        response.headers["X-Correlation-ID"] = request_id
        return response


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Middleware that logs all requests with timing information."""

    SKIP_PATHS = {"/health", "/docs", "/redoc", "/openapi.json"}

    # Extraction runs several model calls; anything slower than this is notable
    SLOW_REQUEST_MS = 30_000

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.SKIP_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()

        request_info = {
            "method": request.method,
            "path": request.url.path,
            "query": str(request.query_params) if request.query_params else None,
            "client_ip": request.client.host if request.client else None,
            "correlation_id": get_correlation_id(),
        }

        logger.info("request_started", **request_info)

        try:
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start_time) * 1000

            logger.info(
                "request_completed",
                **request_info,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )

            if duration_ms > self.SLOW_REQUEST_MS:
                logger.warning(
                    "slow_request",
                    **request_info,
                    duration_ms=round(duration_ms, 2),
                )

            return response

        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                "request_failed",
                **request_info,
                error=str(e),
                error_type=type(e).__name__,
                duration_ms=round(duration_ms, 2),
            )
            raise


def log_performance(operation_name: str):
    """
    Decorator to log performance timing for functions.

    Usage:
        @log_performance("pdf_render")
        def render(pdf_bytes):
            ...
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        async def async_wrapper(*args, **kwargs) -> Any:
            start_time = time.perf_counter()
            logger.debug("operation_started", operation=operation_name)
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    "operation_failed",
                    operation=operation_name,
                    error=str(e),
                    error_type=type(e).__name__,
                    duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                )
                raise
            logger.info(
                "operation_completed",
                operation=operation_name,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            return result

        @functools.wraps(func)
        def sync_wrapper(*args, **kwargs) -> Any:
            start_time = time.perf_counter()
            logger.debug("operation_started", operation=operation_name)
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                logger.error(
                    "operation_failed",
                    operation=operation_name,
                    error=str(e),
                    error_type=type(e).__name__,
                    duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
                )
                raise
            logger.info(
                "operation_completed",
                operation=operation_name,
                duration_ms=round((time.perf_counter() - start_time) * 1000, 2),
            )
            return result

        if asyncio.iscoroutinefunction(func):
            return async_wrapper
        return sync_wrapper

    return decorator


def add_correlation_id_processor(
    logger: Any, method_name: str, event_dict: dict
) -> dict:
    """Structlog processor that adds correlation ID to all log entries."""
    event_dict["correlation_id"] = get_correlation_id()
    return event_dict


def redact_sensitive_processor(
    logger: Any, method_name: str, event_dict: dict
) -> dict:
    """Structlog processor that redacts sensitive data from log entries."""
    return redact_sensitive_data(event_dict)
