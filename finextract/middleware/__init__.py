"""
Middleware module initialization.
"""
from finextract.middleware.logging import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    add_correlation_id_processor,
    get_correlation_id,
    log_performance,
    redact_sensitive_data,
    redact_sensitive_processor,
)

__all__ = [
    "CorrelationIdMiddleware",
    "RequestLoggingMiddleware",
    "add_correlation_id_processor",
    "get_correlation_id",
    "log_performance",
    "redact_sensitive_data",
    "redact_sensitive_processor",
]
