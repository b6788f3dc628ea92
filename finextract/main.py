"""
FastAPI application entry point.

Configures the application with routes, middleware, and settings.
"""
import logging
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from finextract import __version__
from finextract.api.routes import extract
from finextract.config import OracleConfig, get_settings
from finextract.engine.oracle import get_oracle_client
from finextract.exceptions import FinExtractError
from finextract.middleware.logging import (
    CorrelationIdMiddleware,
    RequestLoggingMiddleware,
    add_correlation_id_processor,
    redact_sensitive_processor,
)

settings = get_settings()

logging.basicConfig(format="%(message)s", level=settings.log_level.upper())

# Configure structured logging with enhanced processors
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        add_correlation_id_processor,  # Add correlation ID to all logs
        redact_sensitive_processor,     # Redact API keys, trim base64 payloads
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the oracle client once; runs share it read-only."""
    logger.info("Starting finextract API", debug=settings.debug, model=settings.gemini_model)
    app.state.oracle_client = None
    if settings.gemini_api_key:
        app.state.oracle_client = get_oracle_client(OracleConfig.from_settings(settings))
    else:
        logger.warning("GEMINI_API_KEY not set, extraction endpoint unavailable")
    yield
    logger.info("Shutting down finextract API")


app = FastAPI(
    title="finextract API",
    description="""
## Financial Statement PDF Extraction API

Upload an income statement PDF and receive validated, year-indexed line items.

- **Layout-first**: values are read from the PDF text layer; the model only labels rows and columns
- **Evidence required**: every record carries the snippet it was read from
- **Export**: pivoted Excel workbook (Summary + Financials)
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
    openapi_tags=[
        {"name": "Extraction", "description": "PDF upload, extraction and export"},
        {"name": "Health", "description": "Health checks"},
    ],
)

# Logging middleware (order matters: correlation ID first)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.add_middleware(GZipMiddleware, minimum_size=1000)

app.include_router(extract.router, prefix="/api/v1", tags=["Extraction"])


@app.exception_handler(FinExtractError)
async def finextract_exception_handler(request: Request, exc: FinExtractError):
    """Handle all finextract custom exceptions."""
    logger.error(
        "finextract_error",
        error_code=exc.error_code,
        message=exc.message,
        details=exc.details,
        path=str(request.url.path),
    )
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.get("/health", tags=["Health"])
async def health_check() -> dict:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": __version__,
        "oracle_configured": getattr(app.state, "oracle_client", None) is not None,
    }
