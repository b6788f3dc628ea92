"""
Extraction API routes.

Provides endpoints for statement extraction from an uploaded PDF and for
exporting a result to Excel.
"""
import time
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, File, Query, Request, UploadFile
from fastapi.responses import Response

from finextract.config import get_settings
from finextract.engine.models import PipelineMode
from finextract.engine.oracle import OracleClient
from finextract.engine.orchestrator import EngineOptions, process_financial_statement
from finextract.exceptions import (
    FileTooLargeError,
    InvalidFileTypeError,
    OracleConfigurationError,
    PdfProcessingError,
)
from finextract.schemas.extraction import ErrorResponse, ExportRequest, ExtractionResponse
from finextract.services.excel_export import EXPORT_FILENAME, get_excel_exporter
from finextract.services.pdf_processor import get_pdf_processor

logger = structlog.get_logger(__name__)
settings = get_settings()

router = APIRouter()

PDF_CONTENT_TYPES = ("application/pdf", "application/x-pdf")
XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def get_oracle_client(request: Request) -> OracleClient:
    """Oracle client built once at startup (see main.lifespan)."""
    client = getattr(request.app.state, "oracle_client", None)
    if client is None:
        raise OracleConfigurationError("GEMINI_API_KEY is not set")
    return client


def validate_pdf_file(file: UploadFile) -> None:
    """
    Validate that uploaded file is a PDF.

    Raises:
        InvalidFileTypeError: If content type or extension is not PDF.
    """
    if file.content_type not in PDF_CONTENT_TYPES:
        raise InvalidFileTypeError(file.filename or "", ["application/pdf"])
    if file.filename and not file.filename.lower().endswith(".pdf"):
        raise InvalidFileTypeError(file.filename, [".pdf"])


@router.post(
    "/extract",
    response_model=ExtractionResponse,
    responses={
        400: {"model": ErrorResponse, "description": "Invalid file"},
        413: {"model": ErrorResponse, "description": "File too large"},
        422: {"model": ErrorResponse, "description": "Unreadable PDF"},
        500: {"model": ErrorResponse, "description": "Model not configured"},
    },
    summary="Extract financial records from a PDF",
    description="Upload an income statement PDF; the first pages are analysed and returned as year-indexed records.",
)
def extract_statement(
    file: UploadFile = File(..., description="PDF file to analyse"),
    mode: Optional[PipelineMode] = Query(None, description="Pipeline variant (defaults to settings)"),
    client: OracleClient = Depends(get_oracle_client),
) -> ExtractionResponse:
    """Run one extraction. Sync endpoint: runs in the threadpool."""
    start_time = time.perf_counter()
    validate_pdf_file(file)

    content = file.file.read()
    if len(content) > settings.max_upload_size_bytes:
        raise FileTooLargeError(len(content), settings.max_upload_size_bytes)
    if not content:
        raise PdfProcessingError("The uploaded file is empty.")

    logger.info("Extraction requested", filename=file.filename, size=len(content))

    document = get_pdf_processor(settings).process(content)

    options = EngineOptions.from_settings(settings)
    if mode is not None:
        options.mode = mode

    outcome = process_financial_statement(
        document.images,
        document.tokens,
        client=client,
        options=options,
        settings=settings,
    )

    return ExtractionResponse(
        success=outcome.success,
        filename=file.filename,
        page_count=document.page_count,
        pages_processed=len(document.pages),
        processing_time_ms=round((time.perf_counter() - start_time) * 1000, 2),
        data=outcome.data,
        error=outcome.error,
        stage=outcome.stage,
        raw=outcome.raw,
    )


@router.post(
    "/export",
    response_class=Response,
    responses={200: {"content": {XLSX_MEDIA_TYPE: {}}, "description": "Excel workbook"}},
    summary="Export a result to Excel",
)
def export_statement(export_request: ExportRequest) -> Response:
    """Build the Summary/Financials workbook for a result."""
    exporter = get_excel_exporter(settings.gemini_model)
    content = exporter.to_bytes(export_request.result, filename=export_request.filename)

    logger.info("Export generated", records=len(export_request.result.records), size=len(content))

    return Response(
        content=content,
        media_type=XLSX_MEDIA_TYPE,
        headers={"Content-Disposition": f'attachment; filename="{EXPORT_FILENAME}"'},
    )
