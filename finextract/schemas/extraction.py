"""
Pydantic schemas for extraction API endpoints.

Defines request and response models for statement extraction and export.
"""
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from finextract.engine.models import ExtractionResult


class ExtractionResponse(BaseModel):
    """Response model for a statement extraction."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = Field(..., description="Whether extraction completed")
    filename: Optional[str] = Field(None, description="Original filename")
    page_count: int = Field(0, alias="pageCount", description="Pages in the document")
    pages_processed: int = Field(0, alias="pagesProcessed", description="Pages sent for analysis")
    processing_time_ms: float = Field(0.0, alias="processingTimeMs", description="Processing time in milliseconds")
    data: Optional[ExtractionResult] = Field(None, description="Extracted records")
    error: Optional[str] = Field(None, description="Human-readable error when success is false")
    stage: Optional[str] = Field(None, description="Stage that failed, if any")
    raw: Optional[Any] = Field(None, description="Unverified model payload, for diagnostics")


class ExportRequest(BaseModel):
    """Request model for Excel export."""

    result: ExtractionResult = Field(..., description="Result to export")
    filename: Optional[str] = Field(None, description="Source PDF name for the summary sheet")


class ErrorResponse(BaseModel):
    """Response model for API errors."""

    error: bool = Field(True, description="Always true")
    error_code: str = Field(..., description="Error code (FXE-xxx)")
    message: str = Field(..., description="Error message")
    details: Optional[Dict[str, Any]] = Field(None, description="Additional error details")
