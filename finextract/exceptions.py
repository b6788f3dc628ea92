"""
Custom exceptions for finextract.

Provides a hierarchy of exceptions with error codes for consistent error handling.
"""
from typing import Any, Dict, Optional


class FinExtractError(Exception):
    """
    Base exception for all finextract errors.

    Attributes:
        error_code: Unique error code (e.g., FXE-001)
        message: Human-readable error message
        details: Additional error context
    """
    error_code: str = "FXE-000"
    http_status: int = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None,
    ):
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for API response."""
        return {
            "error": True,
            "error_code": self.error_code,
            "message": self.message,
            "details": self.details,
        }


# Input Errors (FXE-1XX)
class InputError(FinExtractError):
    """Caller supplied unusable input. Never retried."""
    error_code = "FXE-100"
    http_status = 400

    def __init__(self, message: str = "Invalid input", **kwargs):
        super().__init__(message, **kwargs)


class NoImagesProvidedError(InputError):
    """No page images were supplied to the pipeline."""
    error_code = "FXE-101"

    def __init__(self, **kwargs):
        super().__init__("No images provided.", **kwargs)


class InvalidFileTypeError(InputError):
    """Invalid file type uploaded."""
    error_code = "FXE-102"

    def __init__(self, filename: str, expected_types: list, **kwargs):
        message = f"Invalid file type. Expected: {', '.join(expected_types)}"
        super().__init__(message, details={"filename": filename, "expected_types": expected_types}, **kwargs)


class FileTooLargeError(InputError):
    """File exceeds maximum size limit."""
    error_code = "FXE-103"
    http_status = 413

    def __init__(self, size: int, max_size: int, **kwargs):
        message = f"File too large. Maximum size: {max_size // (1024*1024)}MB"
        super().__init__(message, details={"size": size, "max_size": max_size}, **kwargs)


class PdfProcessingError(InputError):
    """PDF could not be opened or rendered."""
    error_code = "FXE-110"
    http_status = 422

    def __init__(self, message: str = "Failed to load PDF. The file might be corrupted.", **kwargs):
        super().__init__(message, **kwargs)


class PdfPasswordProtectedError(PdfProcessingError):
    """PDF is encrypted and cannot be read."""
    error_code = "FXE-111"

    def __init__(self, **kwargs):
        super().__init__("This PDF is password protected. Please unlock it and try again.", **kwargs)


# Oracle Errors (FXE-2XX)
class OracleError(FinExtractError):
    """A single exchange with the extraction model failed."""
    error_code = "FXE-200"
    http_status = 502

    def __init__(self, message: str = "Extraction model call failed", **kwargs):
        super().__init__(message, **kwargs)


class OracleConfigurationError(OracleError):
    """Model client cannot be built from the given configuration."""
    error_code = "FXE-201"
    http_status = 500


class OracleResponseError(OracleError):
    """Model response was not parseable JSON."""
    error_code = "FXE-202"


class OracleSchemaError(OracleError):
    """Model JSON did not match the stage schema."""
    error_code = "FXE-203"


class EvidenceError(OracleError):
    """Model output failed the evidence check."""
    error_code = "FXE-204"


class StageFailedError(OracleError):
    """
    A pipeline stage exhausted its retry attempts.

    Attributes:
        stage: Stage label (e.g. DETECTION)
        attempts: Number of attempts made
        raw: Last unverified payload received, if any
    """
    error_code = "FXE-210"

    def __init__(
        self,
        stage: str,
        attempts: int,
        last_error: Optional[Exception] = None,
        raw: Any = None,
        **kwargs,
    ):
        self.stage = stage
        self.attempts = attempts
        self.last_error = last_error
        self.raw = raw
        reason = str(last_error) if last_error else "unknown error"
        message = f"[{stage}] failed after {attempts} attempt(s): {reason}"
        super().__init__(
            message,
            details={"stage": stage, "attempts": attempts, "last_error": reason},
            **kwargs,
        )


# Validation Errors (FXE-3XX)
class ValidationError(FinExtractError):
    """Final result failed validation."""
    error_code = "FXE-300"
    http_status = 422

    def __init__(self, message: str = "Validation failed", errors: list = None, **kwargs):
        details = kwargs.pop("details", {})
        details["errors"] = errors or []
        super().__init__(message, details=details, **kwargs)
