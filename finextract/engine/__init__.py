"""
Extraction engine: financial statement PDF pages to validated records.

Key Principles:
1. Evidence-first, never-invent - values come from the document, the model labels structure
2. Deterministic-first - layout analysis before model calls
3. Validate at every stage boundary, retry with backoff
4. Drop, don't guess - unverifiable records are removed
"""

from finextract.engine.models import (
    CleanRecord,
    ExtractionResult,
    PipelineMode,
    ProcessingOutcome,
    TextToken,
)
from finextract.engine.orchestrator import EngineOptions, process_financial_statement

__all__ = [
    "CleanRecord",
    "EngineOptions",
    "ExtractionResult",
    "PipelineMode",
    "ProcessingOutcome",
    "TextToken",
    "process_financial_statement",
]
