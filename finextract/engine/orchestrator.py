"""
Orchestrator for the extraction engine.

Main entry point for one upload: validates the inputs, runs the pipeline and
turns the outcome into a ProcessingOutcome the caller can render directly.
"""

import uuid
from dataclasses import dataclass, field
from typing import Optional, Sequence

import structlog
from pydantic import ValidationError as PydanticValidationError

from finextract.config import Settings, get_settings
from finextract.engine.layout import get_layout_engine
from finextract.engine.models import PipelineMode, ProcessingOutcome, TextToken
from finextract.engine.normalization import get_normalization_layer
from finextract.engine.oracle import OracleClient, RetryPolicy
from finextract.engine.pipeline import ExtractionPipeline
from finextract.exceptions import (
    FinExtractError,
    NoImagesProvidedError,
    StageFailedError,
    ValidationError,
)
from finextract.middleware.logging import log_performance

logger = structlog.get_logger(__name__)


@dataclass
class EngineOptions:
    """Per-run options; defaults come from settings."""
    mode: PipelineMode = PipelineMode.AUTO
    max_pages: int = 5
    stage_policy: RetryPolicy = field(default_factory=lambda: RetryPolicy(max_attempts=2))
    direct_policy: RetryPolicy = field(default_factory=lambda: RetryPolicy(max_attempts=3))

    @classmethod
    def from_settings(cls, settings: Settings) -> "EngineOptions":
        return cls(
            mode=PipelineMode(settings.pipeline_mode),
            max_pages=settings.max_pages,
            stage_policy=RetryPolicy(
                max_attempts=settings.stage_max_attempts,
                base_delay=settings.retry_base_delay,
            ),
            direct_policy=RetryPolicy(
                max_attempts=settings.direct_max_attempts,
                base_delay=settings.retry_base_delay,
            ),
        )


def build_pipeline(
    client: OracleClient,
    options: EngineOptions,
    settings: Optional[Settings] = None,
) -> ExtractionPipeline:
    """Assemble a pipeline for a single run."""
    settings = settings or get_settings()
    return ExtractionPipeline(
        client,
        layout_engine=get_layout_engine(settings),
        normalizer=get_normalization_layer(settings.default_unit),
        stage_policy=options.stage_policy,
        direct_policy=options.direct_policy,
    )


@log_performance("process_financial_statement")
def process_financial_statement(
    images: Sequence[str],
    tokens: Optional[Sequence[TextToken]] = None,
    *,
    client: OracleClient,
    options: Optional[EngineOptions] = None,
    settings: Optional[Settings] = None,
) -> ProcessingOutcome:
    """
    Process one financial statement.

    Args:
        images: Base64 JPEG page images in page order.
        tokens: Positioned text tokens from the PDF text layer.
        client: Oracle client for this run.
        options: Engine options (mode, page cap, retry policies).
        settings: Settings for layout and normalization defaults.

    Returns:
        ProcessingOutcome with data on success, or an error string (and the
        unverified raw payload when a stage ultimately failed validation).
    """
    settings = settings or get_settings()
    options = options or EngineOptions.from_settings(settings)
    run_id = str(uuid.uuid4())

    if not images:
        error = NoImagesProvidedError()
        logger.warning("Rejected run without images", run_id=run_id)
        return ProcessingOutcome(success=False, error=error.message)

    limited = list(images)[: options.max_pages]
    logger.info(
        "Processing financial statement",
        run_id=run_id,
        pages=len(limited),
        tokens=len(tokens or []),
        mode=PipelineMode(options.mode).value,
    )

    pipeline = build_pipeline(client, options, settings)
    try:
        result = pipeline.run(limited, tokens or [], mode=options.mode)
    except StageFailedError as e:
        logger.error("Extraction stage failed", run_id=run_id, stage=e.stage, error=e.message)
        return ProcessingOutcome(success=False, error=e.message, raw=e.raw, stage=e.stage)
    except FinExtractError as e:
        logger.error("Extraction failed", run_id=run_id, error=e.message, error_code=e.error_code)
        return ProcessingOutcome(success=False, error=e.message)
    except PydanticValidationError as e:
        error = ValidationError(
            "Extraction result failed validation.",
            errors=[err["msg"] for err in e.errors()],
        )
        logger.error("Extraction result failed validation", run_id=run_id, errors=error.details["errors"])
        return ProcessingOutcome(success=False, error=error.message)

    logger.info(
        "Financial statement processed",
        run_id=run_id,
        records=len(result.records),
        years=result.years_detected,
    )
    return ProcessingOutcome(success=True, data=result)
