"""
Multi-stage extraction pipeline.

Detection -> Structure/Classification -> Deterministic merge -> Normalization.

The model only labels structure in the grid variant; every value comes from
the text layer via the layout engine, so the model cannot invent numbers.
Stages run strictly in sequence because each prompt depends on the previous
stage's output.
"""

from typing import List, Optional, Sequence

import structlog

from finextract.engine.layout import LayoutEngine, render_grid
from finextract.engine.models import (
    ExtractionResult,
    Grid,
    PipelineMode,
    RawRecord,
    TextToken,
)
from finextract.engine.normalization import NormalizationLayer
from finextract.engine.oracle import OracleClient, RetryPolicy
from finextract.engine.prompts import (
    CLASSIFY_GRID_PROMPT,
    CLASSIFY_PROMPT,
    DETECT_PROMPT,
    DIRECT_PROMPT,
    STRUCTURE_PROMPT,
)
from finextract.engine.stages import (
    ClassificationPayload,
    DetectionPayload,
    DirectExtractionPayload,
    StructurePayload,
)
from finextract.exceptions import EvidenceError

logger = structlog.get_logger(__name__)


# Stage labels
DETECTION = "DETECTION"
EXTRACTION = "EXTRACTION"
CLASSIFICATION = "CLASSIFICATION"
DIRECT_EXTRACTION = "DIRECT_EXTRACTION"

LAYOUT_PAGE = 1

FINANCIAL_KEYWORDS = (
    "revenue", "income", "sales", "expense", "cost", "profit", "loss",
    "tax", "depreciation", "amortisation", "amortization", "ebitda",
    "earnings", "interest", "finance", "purchase", "employee",
)


def check_evidence(payload: DirectExtractionPayload) -> None:
    """
    Reject a direct extraction that cannot be tied to the document.

    Every record needs a source snippet, and a non-empty record set needs at
    least one recognizable financial line item.

    Raises:
        EvidenceError: If the payload fails either check.
    """
    missing = [r.line_item for r in payload.records if not (r.source_snippet or "").strip()]
    if missing:
        raise EvidenceError(
            f"{len(missing)} record(s) without source snippet",
            details={"line_items": missing[:10]},
        )

    if payload.records and not any(
        keyword in f"{r.line_item} {r.category}".lower()
        for r in payload.records
        for keyword in FINANCIAL_KEYWORDS
    ):
        raise EvidenceError("No recognizable financial line items in records")


class ExtractionPipeline:
    """
    Orchestrates the model stages for one document.

    Variants:
    - grid: detection, layout grid of page 1, classification, grid merge
    - structure: detection, model transcription, classification, index merge
    - direct: one extraction call with evidence check
    """

    def __init__(
        self,
        client: OracleClient,
        layout_engine: Optional[LayoutEngine] = None,
        normalizer: Optional[NormalizationLayer] = None,
        stage_policy: Optional[RetryPolicy] = None,
        direct_policy: Optional[RetryPolicy] = None,
    ):
        self._client = client
        self._layout = layout_engine or LayoutEngine()
        self._normalizer = normalizer or NormalizationLayer()
        self._stage_policy = stage_policy or RetryPolicy(max_attempts=2)
        self._direct_policy = direct_policy or RetryPolicy(max_attempts=3)

    def run(
        self,
        images: Sequence[str],
        tokens: Optional[Sequence[TextToken]] = None,
        mode: PipelineMode = PipelineMode.AUTO,
    ) -> ExtractionResult:
        """
        Run the selected pipeline variant.

        Args:
            images: Base64 JPEG page images, in page order.
            tokens: Positioned text tokens for the document (may be empty).
            mode: Variant to run; AUTO picks GRID when page 1 has text.

        Returns:
            ExtractionResult (possibly the explicit empty result).
        """
        mode = PipelineMode(mode)
        if mode is PipelineMode.AUTO:
            mode = PipelineMode.GRID if self._select_layout_tokens(tokens or []) else PipelineMode.STRUCTURE
            logger.info("Pipeline mode selected", mode=mode.value)

        if mode is PipelineMode.GRID:
            return self.run_grid(images, tokens or [])
        if mode is PipelineMode.STRUCTURE:
            return self.run_structure(images)
        return self.run_direct(images)

    # -------------------------------------------------------------------------
    # Variants
    # -------------------------------------------------------------------------

    def run_grid(self, images: Sequence[str], tokens: Sequence[TextToken]) -> ExtractionResult:
        """Detection, layout grid, classification and deterministic merge."""
        if not self._detect(images):
            return ExtractionResult.empty()

        grid = self._layout.build_grid(self._select_layout_tokens(tokens))
        logger.info("Layout grid built", rows=grid.row_count, columns=grid.column_count)

        classification = self._client.call(
            CLASSIFY_GRID_PROMPT.format(grid=render_grid(grid)),
            images,
            ClassificationPayload,
            CLASSIFICATION,
            policy=self._stage_policy,
        )

        raw_records = self.merge_grid(grid, classification)
        logger.info("Grid merge complete", raw_records=len(raw_records))
        return self._normalizer.normalize_records(raw_records)

    def run_structure(self, images: Sequence[str]) -> ExtractionResult:
        """Detection, model transcription, classification and index merge."""
        if not self._detect(images):
            return ExtractionResult.empty()

        structure = self._client.call(
            STRUCTURE_PROMPT, images, StructurePayload, EXTRACTION, policy=self._stage_policy
        )
        mismatched = structure.mismatched_rows()
        if mismatched:
            logger.warning(
                "Structure mismatch: row values count != column count, merging best effort",
                rows=mismatched,
                columns=len(structure.columns),
            )

        classification = self._client.call(
            CLASSIFY_PROMPT, images, ClassificationPayload, CLASSIFICATION, policy=self._stage_policy
        )

        raw_records = self.merge_structure(structure, classification)
        logger.info("Structure merge complete", raw_records=len(raw_records))
        return self._normalizer.normalize_records(raw_records)

    def run_direct(self, images: Sequence[str]) -> ExtractionResult:
        """Single extraction call, retried on schema or evidence failure."""
        payload = self._client.call(
            DIRECT_PROMPT,
            images,
            DirectExtractionPayload,
            DIRECT_EXTRACTION,
            policy=self._direct_policy,
            validator=check_evidence,
        )
        raw_records = [
            RawRecord(
                line_item=record.line_item,
                year=record.year,
                value=record.value,
                category=record.category,
                sub_category=record.sub_category,
                unit=record.unit,
                confidence=record.confidence,
                source_snippet=record.source_snippet,
            )
            for record in payload.records
        ]
        return self._normalizer.normalize_records(raw_records, notes=payload.notes)

    # -------------------------------------------------------------------------
    # Stages
    # -------------------------------------------------------------------------

    def _detect(self, images: Sequence[str]) -> bool:
        detection = self._client.call(
            DETECT_PROMPT, images, DetectionPayload, DETECTION, policy=self._stage_policy
        )
        if not detection.is_usable:
            logger.info(
                "Pipeline stopped: no table detected",
                has_table=detection.has_table,
                confidence=detection.confidence,
                table_type=detection.table_type,
            )
            return False
        logger.info("Table detected", table_type=detection.table_type, confidence=detection.confidence)
        return True

    def _select_layout_tokens(self, tokens: Sequence[TextToken]) -> List[TextToken]:
        """
        Tokens the layout engine analyses.

        Only page 1 is laid out; tables continuing onto later pages are not
        merged into the grid.
        """
        return [token for token in tokens if token.page == LAYOUT_PAGE]

    # -------------------------------------------------------------------------
    # Deterministic merge
    # -------------------------------------------------------------------------

    @staticmethod
    def merge_grid(grid: Grid, classification: ClassificationPayload) -> List[RawRecord]:
        """
        Pair grid values with semantic tags.

        The line item is the row's first cell; the value is the exact text of
        the cell at each year column. Empty cells and non-year columns are
        skipped.
        """
        year_columns = classification.year_columns()
        records: List[RawRecord] = []

        for row_class in classification.rows:
            if row_class.index < 0 or row_class.index >= grid.row_count:
                logger.debug("Classified row not in grid", row=row_class.index)
                continue
            line_item = grid.rows[row_class.index].label.strip()

            for column in year_columns:
                cell = grid.cell_at(row_class.index, column.index)
                if cell is None or not cell.text.strip():
                    continue
                value = cell.text.strip()
                records.append(RawRecord(
                    category=row_class.category,
                    sub_category=None,
                    line_item=line_item,
                    year=column.year,
                    value=value,
                    unit=None,
                    confidence="High",
                    source_snippet=f"{line_item}: {value}",
                ))
        return records

    @staticmethod
    def merge_structure(
        structure: StructurePayload,
        classification: ClassificationPayload,
    ) -> List[RawRecord]:
        """Pair transcribed row values with column/row classifications by index."""
        records: List[RawRecord] = []

        for row in structure.rows:
            category = classification.row_category(row.index) or "Other"
            for column_index, value in enumerate(row.values):
                column = classification.column(column_index)
                if column is None or not column.is_year or not value.strip():
                    continue
                records.append(RawRecord(
                    category=category,
                    line_item=row.line_item,
                    year=column.year,
                    value=value,
                    confidence="High",
                    source_snippet=f"{row.line_item}: {value}",
                ))
        return records
