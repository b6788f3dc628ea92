"""
Normalization layer for the extraction engine.

Converts raw records into validated records. The failure policy is to drop:
a record whose year, value, line item or evidence cannot be established is
removed, never repaired.
"""

import math
import re
from typing import Any, Dict, Iterable, List, Optional, Union

import structlog

from finextract.engine.models import (
    CONFIDENCE_LEVELS,
    CleanRecord,
    ExtractionResult,
    RawRecord,
)

logger = structlog.get_logger(__name__)

RecordInput = Union[RawRecord, CleanRecord, Dict[str, Any]]


# Keyword fallback, checked in order
CATEGORY_KEYWORDS = [
    ("Revenue", ("revenue", "income")),
    ("Expenses", ("expense", "cost", "depreciation")),
    ("Profit", ("profit", "loss")),
]


class NormalizationLayer:
    """
    Normalization layer for financial records.

    Handles:
    - Year canonicalization (dates, FY labels -> YYYY)
    - Value parsing (separators, accounting negatives, currency symbols)
    - Category fallback from line-item keywords
    - Unit and confidence defaults
    - Evidence enforcement (source snippet required)
    """

    YEAR_PATTERN = re.compile(r"\b(20\d{2})\b")
    FISCAL_YEAR_PATTERN = re.compile(r"FY\s*(\d{2,4})", re.IGNORECASE)
    PARENTHESES_PATTERN = re.compile(r"\((.*?)\)")
    CURRENCY_PATTERN = re.compile(r"[\$€£¥₹]|\b(?:USD|EUR|GBP|INR)\b|\bRs\.?", re.IGNORECASE)
    NUMBER_PATTERN = re.compile(r"^[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?$")

    def __init__(self, default_unit: str = "Crores"):
        self.default_unit = default_unit

    def normalize_year(self, raw: Optional[str]) -> Optional[str]:
        """
        Canonicalize a year label to YYYY.

        "31/12/2024" -> "2024", "FY25" -> "2025", "FY2024" -> "2024".
        Returns None when no year can be established.
        """
        if not raw:
            return None
        raw = str(raw)

        match = self.YEAR_PATTERN.search(raw)
        if match:
            return match.group(1)

        match = self.FISCAL_YEAR_PATTERN.search(raw)
        if match:
            year = match.group(1)
            if len(year) == 2:
                year = "20" + year
            if len(year) == 4:
                return year
        return None

    def normalize_value(self, raw: Any) -> Optional[float]:
        """
        Parse a cell value into a float.

        "$1,234.00" -> 1234.0, "(500)" -> -500.0. Returns None when the
        value is missing or unparseable.
        """
        if raw is None or isinstance(raw, bool):
            return None
        if isinstance(raw, (int, float)):
            value = float(raw)
            return value if math.isfinite(value) else None
        if not isinstance(raw, str):
            return None

        cleaned = raw.replace(",", "")
        cleaned = self.PARENTHESES_PATTERN.sub(r"-\1", cleaned, count=1)
        cleaned = self.CURRENCY_PATTERN.sub("", cleaned).strip()
        # "-$500", "($ 500)" and "(Rs. 500)" all end up as "-500"
        cleaned = re.sub(r"^-+\s*", "-", cleaned)

        # Internal spaces are never collapsed: "100 200" is two figures, not one
        if not self.NUMBER_PATTERN.match(cleaned):
            return None
        try:
            value = float(cleaned)
        except ValueError:
            return None
        return value if math.isfinite(value) else None

    def normalize_category(self, line_item: str) -> str:
        """Best-effort category from line-item keywords."""
        item = (line_item or "").lower()
        for category, keywords in CATEGORY_KEYWORDS:
            if any(keyword in item for keyword in keywords):
                return category
        return "Other"

    def normalize_confidence(self, raw: Optional[str]) -> str:
        return raw if raw in CONFIDENCE_LEVELS else "Medium"

    def normalize_record(self, record: RecordInput) -> Optional[CleanRecord]:
        """
        Normalize a single record.

        Returns:
            CleanRecord, or None if the record was dropped.
        """
        raw = self._coerce(record)

        year = self.normalize_year(raw.year)
        if year is None:
            logger.debug("Record dropped: year", line_item=raw.line_item, year=raw.year)
            return None

        value = self.normalize_value(raw.value)
        if value is None:
            logger.debug("Record dropped: value", line_item=raw.line_item, value=raw.value)
            return None

        snippet = (raw.source_snippet or "").strip()
        if not snippet:
            logger.debug("Record dropped: no evidence", line_item=raw.line_item)
            return None

        line_item = (raw.line_item or "").strip()
        if not line_item:
            logger.debug("Record dropped: no line item", snippet=snippet)
            return None

        return CleanRecord(
            category=raw.category or self.normalize_category(line_item),
            sub_category=raw.sub_category or None,
            line_item=line_item,
            year=year,
            value=value,
            unit=raw.unit or self.default_unit,
            confidence=self.normalize_confidence(raw.confidence),
            source_snippet=snippet,
        )

    def normalize_records(
        self,
        records: Iterable[RecordInput],
        notes: Optional[str] = "",
    ) -> ExtractionResult:
        """
        Normalize a batch of records into an ExtractionResult.

        Args:
            records: Raw records (RawRecord, CleanRecord or camelCase dicts).
            notes: Free-text notes passed through unchanged.

        Returns:
            ExtractionResult with surviving records and sorted distinct years.
        """
        clean: List[CleanRecord] = []
        total = 0
        for record in records:
            total += 1
            normalized = self.normalize_record(record)
            if normalized is not None:
                clean.append(normalized)

        years = sorted({record.year for record in clean})

        logger.info(
            "Normalization complete",
            received=total,
            kept=len(clean),
            dropped=total - len(clean),
            years=years,
        )

        return ExtractionResult(records=clean, years_detected=years, notes=notes or "")

    def _coerce(self, record: RecordInput) -> RawRecord:
        if isinstance(record, RawRecord):
            return record
        if isinstance(record, CleanRecord):
            return RawRecord.from_dict(record.model_dump(by_alias=True))
        return RawRecord.from_dict(record)


def get_normalization_layer(default_unit: str = "Crores") -> NormalizationLayer:
    """Get NormalizationLayer instance."""
    return NormalizationLayer(default_unit=default_unit)
