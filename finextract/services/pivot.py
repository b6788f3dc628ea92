"""
Pivot service: one row per line item, one column per year.

Shapes an ExtractionResult for table display and spreadsheet export.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from finextract.engine.models import ExtractionResult

MISSING_VALUE = "-"

CellValue = Union[float, str, None]


@dataclass
class PivotRow:
    """A line item with its value for each year."""

    category: str
    sub_category: Optional[str]
    line_item: str
    confidence: str
    unit: Optional[str]
    values: Dict[str, CellValue] = field(default_factory=dict)


@dataclass
class PivotTable:
    """Years (descending) and the rows that carry them."""

    years: List[str] = field(default_factory=list)
    rows: List[PivotRow] = field(default_factory=list)


def pivot_records(result: Optional[ExtractionResult]) -> PivotTable:
    """
    Pivot records by (category, sub-category, line item).

    Years are sorted most recent first; a year without a value shows "-".
    A row's confidence drops to Low if any of its values is Low.
    """
    if result is None or not result.records:
        return PivotTable()

    years = sorted({record.year for record in result.records}, reverse=True)
    grouped: Dict[Tuple[str, Optional[str], str], PivotRow] = {}

    for record in result.records:
        key = (record.category, record.sub_category, record.line_item)
        row = grouped.get(key)
        if row is None:
            row = PivotRow(
                category=record.category,
                sub_category=record.sub_category,
                line_item=record.line_item,
                confidence=record.confidence,
                unit=record.unit,
                values={year: MISSING_VALUE for year in years},
            )
            grouped[key] = row
        row.values[record.year] = record.value
        if record.confidence == "Low":
            row.confidence = "Low"

    return PivotTable(years=years, rows=list(grouped.values()))
