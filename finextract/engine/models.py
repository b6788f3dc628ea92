"""
Data structures for the extraction engine.

Layout-level types (tokens, cells, rows, grids) are plain dataclasses owned
by a single run. Records leaving the engine are pydantic models so that the
year format and evidence requirements are checked at construction.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class PipelineMode(str, Enum):
    """Which pipeline variant to run."""
    GRID = "grid"            # Layout engine values + model classification
    STRUCTURE = "structure"  # Model transcribes structure, then classifies
    DIRECT = "direct"        # Single model call returning records
    AUTO = "auto"            # GRID when page-1 text exists, else STRUCTURE


class RowGrouping(str, Enum):
    """Row assignment policy for the layout engine."""
    FIRST_MATCH = "first_match"
    NEAREST_MATCH = "nearest_match"


CONFIDENCE_LEVELS = ("High", "Medium", "Low")

NO_TABLE_NOTE = "No financial table detected."


# =============================================================================
# Layout Evidence
# =============================================================================

@dataclass(frozen=True)
class TextToken:
    """A run of readable text with its position (PDF points, y grows upward)."""
    text: str
    x: float
    y: float
    width: float = 0.0
    height: float = 0.0
    page: int = 1


@dataclass
class GridCell:
    """A single cell of a layout grid."""
    x: float
    text: str
    column_index: Optional[int] = None


@dataclass
class GridRow:
    """A row of cells sharing (approximately) the same y."""
    y: float
    cells: List[GridCell] = field(default_factory=list)

    @property
    def label(self) -> str:
        """Text of the left-most cell."""
        return self.cells[0].text if self.cells else ""


@dataclass
class Grid:
    """Layout engine output: ordered rows and global column centroids."""
    rows: List[GridRow] = field(default_factory=list)
    columns: List[float] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_count(self) -> int:
        return len(self.columns)

    def cell_at(self, row_index: int, column_index: int) -> Optional[GridCell]:
        """Get the first cell of a row aligned to the given column."""
        if row_index < 0 or row_index >= len(self.rows):
            return None
        for cell in self.rows[row_index].cells:
            if cell.column_index == column_index:
                return cell
        return None


# =============================================================================
# Records
# =============================================================================

@dataclass
class RawRecord:
    """A loosely typed record, prior to normalization."""
    line_item: Optional[str]
    year: Optional[str]
    value: Union[str, int, float, None]
    category: Optional[str] = None
    sub_category: Optional[str] = None
    unit: Optional[str] = None
    confidence: Optional[str] = None
    source_snippet: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RawRecord":
        """Build from a model/JSON record using camelCase keys."""
        year = data.get("year")
        return cls(
            line_item=data.get("lineItem"),
            year=str(year) if year is not None else None,
            value=data.get("value"),
            category=data.get("category"),
            sub_category=data.get("subCategory"),
            unit=data.get("unit"),
            confidence=data.get("confidence"),
            source_snippet=data.get("sourceSnippet"),
        )


class CleanRecord(BaseModel):
    """A validated financial record."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    category: str
    sub_category: Optional[str] = Field(None, alias="subCategory")
    line_item: str = Field(..., alias="lineItem")
    year: str = Field(..., pattern=r"^\d{4}$")
    value: Optional[float] = None
    unit: Optional[str] = None
    confidence: Literal["High", "Medium", "Low"]
    source_snippet: str = Field(..., alias="sourceSnippet", min_length=1)


class ExtractionResult(BaseModel):
    """Terminal artifact of a run, handed to presentation and export."""

    model_config = ConfigDict(populate_by_name=True)

    records: List[CleanRecord] = Field(default_factory=list)
    years_detected: List[str] = Field(default_factory=list, alias="yearsDetected")
    notes: str = ""

    @classmethod
    def empty(cls, notes: str = NO_TABLE_NOTE) -> "ExtractionResult":
        return cls(records=[], years_detected=[], notes=notes)


class ProcessingOutcome(BaseModel):
    """Result of processing one upload: data on success, an error string otherwise."""

    success: bool
    data: Optional[ExtractionResult] = None
    error: Optional[str] = None
    raw: Optional[Any] = None
    stage: Optional[str] = None
