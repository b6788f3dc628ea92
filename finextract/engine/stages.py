"""
Expected response shapes for each model stage.

Every oracle response is validated against one of these before any stage
acts on it; a mismatch counts as a failed attempt.
"""

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class StagePayload(BaseModel):
    """Base for stage payloads: camelCase on the wire, snake_case in code."""

    model_config = ConfigDict(populate_by_name=True)


def _number_to_str(value):
    """Numeric JSON values become their text form (2024 -> "2024")."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return value


# =============================================================================
# Detection
# =============================================================================

class DetectionPayload(StagePayload):
    """Does the document contain a financial table."""

    has_table: bool = Field(..., alias="hasTable")
    table_type: Literal["income_statement", "balance_sheet", "other", "unknown"] = Field(
        ..., alias="tableType"
    )
    confidence: Literal["high", "medium", "low"]

    @property
    def is_usable(self) -> bool:
        return self.has_table and self.confidence != "low"


# =============================================================================
# Structure (transcription without layout engine)
# =============================================================================

class StructureColumn(StagePayload):
    index: int
    label: Optional[str] = None


class StructureRow(StagePayload):
    index: int
    line_item: str = Field(..., alias="lineItem")
    values: List[str]

    @field_validator("values", mode="before")
    @classmethod
    def values_as_text(cls, v):
        if isinstance(v, list):
            return [_number_to_str(item) for item in v]
        return v


class StructurePayload(StagePayload):
    """Table transcribed by the model as exact strings."""

    columns: List[StructureColumn]
    rows: List[StructureRow]

    def mismatched_rows(self) -> List[int]:
        """Indices of rows whose value count differs from the column count."""
        expected = len(self.columns)
        return [row.index for row in self.rows if len(row.values) != expected]


# =============================================================================
# Classification
# =============================================================================

class ColumnClassification(StagePayload):
    index: int
    type: Literal["year", "quarter", "unknown"]
    year: Optional[str] = None

    @field_validator("year", mode="before")
    @classmethod
    def year_as_text(cls, v):
        return _number_to_str(v)

    @property
    def is_year(self) -> bool:
        return self.type == "year" and bool(self.year)


class RowClassification(StagePayload):
    index: int
    category: Literal["Revenue", "Expenses", "Profit", "Other"]


class ClassificationPayload(StagePayload):
    """Semantic labels for columns and rows, addressed by index."""

    columns: List[ColumnClassification]
    rows: List[RowClassification]

    def year_columns(self) -> List[ColumnClassification]:
        return [column for column in self.columns if column.is_year]

    def column(self, index: int) -> Optional[ColumnClassification]:
        for column in self.columns:
            if column.index == index:
                return column
        return None

    def row_category(self, index: int) -> Optional[str]:
        for row in self.rows:
            if row.index == index:
                return row.category
        return None


# =============================================================================
# Direct extraction (single call)
# =============================================================================

class DirectRecord(StagePayload):
    category: str
    sub_category: Optional[str] = Field(None, alias="subCategory")
    line_item: str = Field(..., alias="lineItem")
    year: str = Field(..., pattern=r"(?i)^(FY\s?\d{2,4}|\d{4})$")
    value: Union[float, str, None] = None
    unit: Optional[str] = None
    confidence: Literal["High", "Medium", "Low"]
    source_snippet: Optional[str] = Field(None, alias="sourceSnippet")

    @field_validator("year", mode="before")
    @classmethod
    def year_as_text(cls, v):
        return _number_to_str(v)


class DirectExtractionPayload(StagePayload):
    """Records transcribed by the model in one pass."""

    records: List[DirectRecord]
    currency_detected: Optional[str] = Field(None, alias="currencyDetected")
    years_detected: List[str] = Field(..., alias="yearsDetected")
    notes: Optional[str] = None

    @field_validator("years_detected", mode="before")
    @classmethod
    def years_as_text(cls, v):
        if isinstance(v, list):
            return [_number_to_str(item) for item in v]
        return v
