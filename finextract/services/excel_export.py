"""
Excel export for extraction results.

Writes a two-sheet workbook: a Summary sheet with run metadata and a
Financials sheet with the pivoted line items.
"""

import io
from datetime import datetime
from typing import Optional

import structlog
from openpyxl import Workbook
from openpyxl.styles import Font
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from finextract.engine.models import ExtractionResult
from finextract.services.pivot import pivot_records

logger = structlog.get_logger(__name__)

EXPORT_FILENAME = "Extracted_Financials.xlsx"

FIXED_HEADERS = ["Particulars", "Category", "SubCategory", "Unit", "Confidence"]


class ExcelExporter:
    """Builds the export workbook."""

    HEADER_FONT = Font(bold=True)

    def __init__(self, model_name: str = "Gemini 1.5 Flash (Vision)"):
        self.model_name = model_name

    def build_workbook(
        self,
        result: ExtractionResult,
        filename: Optional[str] = None,
        extracted_at: Optional[datetime] = None,
    ) -> Workbook:
        """
        Build the workbook for a result.

        Args:
            result: Extraction result to export.
            filename: Source PDF name for the summary sheet.
            extracted_at: Extraction timestamp (defaults to now).

        Returns:
            openpyxl Workbook with "Summary" and "Financials" sheets.
        """
        wb = Workbook()
        summary = wb.active
        summary.title = "Summary"
        self._write_summary(summary, result, filename, extracted_at or datetime.now())

        financials = wb.create_sheet("Financials")
        self._write_financials(financials, result)

        logger.info("Export workbook built", records=len(result.records), years=result.years_detected)
        return wb

    def to_bytes(self, result: ExtractionResult, filename: Optional[str] = None) -> bytes:
        buffer = io.BytesIO()
        self.build_workbook(result, filename=filename).save(buffer)
        return buffer.getvalue()

    def _write_summary(
        self,
        ws: Worksheet,
        result: ExtractionResult,
        filename: Optional[str],
        extracted_at: datetime,
    ) -> None:
        ws.append(["Key", "Value"])
        ws.append(["File Name", filename or "Unknown"])
        ws.append(["Extraction Date", extracted_at.strftime("%Y-%m-%d")])
        ws.append(["AI Model", self.model_name])
        ws.append(["Confidence Score", "Based on AI Analysis"])
        ws.append(["Years Detected", ", ".join(result.years_detected) or "N/A"])
        if result.notes:
            ws.append(["Notes", result.notes])
        self._style_header(ws)

    def _write_financials(self, ws: Worksheet, result: ExtractionResult) -> None:
        table = pivot_records(result)
        ws.append(FIXED_HEADERS + table.years)

        for row in table.rows:
            ws.append(
                [row.line_item, row.category, row.sub_category or "", row.unit or "", row.confidence]
                + [row.values.get(year) for year in table.years]
            )
        self._style_header(ws)

        ws.column_dimensions["A"].width = 40
        for col_idx in range(2, len(FIXED_HEADERS) + len(table.years) + 1):
            ws.column_dimensions[get_column_letter(col_idx)].width = 14

    def _style_header(self, ws: Worksheet) -> None:
        for cell in ws[1]:
            cell.font = self.HEADER_FONT


def get_excel_exporter(model_name: Optional[str] = None) -> ExcelExporter:
    """Get ExcelExporter instance."""
    return ExcelExporter(model_name) if model_name else ExcelExporter()
