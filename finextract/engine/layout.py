"""
Layout engine for the extraction engine.

Converts positioned text tokens from one page into a row/column grid.
Deterministic: the result depends only on token geometry and arrival order.
"""

from typing import Iterable, List, Optional, Sequence

import structlog

from finextract.engine.models import Grid, GridCell, GridRow, RowGrouping, TextToken

logger = structlog.get_logger(__name__)


class LayoutEngine:
    """
    Geometric table reconstruction.

    Steps:
    1. Group tokens into rows by y proximity
    2. Order rows top-down (descending y)
    3. Cluster all x positions into global columns
    4. Align each cell to its closest column within tolerance
    """

    ROW_TOLERANCE = 5.0
    COLUMN_TOLERANCE = 20.0
    MATCH_TOLERANCE = 30.0

    def __init__(
        self,
        row_tolerance: float = ROW_TOLERANCE,
        column_tolerance: float = COLUMN_TOLERANCE,
        match_tolerance: float = MATCH_TOLERANCE,
        row_grouping: RowGrouping = RowGrouping.FIRST_MATCH,
    ):
        self.row_tolerance = row_tolerance
        self.column_tolerance = column_tolerance
        self.match_tolerance = match_tolerance
        self.row_grouping = RowGrouping(row_grouping)

    def build_grid(self, tokens: Iterable[TextToken]) -> Grid:
        """
        Build a grid from the tokens of a single page.

        Args:
            tokens: Positioned text tokens, in reading order.

        Returns:
            Grid with rows sorted top-down and columns in ascending x.
        """
        rows = self._group_rows(tokens)
        rows.sort(key=lambda r: r.y, reverse=True)

        columns = self._detect_columns(rows)
        self._align_cells(rows, columns)

        logger.debug(
            "Grid built",
            rows=len(rows),
            columns=len(columns),
            grouping=self.row_grouping.value,
        )
        return Grid(rows=rows, columns=columns)

    def _group_rows(self, tokens: Iterable[TextToken]) -> List[GridRow]:
        rows: List[GridRow] = []
        for token in tokens:
            row = self._find_row(rows, token.y)
            cell = GridCell(x=token.x, text=token.text)
            if row is None:
                rows.append(GridRow(y=token.y, cells=[cell]))
            else:
                row.cells.append(cell)
        return rows

    def _find_row(self, rows: Sequence[GridRow], y: float) -> Optional[GridRow]:
        """Pick the row a token at y joins, or None for a new row."""
        if self.row_grouping is RowGrouping.NEAREST_MATCH:
            best: Optional[GridRow] = None
            best_diff = float("inf")
            for row in rows:
                diff = abs(row.y - y)
                if diff < self.row_tolerance and diff < best_diff:
                    best, best_diff = row, diff
            return best

        # First match within tolerance; arrival order decides ties at row boundaries
        for row in rows:
            if abs(row.y - y) < self.row_tolerance:
                return row
        return None

    def _detect_columns(self, rows: Sequence[GridRow]) -> List[float]:
        xs = sorted(cell.x for row in rows for cell in row.cells)
        if not xs:
            return []

        columns: List[float] = []
        cluster_sum = xs[0]
        cluster_count = 1
        for previous, current in zip(xs, xs[1:]):
            if current - previous > self.column_tolerance:
                columns.append(cluster_sum / cluster_count)
                cluster_sum = current
                cluster_count = 1
            else:
                cluster_sum += current
                cluster_count += 1
        columns.append(cluster_sum / cluster_count)
        return columns

    def _align_cells(self, rows: Sequence[GridRow], columns: Sequence[float]) -> None:
        for row in rows:
            row.cells.sort(key=lambda c: c.x)
            for cell in row.cells:
                best_index = None
                best_diff = float("inf")
                for index, column_x in enumerate(columns):
                    diff = abs(cell.x - column_x)
                    if diff < best_diff and diff < self.match_tolerance:
                        best_index, best_diff = index, diff
                cell.column_index = best_index


def render_grid(grid: Grid) -> str:
    """
    Render a grid as a dense text matrix for prompt context.

    One line per row, prefixed with the row index, one slot per global
    column. Empty slots are left blank; cells that share a slot are joined
    with a space. Unaligned cells are omitted, except the row's first cell:
    it is the line-item label, so an unaligned one is shown at the front of
    slot 0.
    """
    if not grid.rows:
        return "(empty grid)"

    lines = ["row | " + " | ".join(f"col {i}" for i in range(grid.column_count))]
    for row_index, row in enumerate(grid.rows):
        slots = [""] * grid.column_count
        for cell in row.cells:
            if cell.column_index is None:
                continue
            text = cell.text.strip()
            current = slots[cell.column_index]
            slots[cell.column_index] = f"{current} {text}".strip() if current else text
        if row.cells and row.cells[0].column_index is None and slots:
            label = row.cells[0].text.strip()
            slots[0] = f"{label} {slots[0]}".strip()
        lines.append(f"{row_index} | " + " | ".join(slots))
    return "\n".join(lines)


def get_layout_engine(settings=None) -> LayoutEngine:
    """Get a LayoutEngine configured from settings (defaults when omitted)."""
    if settings is None:
        return LayoutEngine()
    return LayoutEngine(
        row_tolerance=settings.row_tolerance,
        column_tolerance=settings.column_tolerance,
        match_tolerance=settings.match_tolerance,
        row_grouping=RowGrouping(settings.row_grouping),
    )
