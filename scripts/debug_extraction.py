"""
Diagnostic script for PDF extraction.

Checks, without calling the model:
1. Text layer presence (native vs scanned).
2. Layout grid built from page 1 with current settings.
3. Which pipeline variant AUTO mode would pick.
"""
import argparse
import sys
from pathlib import Path

import structlog

# Setup simple logging
structlog.configure(
    processors=[
        structlog.processors.JSONRenderer(sort_keys=True)
    ]
)

from finextract.config import get_settings
from finextract.engine.layout import get_layout_engine, render_grid
from finextract.exceptions import PdfProcessingError
from finextract.services.pdf_processor import get_pdf_processor


def diagnose_pdf(pdf_path: Path) -> int:
    print(f"\n--- Diagnosing: {pdf_path.name} ---")

    if not pdf_path.exists():
        print(f"File not found: {pdf_path}")
        return 1

    settings = get_settings()

    # 1. Render pages and read the text layer
    print("Rendering pages...")
    try:
        document = get_pdf_processor(settings).process(pdf_path.read_bytes())
    except PdfProcessingError as e:
        print(f"  Failed: {e.message}")
        return 1

    print(f"  Pages in document: {document.page_count}, rendered: {len(document.pages)}")
    for page in document.pages:
        print(f"  Page {page.page_num}: {len(page.tokens)} tokens, image {len(page.image)} bytes (base64)")

    page_one = [token for token in document.tokens if token.page == 1]
    if not page_one:
        print("  -> SCANNED or no text layer on page 1 (AUTO mode uses the structure variant)")
        return 0
    print("  -> NATIVE text detected (AUTO mode uses the grid variant)")

    # 2. Layout grid
    print("\nLayout grid (page 1)...")
    grid = get_layout_engine(settings).build_grid(page_one)
    print(f"  Rows: {grid.row_count}, Columns: {grid.column_count}")
    print(f"  Column centroids: {[round(x, 1) for x in grid.columns]}")
    print()
    print(render_grid(grid))
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Inspect a PDF's text layer and layout grid.")
    parser.add_argument("pdf", type=Path, help="Path to the PDF file")
    args = parser.parse_args()
    return diagnose_pdf(args.pdf)


if __name__ == "__main__":
    sys.exit(main())
