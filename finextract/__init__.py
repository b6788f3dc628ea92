"""
finextract - Financial Statement PDF Extraction.

Turns an income statement PDF into validated, year-indexed line-item
records. Numbers are read from the document; the model only labels structure.
"""

__version__ = "1.0.0"
