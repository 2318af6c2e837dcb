"""
Utility Clients Module

This module contains low-level clients for file processing. These are pure
utility functions that don't contain business logic.

Clients:
- Spreadsheet Client: Read transcript exports (.xlsx via openpyxl, .csv)
"""

from .spreadsheet_client import (
    read_transcript_rows,
    read_xlsx_rows,
    read_csv_rows,
)

__all__ = [
    "read_transcript_rows",
    "read_xlsx_rows",
    "read_csv_rows",
]
