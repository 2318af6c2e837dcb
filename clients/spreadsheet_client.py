"""
Spreadsheet Client - Transcript Row Extraction Utility

Handles the academic system's transcript exports using openpyxl (.xlsx)
and the csv module (.csv). Both produce the same row dicts keyed by the
header row, which the grade service aggregates into courses.
"""

import csv
import io
import logging
from pathlib import Path
from typing import Any, Dict, List

import openpyxl

from config import SUPPORTED_TRANSCRIPT_EXTENSIONS

logger = logging.getLogger(__name__)


# ============================================================================
# CELL HELPERS
# ============================================================================

def _cell_value(value: Any) -> Any:
    """Blank cells become "", integral floats become ints (1.0 → 1)."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _is_blank(row: Dict[str, Any]) -> bool:
    return all(str(value).strip() == "" for value in row.values())


# ============================================================================
# FORMAT READERS
# ============================================================================

def read_xlsx_rows(data: bytes) -> List[Dict[str, Any]]:
    """
    Read the first worksheet of an .xlsx workbook into row dicts.

    The first row is the header. Missing cells default to "" and fully
    blank rows are skipped.

    Args:
        data: Raw workbook bytes

    Returns:
        One dict per data row, keyed by header text

    Raises:
        ValueError: If the bytes are not a readable workbook
    """
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
    except Exception as e:
        logger.error(f"❌ Workbook could not be opened: {e}")
        raise ValueError(f"Failed to read workbook: {e}")

    try:
        if not workbook.worksheets:
            logger.warning("⚠️  Workbook has no sheets")
            return []

        sheet = workbook.worksheets[0]
        values = sheet.iter_rows(values_only=True)
        header = next(values, None)
        if not header:
            return []

        columns = [str(cell).strip() if cell is not None else "" for cell in header]
        rows = []
        for raw in values:
            raw = tuple(raw) + ("",) * (len(columns) - len(raw))
            row = {
                column: _cell_value(value)
                for column, value in zip(columns, raw)
                if column
            }
            if not _is_blank(row):
                rows.append(row)
    finally:
        workbook.close()

    logger.debug(f"Sheet '{sheet.title}' yielded {len(rows)} row(s)")
    return rows


def read_csv_rows(data: bytes) -> List[Dict[str, Any]]:
    """Read CSV bytes (UTF-8 with or without BOM, else GBK) into row dicts."""
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError:
        text = data.decode("gbk", errors="replace")

    rows = []
    for raw in csv.DictReader(io.StringIO(text)):
        # Overflow cells land under the None key
        row = {column: value if value is not None else "" for column, value in raw.items() if column}
        if not _is_blank(row):
            rows.append(row)
    return rows


# ============================================================================
# ENTRY POINT
# ============================================================================

def read_transcript_rows(filename: str, data: bytes, max_bytes: int = 0) -> List[Dict[str, Any]]:
    """
    Read an uploaded transcript export into row dicts.

    Args:
        filename: Original file name; its extension picks the reader
        data: Raw file bytes
        max_bytes: Size ceiling, 0 for none

    Returns:
        Rows keyed by the export's column headers

    Raises:
        ValueError: If the extension is unsupported, the file is too
            large, or the contents cannot be parsed

    Example:
        >>> rows = read_transcript_rows("成绩.xlsx", uploaded.getvalue())
        >>> rows[0]["课程名称"]
        '高等数学A'
    """
    suffix = Path(filename).suffix.lower()
    if suffix not in SUPPORTED_TRANSCRIPT_EXTENSIONS:
        raise ValueError(f"Unsupported transcript format: {suffix or filename}")

    if max_bytes and len(data) > max_bytes:
        raise ValueError(f"Transcript file is too large ({len(data)} bytes)")

    logger.info(f"📄 Reading transcript export: {filename}")
    if suffix == ".xlsx":
        rows = read_xlsx_rows(data)
    else:
        rows = read_csv_rows(data)

    logger.info(f"✅ Read {len(rows)} rows from {filename}")
    return rows
