# data_loader.py — Upload reading
# Hands uploaded sheets to pandas and returns null-filled records
"""
data_loader.py — Spreadsheet Upload Adapter

Production implementation for safe upload loading with:
- Extension checks (.csv, .xlsx, .xls)
- Size limits
- CSV encoding fallbacks
- First-sheet reading for workbooks

Parsing itself is pandas' job (openpyxl for .xlsx, xlrd for .xls); cells
keep their raw text and only empty cells become None.
"""

from __future__ import annotations

import io
import logging
import zipfile
from typing import Any, BinaryIO

import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException
from xlrd import XLRDError

from tools.dataset import records_from_frame


logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

MAX_FILE_SIZE_MB = 10
MAX_FILE_SIZE_BYTES = MAX_FILE_SIZE_MB * 1024 * 1024
ALLOWED_EXTENSIONS = {".csv", ".xlsx", ".xls"}
# latin-1 decodes any byte sequence, so it goes last
SUPPORTED_ENCODINGS = ["utf-8", "cp1252", "latin-1"]
# Workbook readers per extension
EXCEL_ENGINES = {".xlsx": "openpyxl", ".xls": "xlrd"}
# Only empty cells are null; "NA", "null" etc. stay text
NA_VALUES = [""]


# =============================================================================
# FILE VALIDATION
# =============================================================================

def file_extension(filename: str) -> str:
    return "." + filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


def validate_file_extension(filename: str) -> tuple[bool, str | None]:
    """
    Validate that file has an allowed extension.

    Returns:
        (is_valid, error_message)
    """
    if not filename:
        return False, "No filename provided"

    ext = file_extension(filename)
    if ext not in ALLOWED_EXTENSIONS:
        return False, f"Invalid file type: {ext}. Allowed: {', '.join(sorted(ALLOWED_EXTENSIONS))}"

    return True, None


# =============================================================================
# DATA LOADING
# =============================================================================

def _read_bytes(file: BinaryIO | bytes | str) -> bytes:
    if isinstance(file, str):
        with open(file, "rb") as f:
            return f.read()
    if isinstance(file, bytes):
        return file
    raw = file.read()
    if hasattr(file, "seek"):
        file.seek(0)
    return raw


def _read_csv(raw_bytes: bytes) -> tuple[pd.DataFrame | None, str | None]:
    last_error = None
    for encoding in SUPPORTED_ENCODINGS:
        try:
            text_io = io.StringIO(raw_bytes.decode(encoding))
            return pd.read_csv(
                text_io,
                dtype=object,
                keep_default_na=False,
                na_values=NA_VALUES,
                low_memory=False,
            ), None
        except UnicodeDecodeError:
            last_error = f"Encoding {encoding} failed"
        except pd.errors.EmptyDataError:
            return None, "CSV file contains no data"
        except pd.errors.ParserError as e:
            last_error = f"CSV parsing error: {str(e)}"
    return None, last_error or "Failed to parse CSV with any supported encoding"


def safe_load_records(
    file: BinaryIO | bytes | str,
    filename: str = "upload.xlsx",
) -> tuple[list[dict[str, Any]] | None, str | None]:
    """
    Load an uploaded sheet into records.

    Args:
        file: File-like object, bytes, or file path
        filename: Original filename (selects the reader)

    Returns:
        (records, None) on success, (None, error_message) on failure.
        An empty sheet yields ([], None); rejecting it is the caller's call.
    """
    is_valid, ext_error = validate_file_extension(filename)
    if not is_valid:
        return None, ext_error

    try:
        raw_bytes = _read_bytes(file)
    except OSError as e:
        return None, f"Failed to read file: {str(e)}"

    if len(raw_bytes) > MAX_FILE_SIZE_BYTES:
        return None, f"File exceeds {MAX_FILE_SIZE_MB}MB limit ({len(raw_bytes) / 1024 / 1024:.1f}MB)"

    if len(raw_bytes) == 0:
        return [], None

    if file_extension(filename) == ".csv":
        df, error = _read_csv(raw_bytes)
        if error:
            return None, error
    else:
        try:
            df = pd.read_excel(
                io.BytesIO(raw_bytes),
                sheet_name=0,
                engine=EXCEL_ENGINES[file_extension(filename)],
                dtype=object,
                keep_default_na=False,
                na_values=NA_VALUES,
            )
        except (ValueError, ImportError, zipfile.BadZipFile, InvalidFileException, XLRDError) as e:
            logger.warning("Workbook %s could not be read: %s", filename, e)
            return None, f"Workbook could not be read: {str(e)}"

    df = df.dropna(how="all")
    logger.info("Loaded %s: %d rows x %d columns", filename, len(df), len(df.columns))
    return records_from_frame(df), None
