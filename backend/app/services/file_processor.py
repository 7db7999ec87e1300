# Standard library imports
import hashlib
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import List, Optional, Tuple

# Third-party imports
import pdfplumber
import pandas as pd

# Logging
import logging

logger = logging.getLogger(__name__)

from app.core.exceptions import WorkbookReadError
from app.services.financials_extractor import cell_text

SPREADSHEET_EXTENSIONS = {".xlsx", ".xls", ".csv"}

SCANNED_PDF_NOTE = (
    "Note: No text could be extracted from this PDF. It may contain scanned "
    "images rather than text. Please upload a text-based PDF or a spreadsheet."
)

FINGERPRINT_LENGTH = 20

Sheet = Tuple[str, List[List[object]]]


@dataclass
class ProcessedUpload:
    """An uploaded statement reduced to its sheets and prompt text"""
    file_name: str
    text: str
    fingerprint: str
    # Worksheets, or the tables found in a PDF
    sheets: List[Sheet] = field(default_factory=list)
    is_spreadsheet: bool = True


def _frame_to_rows(df: pd.DataFrame) -> List[List[object]]:
    # Drop fully empty rows and columns so labels and values line up
    df = df.dropna(how="all").dropna(axis=1, how="all")
    if df.empty:
        return []
    cleaned = df.astype(object).where(pd.notna(df), None)
    return [list(row) for row in cleaned.itertuples(index=False, name=None)]


def read_workbook(file_bytes: bytes, file_label: str) -> List[Sheet]:
    """Read every sheet of an Excel workbook (or a CSV) as raw rows.

    Sheets keep workbook order. Cells are numbers, strings or None.
    """
    suffix = Path(file_label).suffix.lower()
    try:
        if suffix == ".csv":
            frames = [(Path(file_label).stem or "Sheet1", pd.read_csv(BytesIO(file_bytes), header=None))]
        else:
            excel_file = pd.ExcelFile(BytesIO(file_bytes))
            frames = [
                (str(sheet_name), pd.read_excel(excel_file, sheet_name=sheet_name, header=None))
                for sheet_name in excel_file.sheet_names
            ]
    except Exception as e:
        logger.error(f"Failed to read workbook {file_label}: {str(e)}")
        raise WorkbookReadError(f"Could not read {file_label} as a spreadsheet: {e}") from e

    sheets = [(name, _frame_to_rows(df)) for name, df in frames]
    logger.info(f"Read {len(sheets)} sheet(s) from {file_label}")
    return sheets


def workbook_to_text(sheets: List[Sheet], file_label: str = "") -> str:
    """Flatten sheets into the plain text used for document-type checks and prompts."""
    text_content = f"Excel File: {file_label}\n" if file_label else ""
    for sheet_name, rows in sheets:
        text_content += f"=== SHEET: {sheet_name} ===\n"
        for row in rows:
            cells = [cell_text(cell) for cell in row]
            if any(cells):
                text_content += ", ".join(cells) + "\n"
        text_content += "\n"
    return text_content


def _format_table(table: list, page_num: int, table_num: int) -> str:
    rows = []
    for row in table:
        if row and any(cell and str(cell).strip() for cell in row):
            rows.append(" | ".join(str(cell).strip() if cell is not None else "" for cell in row))
    if not rows:
        return ""
    return f"TABLE {table_num} (Page {page_num}):\n" + "\n".join(rows) + "\n"


def read_pdf(file_bytes: bytes, file_label: str = "") -> Tuple[str, List[Sheet]]:
    """Extract page text and tables from a PDF using pdfplumber.

    Tables are also returned as sheets named after their page so the line-item
    extractor can read text-based PDF statements.
    """
    text_content = ""
    tables: List[Sheet] = []
    try:
        with pdfplumber.open(BytesIO(file_bytes)) as pdf:
            for page_num, page in enumerate(pdf.pages, 1):
                page_text = page.extract_text()
                if page_text:
                    text_content += f"\n=== PAGE {page_num} CONTENT ===\n{page_text}\n"
                for table_num, table in enumerate(page.extract_tables(), 1):
                    formatted = _format_table(table, page_num, table_num)
                    if formatted:
                        text_content += formatted
                        tables.append((f"Page {page_num} Table {table_num}", [list(row) for row in table if row]))
    except Exception as e:
        logger.error(f"pdfplumber failed to read {file_label}: {str(e)}")
        raise WorkbookReadError(f"Could not read {file_label} as a PDF: {e}") from e

    if not text_content.strip():
        logger.warning(f"No text extracted from {file_label}, likely a scanned PDF")
        return SCANNED_PDF_NOTE, tables

    logger.info(
        f"PDF text extraction completed. Total characters: {len(text_content)}, tables: {len(tables)}"
    )
    return text_content, tables


def create_file_fingerprint(
    file_bytes: bytes,
    file_name: str,
    size: Optional[int] = None,
    last_modified: Optional[str] = None,
) -> str:
    """Short sha256 fingerprint of the file content and its metadata."""
    digest = hashlib.sha256()
    digest.update(file_bytes)
    digest.update(f"{file_name}-{size if size is not None else len(file_bytes)}-{last_modified or ''}".encode("utf-8"))
    return digest.hexdigest()[:FINGERPRINT_LENGTH]


def process_upload(file_bytes: bytes, file_name: str, last_modified: Optional[str] = None) -> ProcessedUpload:
    """Read an uploaded spreadsheet or PDF into sheets, prompt text and a fingerprint."""
    suffix = Path(file_name).suffix.lower()
    fingerprint = create_file_fingerprint(file_bytes, file_name, len(file_bytes), last_modified)

    if suffix in SPREADSHEET_EXTENSIONS:
        sheets = read_workbook(file_bytes, file_name)
        return ProcessedUpload(
            file_name=file_name,
            text=workbook_to_text(sheets, file_name),
            fingerprint=fingerprint,
            sheets=sheets,
        )

    if suffix == ".pdf":
        text, tables = read_pdf(file_bytes, file_name)
        return ProcessedUpload(
            file_name=file_name,
            text=text,
            fingerprint=fingerprint,
            sheets=tables,
            is_spreadsheet=False,
        )

    raise WorkbookReadError(f"Unsupported file type: {suffix or file_name}")
