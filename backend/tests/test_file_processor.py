import pytest

from app.core.exceptions import WorkbookReadError
from app.schemas.financials import CanonicalField
from app.services.file_processor import (
    FINGERPRINT_LENGTH,
    create_file_fingerprint,
    process_upload,
    read_workbook,
    workbook_to_text,
)
from app.services.financials_extractor import extract_financials


def test_read_workbook_keeps_sheet_order(workbook_from, balance_rows, income_rows):
    content = workbook_from({"Income": income_rows, "Balance": balance_rows, "Notes": [["Prepared by", "CPA"]]})

    sheets = read_workbook(content, "statements.xlsx")

    assert [name for name, _ in sheets] == ["Income", "Balance", "Notes"]
    income = dict(sheets)["Income"]
    assert income[1][0] == "Gross Farm Income"
    assert income[1][1:] == [1800000, 1950000, 2100000]


def test_empty_cells_become_none(balance_workbook):
    sheets = read_workbook(balance_workbook, "balance.xlsx")
    header = sheets[0][1][0]
    assert header[0] is None
    assert header[1:] == [2022, 2023, 2024]


def test_workbook_rows_feed_the_extractor(balance_workbook, clock):
    upload = process_upload(balance_workbook, "balance.xlsx")
    series = extract_financials(upload.sheets, upload.file_name, clock=clock)

    assert series.years == [2022, 2023, 2024]
    assert series.get(CanonicalField.CURRENT_ASSETS) == [335000.0, 375000.0, 402000.0]
    assert series.sources["total_assets"] == "Balance Sheet"


def test_process_upload_text(income_workbook):
    upload = process_upload(income_workbook, "income.xlsx")

    assert upload.is_spreadsheet
    assert upload.text.startswith("Excel File: income.xlsx\n=== SHEET: Income Statement ===")
    assert "Gross Farm Income, 1800000, 1950000, 2100000" in upload.text
    assert len(upload.fingerprint) == FINGERPRINT_LENGTH


def test_csv_upload():
    content = b"Description,2023,2024\nGross Farm Income,100,200\nNet Farm Income,\"1,500\",30\n"

    upload = process_upload(content, "farm_income.csv")

    assert [name for name, _ in upload.sheets] == ["farm_income"]
    series = extract_financials(upload.sheets, upload.file_name)
    assert series.years == [2023, 2024]
    assert series.get(CanonicalField.GROSS_INCOME) == [100.0, 200.0]
    assert series.get(CanonicalField.NET_FARM_INCOME) == [1500.0, 30.0]


def test_workbook_to_text_skips_blank_rows():
    text = workbook_to_text([("Sheet1", [["Cash", 10.0], [None, None]])])
    assert text == "=== SHEET: Sheet1 ===\nCash, 10\n\n"


def test_unreadable_workbook():
    with pytest.raises(WorkbookReadError):
        process_upload(b"definitely not a spreadsheet", "broken.xlsx")


def test_unreadable_pdf():
    with pytest.raises(WorkbookReadError):
        process_upload(b"not a pdf", "statement.pdf")


def test_unsupported_extension():
    with pytest.raises(WorkbookReadError):
        process_upload(b"hello", "notes.txt")


class TestFingerprint:
    def test_stable(self):
        assert create_file_fingerprint(b"abc", "a.xlsx", 3, "2024-01-01") == create_file_fingerprint(
            b"abc", "a.xlsx", 3, "2024-01-01"
        )

    def test_depends_on_content_and_metadata(self):
        base = create_file_fingerprint(b"abc", "a.xlsx")
        assert create_file_fingerprint(b"abd", "a.xlsx") != base
        assert create_file_fingerprint(b"abc", "b.xlsx") != base
        assert create_file_fingerprint(b"abc", "a.xlsx", last_modified="2024-01-01") != base

    def test_hex_prefix(self):
        fingerprint = create_file_fingerprint(b"abc", "a.xlsx")
        assert len(fingerprint) == FINGERPRINT_LENGTH
        int(fingerprint, 16)
