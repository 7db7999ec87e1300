import pytest

from app.schemas.analysis import DocumentType
from app.services.validation import (
    detect_document_type,
    sanitize_input,
    validate_document_type,
    validate_follow_up_question,
    validate_upload,
)

MB = 1024 * 1024

INCOME_TEXT = "Income statement: revenue, operating expenses and net income by year"
BALANCE_TEXT = (
    "Balance sheet with current assets, current liabilities, total assets, "
    "total liabilities and net worth"
)


class TestDocumentType:
    def test_income_statement(self):
        result = detect_document_type(INCOME_TEXT)
        assert result.detected_type == DocumentType.INCOME_STATEMENT
        assert result.confidence == 38.5
        assert "Income Statement: revenue" in result.indicators

    def test_balance_sheet(self):
        result = detect_document_type(BALANCE_TEXT)
        assert result.detected_type == DocumentType.BALANCE_SHEET
        assert result.confidence == 40.0

    def test_tie_goes_to_balance_sheet(self):
        assert detect_document_type("inventory and revenue").detected_type == DocumentType.BALANCE_SHEET

    def test_confidence_capped(self):
        text = (
            "cash flow from operating activities, investing activities, financing activities; "
            "net cash provided by operations and cash used in investing"
        )
        result = detect_document_type(text)
        assert result.detected_type == DocumentType.CASH_FLOW
        assert result.confidence == 95.0

    def test_no_indicators(self):
        result = detect_document_type("quarterly newsletter")
        assert result.detected_type == DocumentType.UNKNOWN
        assert result.confidence == 0.0
        assert not result.is_correct_type

    def test_expected_type_matches(self):
        result = validate_document_type(BALANCE_TEXT, DocumentType.BALANCE_SHEET)
        assert result.is_correct_type
        assert result.error is None

    def test_income_uploaded_as_balance(self):
        result = validate_document_type(INCOME_TEXT, DocumentType.BALANCE_SHEET)
        assert not result.is_correct_type
        assert result.detected_type == DocumentType.INCOME_STATEMENT
        assert result.error == "This appears to be an Income Statement, not a Balance Sheet."
        assert "Income Statement Analysis" in result.suggestion

    def test_unrecognised_document_gets_generic_message(self):
        result = validate_document_type("quarterly newsletter", DocumentType.BALANCE_SHEET)
        assert result.error == "This document does not appear to contain Balance Sheet data."


class TestValidateUpload:
    def test_valid_file(self):
        result = validate_upload("balance_2024.xlsx", 2048)
        assert result.is_valid
        assert result.warnings == []

    @pytest.mark.parametrize(
        "name, size, message",
        [
            (None, 10, "No file selected"),
            ("big.xlsx", 11 * MB, "exceeds the 10MB limit"),
            ("empty.csv", 0, "empty"),
            (".hidden.xlsx", 10, "Invalid file name"),
            ("report<1>.xlsx", 10, "Invalid file name"),
            ("setup.exe", 10, "Invalid file name"),
            ("statement", 10, "valid extension"),
            ("statement.docx", 10, 'Unsupported file type ".docx"'),
        ],
    )
    def test_rejected(self, name, size, message):
        result = validate_upload(name, size)
        assert not result.is_valid
        assert message in result.error

    def test_size_checked_before_name(self):
        assert "exceeds" in validate_upload("setup.exe", 11 * MB).error

    def test_warnings(self):
        result = validate_upload("a" * 120 + ".pdf", 6 * MB)
        assert result.is_valid
        assert len(result.warnings) == 2

    def test_extension_case_insensitive(self):
        assert validate_upload("BALANCE.XLSX", 100).is_valid


class TestFollowUpQuestion:
    def test_valid_financial_question(self):
        result = validate_follow_up_question("What is driving the current ratio decline?")
        assert result.is_valid
        assert result.warnings == {}

    @pytest.mark.parametrize(
        "question, message",
        [
            ("", "Please enter a question"),
            ("   ", "Please enter a question"),
            ("why", "at least 5 characters"),
            ("x" * 501, "less than 500"),
            ("<script>alert(1)</script> ratio?", "harmful"),
            ("Show me javascript:void(0) cash", "harmful"),
        ],
    )
    def test_invalid(self, question, message):
        result = validate_follow_up_question(question)
        assert not result.is_valid
        assert message in result.errors["question"]

    def test_off_topic_question_warns(self):
        result = validate_follow_up_question("Tell me about the weather please")
        assert result.is_valid
        assert "financial analysis" in result.warnings["question"]

    def test_long_question_warns(self):
        result = validate_follow_up_question("Explain the debt ratio " + "in detail " * 25)
        assert result.is_valid
        assert "truncated" in result.warnings["question"]


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("<script>alert(1)</script>What is the ratio?", "What is the ratio?"),
        ("<b>Equity</b> trend", "Equity trend"),
        ("  eval(x) margin  ", "x) margin"),
        (None, ""),
    ],
)
def test_sanitize_input(raw, expected):
    assert sanitize_input(raw) == expected


def test_sanitize_input_caps_length():
    assert len(sanitize_input("a" * 2000)) == 1000
