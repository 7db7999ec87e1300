import logging
import re
from pathlib import Path
from typing import Dict, List, Optional

from app.core.config import settings
from app.schemas.analysis import (
    DocumentType,
    DocumentTypeValidation,
    FileValidationResult,
    QuestionValidationResult,
)

logger = logging.getLogger(__name__)

BALANCE_SHEET_INDICATORS = [
    "balance sheet",
    "current assets",
    "current liabilities",
    "total assets",
    "total liabilities",
    "shareholders equity",
    "stockholders equity",
    "retained earnings",
    "accounts receivable",
    "inventory",
    "property plant equipment",
    "long-term debt",
    "term debt",
    "working capital",
    "net worth",
]

INCOME_STATEMENT_INDICATORS = [
    "income statement",
    "profit and loss",
    "revenue",
    "sales",
    "gross income",
    "farm income",
    "net income",
    "gross profit",
    "operating income",
    "cost of goods sold",
    "operating expenses",
    "expenses",
    "earnings",
]

CASH_FLOW_INDICATORS = [
    "cash flow",
    "operating activities",
    "investing activities",
    "financing activities",
    "net cash",
    "cash provided by",
    "cash used in",
]

INDICATOR_SETS = [
    (DocumentType.BALANCE_SHEET, "Balance Sheet", BALANCE_SHEET_INDICATORS),
    (DocumentType.INCOME_STATEMENT, "Income Statement", INCOME_STATEMENT_INDICATORS),
    (DocumentType.CASH_FLOW, "Cash Flow", CASH_FLOW_INDICATORS),
]

MAX_DETECTION_CONFIDENCE = 95.0
# Balance uploads below this confidence are rejected, below the warning
# level they are analysed with a warning
MIN_BALANCE_CONFIDENCE = 30.0
LOW_CONFIDENCE_WARNING = 60.0

MAX_FILE_NAME_LENGTH = 100

SUSPICIOUS_NAME_PATTERNS = [
    re.compile(r"^\."),
    re.compile(r'[<>:"|?*]'),
    re.compile(r"\.(exe|bat|cmd|scr|vbs|js|sh|ps1)$", re.IGNORECASE),
]

MIN_QUESTION_LENGTH = 5
MAX_QUESTION_LENGTH = 500
LONG_QUESTION_LENGTH = 200
MAX_SANITIZED_LENGTH = 1000

HARMFUL_QUESTION_PATTERNS = [
    re.compile(r"<script", re.IGNORECASE),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"on\w+\s*=", re.IGNORECASE),
    re.compile(r"\beval\s*\(", re.IGNORECASE),
    re.compile(r"\bexec\s*\(", re.IGNORECASE),
    re.compile(r"<iframe", re.IGNORECASE),
    re.compile(r"<object", re.IGNORECASE),
    re.compile(r"<embed", re.IGNORECASE),
]

FINANCIAL_KEYWORDS = [
    "ratio", "income", "expense", "asset", "liabilit", "equity", "cash",
    "debt", "profit", "loss", "revenue", "cost", "balance", "statement",
    "financial", "analysis", "trend", "performance", "risk", "credit",
    "loan", "investment", "margin", "farm", "collateral", "capital",
]

_MISMATCH_MESSAGES: Dict[DocumentType, Dict[DocumentType, tuple]] = {
    DocumentType.BALANCE_SHEET: {
        DocumentType.INCOME_STATEMENT: (
            "This appears to be an Income Statement, not a Balance Sheet.",
            "Please use the Income Statement Analysis for this document, or upload "
            "a Balance Sheet with assets, liabilities and equity.",
        ),
        DocumentType.CASH_FLOW: (
            "This appears to be a Cash Flow Statement, not a Balance Sheet.",
            "Please upload a Balance Sheet with assets, liabilities and equity.",
        ),
    },
    DocumentType.INCOME_STATEMENT: {
        DocumentType.BALANCE_SHEET: (
            "This appears to be a Balance Sheet, not an Income Statement.",
            "Please use the Balance Sheet Analysis for this document, or upload "
            "an Income Statement instead.",
        ),
    },
}

_GENERIC_MISMATCH = {
    DocumentType.BALANCE_SHEET: (
        "This document does not appear to contain Balance Sheet data.",
        "Please upload a document with current assets, current liabilities, total "
        "assets, total liabilities and owner equity.",
    ),
    DocumentType.INCOME_STATEMENT: (
        "This document does not appear to contain Income Statement data.",
        "Please upload a document with revenue, expenses and net income.",
    ),
    DocumentType.CASH_FLOW: (
        "This document does not appear to contain Cash Flow data.",
        "Please upload a document with operating, investing and financing activities.",
    ),
}


def detect_document_type(content: str) -> DocumentTypeValidation:
    """Score statement-type keywords in ``content``.

    The highest score wins, ties going to the earlier type (balance sheet,
    then income statement). Confidence is the share of that type's keywords
    found, capped at 95.
    """
    content_lower = (content or "").lower()
    best_type = DocumentType.UNKNOWN
    best_score = 0
    best_total = 1
    indicators: List[str] = []

    for doc_type, label, keywords in INDICATOR_SETS:
        found = [keyword for keyword in keywords if keyword in content_lower]
        indicators.extend(f"{label}: {keyword}" for keyword in found)
        if len(found) > best_score:
            best_type, best_score, best_total = doc_type, len(found), len(keywords)

    if best_score == 0:
        return DocumentTypeValidation(
            is_correct_type=False,
            detected_type=DocumentType.UNKNOWN,
            confidence=0.0,
            indicators=["No financial statement indicators found"],
        )

    confidence = round(min(best_score / best_total * 100, MAX_DETECTION_CONFIDENCE), 1)
    return DocumentTypeValidation(
        is_correct_type=True,
        detected_type=best_type,
        confidence=confidence,
        indicators=indicators,
    )


def validate_document_type(content: str, expected_type: DocumentType) -> DocumentTypeValidation:
    """Detect the statement type and compare it with the expected one."""
    detection = detect_document_type(content)
    if detection.detected_type == expected_type:
        return detection

    error, suggestion = _MISMATCH_MESSAGES.get(expected_type, {}).get(
        detection.detected_type, _GENERIC_MISMATCH[expected_type]
    )
    logger.info(
        f"Document type mismatch: expected {expected_type.value}, "
        f"detected {detection.detected_type.value} ({detection.confidence}%)"
    )
    return detection.model_copy(
        update={"is_correct_type": False, "error": error, "suggestion": suggestion}
    )


def validate_upload(file_name: Optional[str], size: int) -> FileValidationResult:
    """Check an uploaded statement's name, extension and size."""
    if not file_name:
        return FileValidationResult(is_valid=False, error="No file selected")

    if size > settings.MAX_FILE_SIZE:
        limit_mb = settings.MAX_FILE_SIZE / 1024 / 1024
        return FileValidationResult(
            is_valid=False,
            error=f"File size ({size / 1024 / 1024:.2f}MB) exceeds the {limit_mb:.0f}MB limit",
        )

    if size == 0:
        return FileValidationResult(is_valid=False, error="File appears to be empty")

    if any(pattern.search(file_name) for pattern in SUSPICIOUS_NAME_PATTERNS):
        return FileValidationResult(
            is_valid=False,
            error="Invalid file name detected. Please use standard file names for financial documents.",
        )

    extension = Path(file_name).suffix.lower()
    if not extension:
        return FileValidationResult(is_valid=False, error="File must have a valid extension")

    if extension not in settings.ALLOWED_EXTENSIONS:
        allowed = ", ".join(settings.ALLOWED_EXTENSIONS)
        return FileValidationResult(
            is_valid=False,
            error=f'Unsupported file type "{extension}". Please upload {allowed} files only.',
        )

    warnings = []
    if len(file_name) > MAX_FILE_NAME_LENGTH:
        warnings.append("File name is very long and may be truncated in reports")
    if size > settings.LARGE_FILE_WARNING_SIZE:
        warnings.append("Large file detected. Processing may take longer than usual.")

    return FileValidationResult(is_valid=True, warnings=warnings)


def validate_follow_up_question(question: Optional[str]) -> QuestionValidationResult:
    errors: Dict[str, str] = {}
    warnings: Dict[str, str] = {}
    stripped = (question or "").strip()

    if not stripped:
        errors["question"] = "Please enter a question"
    elif len(stripped) < MIN_QUESTION_LENGTH:
        errors["question"] = f"Question must be at least {MIN_QUESTION_LENGTH} characters long"
    elif len(question) > MAX_QUESTION_LENGTH:
        errors["question"] = f"Question must be less than {MAX_QUESTION_LENGTH} characters"
    elif any(pattern.search(question) for pattern in HARMFUL_QUESTION_PATTERNS):
        errors["question"] = "Question contains invalid or potentially harmful content"

    if errors:
        return QuestionValidationResult(is_valid=False, errors=errors, warnings=warnings)

    if len(question) > LONG_QUESTION_LENGTH:
        warnings["question"] = "Long questions may receive truncated responses"

    lowered = question.lower()
    if not any(keyword in lowered for keyword in FINANCIAL_KEYWORDS):
        warnings["question"] = "Consider asking questions related to financial analysis for better results"

    return QuestionValidationResult(is_valid=True, errors=errors, warnings=warnings)


_SCRIPT_BLOCK_RE = re.compile(r"<script\b[^<]*(?:(?!</script>)<[^<]*)*</script>", re.IGNORECASE)
_HTML_TAG_RE = re.compile(r"<[^>]*>")
_JS_PROTOCOL_RE = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER_RE = re.compile(r"on\w+\s*=", re.IGNORECASE)
_CALL_RE = re.compile(r"\b(?:eval|exec)\s*\(", re.IGNORECASE)


def sanitize_input(text: Optional[str]) -> str:
    """Strip markup and script fragments from user text and cap its length."""
    if not text:
        return ""
    cleaned = _SCRIPT_BLOCK_RE.sub("", text)
    cleaned = _HTML_TAG_RE.sub("", cleaned)
    cleaned = _JS_PROTOCOL_RE.sub("", cleaned)
    cleaned = _EVENT_HANDLER_RE.sub("", cleaned)
    cleaned = _CALL_RE.sub("", cleaned)
    return cleaned.strip()[:MAX_SANITIZED_LENGTH]
