class CreditAnalyzerError(Exception):
    """Base class for errors raised by the analyzer services."""


class WorkbookReadError(CreditAnalyzerError):
    """The uploaded file could not be opened as a workbook or document."""


class ExtractionFailed(CreditAnalyzerError):
    """No usable years or non-zero values could be extracted from a workbook."""

    def __init__(self, file_label: str, sheets_scanned: int = 0):
        self.file_label = file_label
        self.sheets_scanned = sheets_scanned
        super().__init__(
            f"No financial line items could be extracted from {file_label} "
            f"({sheets_scanned} sheets scanned)"
        )


class LLMServiceError(CreditAnalyzerError):
    """The LLM call failed or is not configured."""


class LLMTimeoutError(LLMServiceError):
    """The LLM call did not finish within the configured timeout."""


class LLMResponseParseError(CreditAnalyzerError, ValueError):
    """The LLM reply did not contain a parseable JSON value."""


class InvalidRequestError(CreditAnalyzerError):
    """A follow-up or question request is missing data or failed validation."""


class DocumentTypeMismatch(CreditAnalyzerError):
    """The uploaded document is not the statement type the endpoint analyses."""

    def __init__(self, validation):
        # validation is a DocumentTypeValidation
        self.validation = validation
        super().__init__(validation.error or "Unexpected document type")
