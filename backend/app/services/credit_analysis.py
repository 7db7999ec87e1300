import asyncio
import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from app.core.config import settings
from app.core.exceptions import DocumentTypeMismatch, ExtractionFailed, InvalidRequestError
from app.schemas.analysis import (
    AnalysisResponse,
    AnalysisType,
    DocumentType,
    DocumentTypeValidation,
    FollowUpRequest,
    FollowUpResponse,
    QuestionRequest,
    QuestionResponse,
)
from app.schemas.financials import DerivedMetrics, FinancialTimeSeries
from app.services.fallback_analysis import (
    build_balance_fallback,
    build_combined_fallback,
    build_income_fallback,
)
from app.services.file_processor import ProcessedUpload, create_file_fingerprint, process_upload
from app.services.financials_extractor import (
    SheetExtraction,
    extract_sheets,
    format_time_series_for_prompt,
    series_from_extractions,
)
from app.services.llm import LLMService, llm_service
from app.services.metrics import compute_derived_metrics
from app.services.prompts import build_balance_prompt, build_combined_prompt, build_income_prompt
from app.services.validation import (
    LOW_CONFIDENCE_WARNING,
    MIN_BALANCE_CONFIDENCE,
    sanitize_input,
    validate_document_type,
    validate_follow_up_question,
)

logger = logging.getLogger(__name__)

SAMPLE_DATA_WARNING = (
    "No figures could be extracted, so charts show SAMPLE data that does not "
    "come from the uploaded file."
)
PDF_NO_TABLES_WARNING = "No tables were found in the PDF, so charts are unavailable."


@dataclass
class StatementData:
    """One uploaded statement after reading and per-sheet extraction"""
    upload: ProcessedUpload
    extractions: List[SheetExtraction] = field(default_factory=list)


class CreditAnalysisService:
    """Runs upload -> extraction -> metrics -> LLM analysis for each statement type."""

    def __init__(self, llm: Optional[LLMService] = None, clock: Callable[[], date] = date.today):
        self.llm = llm if llm is not None else llm_service
        self.clock = clock

    def _read_statement(self, file_bytes: bytes, file_name: str) -> StatementData:
        upload = process_upload(file_bytes, file_name)
        extractions = extract_sheets(upload.sheets, file_name, clock=self.clock)
        return StatementData(upload=upload, extractions=extractions)

    async def read_statement(self, file_bytes: bytes, file_name: str) -> StatementData:
        """Read and extract one file in the default executor."""
        loop = asyncio.get_event_loop()
        return await loop.run_in_executor(None, self._read_statement, file_bytes, file_name)

    def _build_series(
        self,
        extractions: List[SheetExtraction],
        file_label: str,
        warnings: List[str],
        sample_label: Optional[str] = None,
        is_pdf: bool = False,
    ) -> Optional[FinancialTimeSeries]:
        try:
            series = series_from_extractions(
                extractions,
                file_label,
                clock=self.clock,
                sample_on_failure=settings.SAMPLE_DATA_ON_EXTRACTION_FAILURE,
                sample_label=sample_label,
            )
        except ExtractionFailed as e:
            logger.warning(str(e))
            warnings.append(
                PDF_NO_TABLES_WARNING if is_pdf and not extractions
                else f"{e} Charts are unavailable; the analysis uses the document text."
            )
            return None
        if series.is_sample:
            warnings.append(SAMPLE_DATA_WARNING)
        return series

    @staticmethod
    def _derive(series: Optional[FinancialTimeSeries], include_assessment: bool = False) -> Optional[DerivedMetrics]:
        if series is None:
            return None
        return compute_derived_metrics(series, include_assessment=include_assessment)

    async def analyze_income(self, file_bytes: bytes, file_name: str) -> AnalysisResponse:
        statement = await self.read_statement(file_bytes, file_name)
        upload = statement.upload
        warnings: List[str] = []

        detection = validate_document_type(upload.text, DocumentType.INCOME_STATEMENT)
        if detection.detected_type == DocumentType.BALANCE_SHEET:
            warnings.append(f"{detection.error} Income figures may be incomplete.")

        series = self._build_series(
            statement.extractions, file_name, warnings, is_pdf=not upload.is_spreadsheet
        )
        derived = self._derive(series)
        summary = format_time_series_for_prompt(series) if series else ""

        prompt = build_income_prompt(file_name, upload.fingerprint, upload.text, summary)
        result = await self.llm.generate_analysis(
            prompt,
            lambda notice: build_income_fallback(series, derived, notice),
            purpose="income analysis",
        )
        if result.notice:
            warnings.append(result.notice)

        return AnalysisResponse(
            analysis=result.analysis,
            metrics=series,
            derived_metrics=derived,
            data_hash=upload.fingerprint,
            file_name=file_name,
            document_type=detection.detected_type,
            confidence=detection.confidence,
            warnings=warnings,
            used_fallback_analysis=result.used_fallback,
        )

    def _check_balance_sheet(self, text: str, warnings: List[str]) -> DocumentTypeValidation:
        detection = validate_document_type(text, DocumentType.BALANCE_SHEET)
        if not detection.is_correct_type:
            raise DocumentTypeMismatch(detection)
        if detection.confidence < MIN_BALANCE_CONFIDENCE:
            raise DocumentTypeMismatch(detection.model_copy(update={
                "is_correct_type": False,
                "error": "Document does not contain sufficient Balance Sheet indicators.",
                "suggestion": "Please ensure the document contains assets, liabilities and equity.",
            }))
        if detection.confidence < LOW_CONFIDENCE_WARNING:
            warnings.append(
                f"Document appears to be a balance sheet but with low confidence "
                f"({detection.confidence:.1f}%). Analysis may be limited."
            )
        return detection

    async def analyze_balance(self, file_bytes: bytes, file_name: str) -> AnalysisResponse:
        statement = await self.read_statement(file_bytes, file_name)
        upload = statement.upload
        warnings: List[str] = []

        detection = self._check_balance_sheet(upload.text, warnings)

        series = self._build_series(
            statement.extractions, file_name, warnings, is_pdf=not upload.is_spreadsheet
        )
        derived = self._derive(series)
        summary = format_time_series_for_prompt(series) if series else ""

        prompt = build_balance_prompt(file_name, upload.fingerprint, upload.text, summary)
        result = await self.llm.generate_analysis(
            prompt,
            lambda notice: build_balance_fallback(series, derived, notice),
            purpose="balance sheet analysis",
        )
        if result.notice:
            warnings.append(result.notice)

        return AnalysisResponse(
            analysis=result.analysis,
            metrics=series,
            derived_metrics=derived,
            data_hash=upload.fingerprint,
            file_name=file_name,
            document_type=detection.detected_type,
            confidence=detection.confidence,
            warnings=warnings,
            used_fallback_analysis=result.used_fallback,
        )

    async def analyze_combined(
        self,
        income_bytes: bytes,
        income_name: str,
        balance_bytes: bytes,
        balance_name: str,
    ) -> AnalysisResponse:
        """Analyse an income statement and a balance sheet together.

        Both files are read concurrently; income sheets are merged before
        balance sheets, so a field present in both comes from the balance file.
        """
        income, balance = await asyncio.gather(
            self.read_statement(income_bytes, income_name),
            self.read_statement(balance_bytes, balance_name),
        )
        warnings: List[str] = []

        income_check = validate_document_type(income.upload.text, DocumentType.INCOME_STATEMENT)
        if income_check.detected_type == DocumentType.BALANCE_SHEET:
            warnings.append(f"Income file: {income_check.error}")
        balance_check = validate_document_type(balance.upload.text, DocumentType.BALANCE_SHEET)
        if balance_check.detected_type == DocumentType.INCOME_STATEMENT:
            warnings.append(f"Balance file: {balance_check.error}")

        combined_label = f"{income_name} & {balance_name}"
        series = self._build_series(
            income.extractions + balance.extractions,
            combined_label,
            warnings,
            sample_label="",
        )
        derived = self._derive(series, include_assessment=True)
        summary = format_time_series_for_prompt(series) if series else ""

        data_hash = create_file_fingerprint(
            f"{income.upload.fingerprint}:{balance.upload.fingerprint}".encode("utf-8"), combined_label
        )
        prompt = build_combined_prompt(
            income_name,
            balance_name,
            data_hash,
            income.upload.text,
            balance.upload.text,
            summary,
            derived.assessment if derived else None,
        )
        result = await self.llm.generate_analysis(
            prompt,
            lambda notice: build_combined_fallback(series, derived, notice),
            purpose="combined analysis",
        )
        if result.notice:
            warnings.append(result.notice)

        return AnalysisResponse(
            analysis=result.analysis,
            metrics=series,
            derived_metrics=derived,
            data_hash=data_hash,
            file_name=combined_label,
            warnings=warnings,
            used_fallback_analysis=result.used_fallback,
        )

    @staticmethod
    def _check_analysis_present(analysis: Any) -> None:
        if not analysis:
            raise InvalidRequestError(
                "No analysis data provided. Please ensure the analysis is complete "
                "before asking follow-up questions."
            )
        if isinstance(analysis, dict) and not analysis.get("executiveSummary") and not analysis.get("sections"):
            raise InvalidRequestError(
                "Analysis data appears to be incomplete. Please re-run the analysis and try again."
            )

    async def answer_follow_up(self, analysis_type: AnalysisType, request: FollowUpRequest) -> FollowUpResponse:
        validation = validate_follow_up_question(request.question)
        if not validation.is_valid:
            raise InvalidRequestError(validation.errors.get("question", "Invalid question"))
        self._check_analysis_present(request.analysis)

        question = sanitize_input(request.question)
        file_names = [name for name in (request.file_name, request.balance_file_name) if name]
        logger.info(
            f"Follow-up ({analysis_type.value}) for {', '.join(file_names) or 'unnamed files'}, "
            f"hash: {request.data_hash}"
        )
        answer, used_fallback = await self.llm.answer_follow_up(
            analysis_type, question, request.analysis, request.metrics, file_names
        )
        warnings: Dict[str, str] = dict(validation.warnings)
        if used_fallback:
            warnings["service"] = "AI follow-up answers are unavailable right now"
        return FollowUpResponse(answer=answer, warnings=warnings)

    async def suggest_questions(self, request: QuestionRequest) -> QuestionResponse:
        if not request.analysis:
            raise InvalidRequestError("Analysis data is required")
        count = max(1, min(request.requested_count or settings.SUGGESTED_QUESTION_COUNT, 10))
        questions, used_fallback, error = await self.llm.generate_questions(request.analysis, count)
        return QuestionResponse(questions=questions, used_fallback=used_fallback, error=error)


# Global instance
credit_analysis_service = CreditAnalysisService()
