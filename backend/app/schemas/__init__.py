from .financials import (
    SheetClassification, CanonicalField, FinancialTimeSeries, DerivedMetrics,
    INCOME_FIELDS, BALANCE_FIELDS, FIELD_LABELS,
)
from .analysis import (
    AnalysisType, DocumentType, DocumentTypeValidation, FileValidationResult,
    QuestionValidationResult, AnalysisResponse, FollowUpRequest, FollowUpResponse,
    QuestionCategory, SuggestedQuestion, QuestionRequest, QuestionResponse,
)

__all__ = [
    "SheetClassification", "CanonicalField", "FinancialTimeSeries", "DerivedMetrics",
    "INCOME_FIELDS", "BALANCE_FIELDS", "FIELD_LABELS",
    "AnalysisType", "DocumentType", "DocumentTypeValidation", "FileValidationResult",
    "QuestionValidationResult", "AnalysisResponse", "FollowUpRequest", "FollowUpResponse",
    "QuestionCategory", "SuggestedQuestion", "QuestionRequest", "QuestionResponse",
]
