from enum import Enum
from typing import Any, Dict, List, Optional
from pydantic import BaseModel, Field

from app.schemas.financials import DerivedMetrics, FinancialTimeSeries


class AnalysisType(str, Enum):
    INCOME = "income"
    BALANCE = "balance"
    COMBINED = "combined"
    GENERAL = "general"


class DocumentType(str, Enum):
    BALANCE_SHEET = "balance_sheet"
    INCOME_STATEMENT = "income_statement"
    CASH_FLOW = "cash_flow"
    UNKNOWN = "unknown"


class DocumentTypeValidation(BaseModel):
    is_correct_type: bool
    detected_type: DocumentType
    confidence: float
    indicators: List[str] = Field(default_factory=list)
    error: Optional[str] = None
    suggestion: Optional[str] = None


class FileValidationResult(BaseModel):
    is_valid: bool
    error: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)


class QuestionValidationResult(BaseModel):
    is_valid: bool
    errors: Dict[str, str] = Field(default_factory=dict)
    warnings: Dict[str, str] = Field(default_factory=dict)


class AnalysisResponse(BaseModel):
    analysis: Dict[str, Any]
    metrics: Optional[FinancialTimeSeries] = None
    derived_metrics: Optional[DerivedMetrics] = None
    data_hash: str
    file_name: str
    document_type: Optional[DocumentType] = None
    confidence: Optional[float] = None
    warnings: List[str] = Field(default_factory=list)
    used_fallback_analysis: bool = False
    success: bool = True


class FollowUpRequest(BaseModel):
    question: str
    analysis: Optional[Any] = None
    metrics: Optional[Dict[str, Any]] = None
    file_name: Optional[str] = None
    balance_file_name: Optional[str] = None
    data_hash: Optional[str] = None


class FollowUpResponse(BaseModel):
    answer: str
    warnings: Dict[str, str] = Field(default_factory=dict)
    success: bool = True


class QuestionCategory(str, Enum):
    FINANCIAL_RATIOS = "financial-ratios"
    TRENDS = "trends"
    RISK_ASSESSMENT = "risk-assessment"
    RECOMMENDATIONS = "recommendations"


class SuggestedQuestion(BaseModel):
    id: str
    question: str
    category: QuestionCategory


class QuestionRequest(BaseModel):
    analysis: Dict[str, Any]
    requested_count: Optional[int] = None


class QuestionResponse(BaseModel):
    questions: List[SuggestedQuestion]
    used_fallback: bool = False
    error: Optional[str] = None
    success: bool = True
