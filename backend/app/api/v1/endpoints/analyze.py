import logging
from fastapi import APIRouter, UploadFile, File, HTTPException

from app.core.exceptions import DocumentTypeMismatch, WorkbookReadError
from app.schemas.analysis import AnalysisResponse
from app.services.credit_analysis import credit_analysis_service
from app.services.validation import validate_upload

logger = logging.getLogger(__name__)

router = APIRouter()


async def _read_upload(file: UploadFile, label: str = "file") -> bytes:
    """Read an upload and reject it when name, extension or size are not acceptable."""
    content = await file.read()
    result = validate_upload(file.filename, len(content))
    if not result.is_valid:
        logger.warning(f"Rejected {label} '{file.filename}': {result.error}")
        raise HTTPException(status_code=400, detail=result.error)
    return content


def _with_upload_warnings(response: AnalysisResponse, file: UploadFile, size: int) -> AnalysisResponse:
    upload_warnings = validate_upload(file.filename, size).warnings
    if not upload_warnings:
        return response
    return response.model_copy(update={"warnings": upload_warnings + response.warnings})


@router.post("/income", response_model=AnalysisResponse)
async def analyze_income(file: UploadFile = File(...)):
    """Analyze an income statement spreadsheet or PDF."""
    content = await _read_upload(file)
    try:
        response = await credit_analysis_service.analyze_income(content, file.filename)
    except WorkbookReadError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Income analysis failed for {file.filename}: {str(e)}")
        logger.exception("Full traceback:")
        raise HTTPException(status_code=500, detail="Failed to analyze income statement")
    return _with_upload_warnings(response, file, len(content))


@router.post("/balance", response_model=AnalysisResponse)
async def analyze_balance(file: UploadFile = File(...)):
    """Analyze a balance sheet, rejecting documents that are another statement type."""
    content = await _read_upload(file)
    try:
        response = await credit_analysis_service.analyze_balance(content, file.filename)
    except DocumentTypeMismatch as e:
        validation = e.validation
        raise HTTPException(
            status_code=400,
            detail={
                "error": validation.error,
                "suggestion": validation.suggestion,
                "document_type": validation.detected_type.value,
                "confidence": validation.confidence,
                "indicators": validation.indicators,
            },
        )
    except WorkbookReadError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Balance sheet analysis failed for {file.filename}: {str(e)}")
        logger.exception("Full traceback:")
        raise HTTPException(status_code=500, detail="Failed to analyze balance sheet")
    return _with_upload_warnings(response, file, len(content))


@router.post("/combined", response_model=AnalysisResponse)
async def analyze_combined(
    income_file: UploadFile = File(...),
    balance_file: UploadFile = File(...),
):
    """Analyze an income statement and a balance sheet together."""
    income_content = await _read_upload(income_file, "income file")
    balance_content = await _read_upload(balance_file, "balance file")
    try:
        return await credit_analysis_service.analyze_combined(
            income_content, income_file.filename, balance_content, balance_file.filename
        )
    except WorkbookReadError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Combined analysis failed: {str(e)}")
        logger.exception("Full traceback:")
        raise HTTPException(status_code=500, detail="Failed to perform combined analysis")
