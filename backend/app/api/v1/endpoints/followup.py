import logging
from fastapi import APIRouter, HTTPException

from app.core.exceptions import InvalidRequestError
from app.schemas.analysis import AnalysisType, FollowUpRequest, FollowUpResponse
from app.services.credit_analysis import credit_analysis_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/{analysis_type}", response_model=FollowUpResponse)
async def ask_follow_up(analysis_type: AnalysisType, request: FollowUpRequest):
    """Answer a follow-up question about a finished analysis."""
    try:
        return await credit_analysis_service.answer_follow_up(analysis_type, request)
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Follow-up question failed: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to answer follow-up question. Please try again.")
