import logging
from fastapi import APIRouter, HTTPException

from app.core.exceptions import InvalidRequestError
from app.schemas.analysis import QuestionRequest, QuestionResponse
from app.services.credit_analysis import credit_analysis_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/generate", response_model=QuestionResponse)
async def generate_questions(request: QuestionRequest):
    """Suggest follow-up questions for an analysis."""
    try:
        return await credit_analysis_service.suggest_questions(request)
    except InvalidRequestError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.error(f"Question generation failed: {str(e)}")
        raise HTTPException(status_code=500, detail="Failed to generate questions")
