from fastapi import APIRouter

from .endpoints import analyze, followup, questions

api_router = APIRouter()

# Include all endpoint routers
api_router.include_router(analyze.router, prefix="/analyze", tags=["analyze"])
api_router.include_router(followup.router, prefix="/follow-up", tags=["follow-up"])
api_router.include_router(questions.router, prefix="/questions", tags=["questions"])
