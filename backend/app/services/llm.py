import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Tuple

from app.core.config import settings
from app.core.exceptions import LLMResponseParseError, LLMServiceError, LLMTimeoutError
from app.schemas.analysis import AnalysisType, SuggestedQuestion
from app.services.fallback_analysis import (
    NOT_CONFIGURED_NOTICE,
    PARSE_FAILURE_NOTICE,
    SERVICE_ERROR_NOTICE,
    TIME_CONSTRAINT_NOTICE,
)
from app.services.json_repair import parse_llm_json, parse_llm_json_array
from app.services.prompts import QUESTION_SYSTEM_INSTRUCTION, build_follow_up_prompt, build_question_prompt
from app.services.questions import (
    clean_questions,
    extract_questions_from_text,
    fallback_questions,
    to_suggested_questions,
)
from .vertex_ai import vertex_ai_service

# Set up logging
logger = logging.getLogger(__name__)

FOLLOW_UP_UNAVAILABLE = (
    "I'm sorry, but I can't process follow-up questions at the moment. "
    "Please check the analysis data directly."
)
FOLLOW_UP_MAX_TOKENS = 1500
QUESTION_MAX_TOKENS = 500


@dataclass
class AnalysisResult:
    """An analysis object and whether it came from the local fallback"""
    analysis: Dict[str, Any]
    used_fallback: bool = False
    notice: Optional[str] = None


class LLMService:
    def __init__(self, client=None):
        # Any object with an async generate_text(prompt, ...) -> str
        self.client = client if client is not None else vertex_ai_service

    @property
    def use_vertex_ai(self) -> bool:
        return bool(getattr(self.client, "is_configured", False))

    async def _complete(
        self,
        prompt: str,
        temperature: float,
        max_tokens: Optional[int] = None,
        system_instruction: Optional[str] = None,
        purpose: str = "analysis",
    ) -> str:
        """Run one completion under the configured timeout."""
        timeout = settings.LLM_TIMEOUT_SECONDS
        try:
            return await asyncio.wait_for(
                self.client.generate_text(
                    prompt,
                    system_instruction=system_instruction,
                    temperature=temperature,
                    max_tokens=max_tokens,
                    purpose=purpose,
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError as e:
            logger.warning(f"LLM call for {purpose} abandoned after {timeout}s")
            raise LLMTimeoutError(f"LLM call for {purpose} exceeded {timeout} seconds") from e

    async def generate_analysis(
        self,
        prompt: str,
        fallback: Callable[[str], Dict[str, Any]],
        purpose: str = "analysis",
    ) -> AnalysisResult:
        """Ask the LLM for a JSON analysis, substituting ``fallback(notice)`` on any failure."""
        if not self.use_vertex_ai:
            logger.warning(f"Vertex AI not configured, using fallback {purpose}")
            return AnalysisResult(fallback(NOT_CONFIGURED_NOTICE), used_fallback=True, notice=NOT_CONFIGURED_NOTICE)

        try:
            logger.info(f"Generating {purpose} ({len(prompt)} prompt characters)")
            text = await self._complete(
                prompt,
                temperature=settings.ANALYSIS_TEMPERATURE,
                max_tokens=settings.LLM_MAX_TOKENS,
                purpose=purpose,
            )
            analysis = parse_llm_json(text)
            logger.info(f"{purpose.capitalize()} generated successfully by Vertex AI")
            return AnalysisResult(analysis)
        except LLMTimeoutError:
            notice = TIME_CONSTRAINT_NOTICE
        except LLMResponseParseError as e:
            logger.warning(f"Unparseable {purpose} response: {e}")
            notice = PARSE_FAILURE_NOTICE
        except LLMServiceError as e:
            logger.error(f"Error generating {purpose} with Vertex AI: {str(e)}")
            notice = SERVICE_ERROR_NOTICE

        return AnalysisResult(fallback(notice), used_fallback=True, notice=notice)

    async def answer_follow_up(
        self,
        analysis_type: AnalysisType,
        question: str,
        analysis: Any,
        metrics: Optional[Dict[str, Any]] = None,
        file_names: Optional[List[str]] = None,
    ) -> Tuple[str, bool]:
        """Answer a question about a finished analysis. Returns (answer, used_fallback)."""
        if not self.use_vertex_ai:
            logger.warning("Vertex AI not configured, follow-up question not answered")
            return FOLLOW_UP_UNAVAILABLE, True

        prompt = build_follow_up_prompt(analysis_type, question, analysis, metrics, file_names)
        try:
            logger.info(f"Answering {analysis_type.value} follow-up: '{question[:50]}...'")
            answer = await self._complete(
                prompt,
                temperature=settings.FOLLOW_UP_TEMPERATURE,
                max_tokens=FOLLOW_UP_MAX_TOKENS,
                purpose=f"{analysis_type.value} follow-up",
            )
            return answer, False
        except LLMServiceError as e:
            logger.error(f"Error answering follow-up question: {str(e)}")
            return FOLLOW_UP_UNAVAILABLE, True

    async def generate_questions(
        self, analysis: Dict[str, Any], count: int
    ) -> Tuple[List[SuggestedQuestion], bool, Optional[str]]:
        """Suggest follow-up questions. Returns (questions, used_fallback, error)."""
        if not self.use_vertex_ai:
            return fallback_questions(analysis, count), True, "AI service temporarily unavailable"

        try:
            text = await self._complete(
                build_question_prompt(analysis, count),
                temperature=settings.QUESTION_TEMPERATURE,
                max_tokens=QUESTION_MAX_TOKENS,
                system_instruction=QUESTION_SYSTEM_INSTRUCTION,
                purpose="question generation",
            )
        except LLMServiceError as e:
            logger.error(f"Error generating questions: {str(e)}")
            return fallback_questions(analysis, count), True, str(e)

        try:
            candidates = parse_llm_json_array(text)
        except LLMResponseParseError:
            logger.warning("Question list was not JSON, extracting questions from text")
            candidates = extract_questions_from_text(text)

        questions = clean_questions(candidates, count)
        if not questions:
            return fallback_questions(analysis, count), True, "No valid questions generated"
        return to_suggested_questions(questions), False, None


# Global instance
llm_service = LLMService()
