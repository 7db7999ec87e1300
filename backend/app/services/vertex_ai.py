import asyncio
import logging
from typing import Optional
from google.cloud import aiplatform
from google.auth import default
from vertexai.generative_models import GenerativeModel

from app.core.exceptions import LLMServiceError

# Set up logging
logger = logging.getLogger(__name__)


class VertexAIService:
    """Service for generating credit analysis text with Google Vertex AI."""

    def __init__(self):
        # Import settings here to avoid circular imports
        from app.core.config import settings

        self.project_id = settings.GCP_PROJECT_ID
        self.location = settings.VERTEX_AI_LOCATION
        self.llm_model_name = settings.VERTEX_AI_MODEL
        self.default_max_tokens = settings.LLM_MAX_TOKENS
        self.is_configured = False

        logger.info(f"VertexAI Configuration:")
        logger.info(f"  Project ID: {self.project_id}")
        logger.info(f"  Location: {self.location}")
        logger.info(f"  Model: {self.llm_model_name}")

        if self.project_id:
            try:
                aiplatform.init(project=self.project_id, location=self.location)
                logger.info(f"Vertex AI initialized for project: {self.project_id}")
            except Exception as e:
                logger.warning(f"Failed to initialize Vertex AI: {e}")

    def _extract_response_text(self, response) -> Optional[str]:
        if not response:
            return None

        try:
            if getattr(response, "text", None):
                return response.text.strip()
        except ValueError:
            # .text raises when the candidate was blocked or has no parts
            pass

        candidates = getattr(response, "candidates", None) or []
        if candidates:
            content = getattr(candidates[0], "content", None)
            parts = getattr(content, "parts", None) or []
            texts = [part.text.strip() for part in parts if getattr(part, "text", None)]
            if texts:
                logger.info(f"Extracted text from {len(texts)} content parts")
                return " ".join(texts)
        return None

    async def generate_text(
        self,
        prompt: str,
        system_instruction: Optional[str] = None,
        temperature: float = 0.1,
        max_tokens: Optional[int] = None,
        purpose: str = "analysis",
    ) -> str:
        """
        Generate text for one prompt. Raises LLMServiceError when Vertex AI is
        not configured, the call fails, or the reply carries no text.
        """
        if not self.is_configured:
            raise LLMServiceError("Vertex AI is not configured")

        clean_prompt = prompt.strip()
        if not clean_prompt:
            raise LLMServiceError("No prompt provided")

        model = (
            GenerativeModel(self.llm_model_name, system_instruction=system_instruction)
            if system_instruction
            else GenerativeModel(self.llm_model_name)
        )
        generation_config = {
            "temperature": temperature,
            "max_output_tokens": max_tokens or self.default_max_tokens,
            "candidate_count": 1,
        }

        try:
            response = await asyncio.get_event_loop().run_in_executor(
                None,
                lambda: model.generate_content(clean_prompt, generation_config=generation_config),
            )
        except Exception as e:
            logger.error(f"Error generating text for {purpose}: {e}")
            raise LLMServiceError(f"LLM call for {purpose} failed: {e}") from e

        response_text = self._extract_response_text(response)
        if not response_text:
            logger.warning(f"No text could be extracted from response for {purpose}")
            raise LLMServiceError("Unable to extract response text from Vertex AI")

        logger.info(f"Successfully generated text for {purpose}: {len(response_text)} characters")
        return response_text

    def validate_configuration(self) -> bool:
        """Validate that GCP configuration is properly set up"""
        if not self.project_id:
            logger.warning("Warning: GCP_PROJECT_ID not configured - using fallback analyses")
            self.is_configured = False
            return False

        try:
            credentials, project = default()
            logger.info(f"GCP authentication successful for project: {project}")
            self.is_configured = True
        except Exception as e:
            logger.warning(f"Warning: GCP authentication not set up: {e} - using fallback analyses")
            self.is_configured = False
        return self.is_configured


# Global instance
vertex_ai_service = VertexAIService()
