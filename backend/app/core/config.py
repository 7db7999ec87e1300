import os
from typing import List
from pathlib import Path
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Look for .env file in the backend directory relative to this file
    _backend_dir = Path(__file__).parent.parent.parent
    # Allow extra env vars so unexpected keys don't crash local runs
    model_config = ConfigDict(env_file=_backend_dir / ".env", extra='ignore')

    # Application settings
    debug: bool = False
    log_level: str = "info"

    # Google Cloud Platform
    GCP_PROJECT_ID: str = os.getenv("GCP_PROJECT_ID", "")
    GCP_REGION: str = os.getenv("GCP_REGION", "us-central1")

    # Vertex AI
    VERTEX_AI_LOCATION: str = os.getenv("VERTEX_AI_LOCATION", "us-central1")
    VERTEX_AI_MODEL: str = os.getenv("VERTEX_AI_MODEL", "gemini-2.5-flash")

    # LLM call behaviour
    LLM_TIMEOUT_SECONDS: float = 30.0
    LLM_MAX_TOKENS: int = 3000
    ANALYSIS_TEMPERATURE: float = 0.05
    FOLLOW_UP_TEMPERATURE: float = 0.05
    QUESTION_TEMPERATURE: float = 0.7
    # Extracted sheet text is truncated to this many characters in prompts
    MAX_PROMPT_DATA_CHARS: int = 12000

    # Security
    ALLOWED_HOSTS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://0.0.0.0:3000",
        os.getenv("FRONTEND_URL", "")  # Dynamic frontend URL for deployments
    ]

    # File Upload
    MAX_FILE_SIZE: int = 10 * 1024 * 1024  # 10MB
    LARGE_FILE_WARNING_SIZE: int = 5 * 1024 * 1024
    ALLOWED_EXTENSIONS: List[str] = [".xlsx", ".xls", ".csv", ".pdf"]

    # Extraction
    YEAR_SCAN_ROWS: int = 10
    # When true, a workbook with no usable figures is analysed with the
    # literal sample statement (flagged is_sample) instead of no metrics.
    SAMPLE_DATA_ON_EXTRACTION_FAILURE: bool = False

    # Suggested questions
    SUGGESTED_QUESTION_COUNT: int = 5


settings = Settings()
