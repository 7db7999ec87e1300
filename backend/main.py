import os
from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from contextlib import asynccontextmanager

from app.core.config import settings
from app.api.v1.api import api_router
from app.services.vertex_ai import vertex_ai_service
import logging
import sys

APP_TITLE = "Agricultural Credit Analyzer API"
APP_VERSION = "1.0.0"


def setup_logging():
    """Configure root logging for the console and a persistent log file"""
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Clear any existing handlers
    root_logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    try:
        log_dir = os.path.join(os.getcwd(), 'logs')
        os.makedirs(log_dir, exist_ok=True)
        file_handler = logging.FileHandler(os.path.join(log_dir, 'credit_analyzer.log'))
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)
    except Exception as e:
        # If we can't create file handler, just log to console
        print(f"Could not create file handler: {e}")

    return logging.getLogger(__name__)


# Set up logging
logger = setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    if vertex_ai_service.validate_configuration():
        logger.info("Vertex AI configured; analyses will be generated by the LLM")
    else:
        logger.warning("Vertex AI not configured; analyses will use local fallbacks")
    yield


# Create FastAPI app
app = FastAPI(
    title=APP_TITLE,
    description="Agricultural credit analysis of income statements and balance sheets",
    version=APP_VERSION,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=[host for host in settings.ALLOWED_HOSTS if host],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    logger.error(f"HTTP {exc.status_code} for {request.method} {request.url}: {exc.detail}")

    # Rely on CORSMiddleware to attach the correct CORS headers
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"=== 422 VALIDATION ERROR ===")
    logger.error(f"Request: {request.method} {request.url}")
    logger.error(f"Validation errors: {exc.errors()}")
    if request.headers.get('content-type', '').startswith('multipart/form-data'):
        logger.error("This is a multipart form request (file upload)")

    return JSONResponse(
        status_code=422,
        content={
            "detail": jsonable_encoder(exc.errors()),
            "code": "422"
        }
    )


@app.middleware("http")
async def log_requests(request: Request, call_next):
    logger.info(f"Request: {request.method} {request.url}")

    try:
        response = await call_next(request)
        logger.info(f"Response status: {response.status_code}")
        return response
    except Exception as e:
        logger.error(f"Request failed with exception: {str(e)}")
        logger.exception("Full traceback:")
        raise


# Include API router
app.include_router(api_router, prefix="/api/v1")


@app.get("/")
async def root():
    return {"message": APP_TITLE, "version": APP_VERSION}


@app.get("/health")
async def health_check():
    return {"status": "healthy", "llm_configured": vertex_ai_service.is_configured}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        log_level=settings.log_level,
    )
