"""
FastAPI Main Application
========================

Application instance with middleware, routes, and lifespan management.
"""

import logging
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api.middleware.error_handler import error_handler_middleware, neuroscribe_exception_handler
from api.middleware.rate_limiter import setup_rate_limiting
from api.routes import documentation, health, jobs
from config import get_settings
from exceptions import NeuroScribeError
from pipeline import create_pipeline

logger = logging.getLogger(__name__)

# Global application state - stores pipeline and other singletons
app_state: Dict[str, Any] = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Build the pipeline once at startup and clear state at shutdown.

    Provider discovery happens here, so a missing API key shows up in the
    startup log rather than on the first request.
    """
    settings = get_settings()
    settings.configure_logging()
    logger.info("Starting NeuroScribe API...")

    try:
        pipeline = create_pipeline(settings)
        providers = pipeline.orchestrator.available_providers()
        app_state["pipeline"] = pipeline
        logger.info(f"Pipeline ready, transcription providers: {', '.join(providers) or 'none'}")
        logger.info(f"Docs available at http://{settings.api_host}:{settings.api_port}/api/docs")
    except Exception:
        logger.exception("Failed to initialize pipeline")
        # Store None - dependencies and health checks report unavailable
        app_state["pipeline"] = None
    app_state["settings"] = settings

    yield

    logger.info("Shutting down NeuroScribe API...")
    app_state.clear()


app = FastAPI(
    title="NeuroScribe API",
    description="""
    Clinical documentation for neurosurgery - convert recordings into structured notes.

    ## Features
    - Transcription with provider fallback (Groq, LiteLLM, AssemblyAI, local Whisper)
    - Template classification, findings extraction and note assembly
    - Optional AI enhancement with a local Ollama model
    - Background job processing
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/api/docs",
    redoc_url="/api/redoc",
    openapi_url="/api/openapi.json"
)


# =============================================================================
# Middleware Setup (order matters - first added = outermost)
# =============================================================================

settings = get_settings()

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.middleware("http")(error_handler_middleware)
app.add_exception_handler(NeuroScribeError, neuroscribe_exception_handler)

setup_rate_limiting(app)


# =============================================================================
# Router Registration
# =============================================================================

app.include_router(health.router, prefix="/api/v1", tags=["health"])
app.include_router(documentation.router, prefix="/api/v1", tags=["documentation"])
app.include_router(jobs.router, prefix="/api/v1", tags=["jobs"])


@app.get("/", tags=["root"])
async def root():
    """API information and links."""
    return {
        "message": "NeuroScribe API",
        "description": "Clinical recordings to structured neurosurgical notes",
        "version": "1.0.0",
        "docs": "/api/docs",
        "health": "/api/v1/health"
    }
