"""
Dependency Injection Functions
==============================

FastAPI dependencies for the pipeline, job manager and template registry.
Tests replace these through `app.dependency_overrides`.
"""

from fastapi import HTTPException, status

from api.services.job_manager import JobManager
from core.templates import TemplateRegistry, default_registry
from pipeline import ClinicalDocumentationPipeline


def get_pipeline() -> ClinicalDocumentationPipeline:
    """
    The pipeline built at startup (see lifespan in api.main).

    Raises:
        HTTPException: 503 while the pipeline is not initialized
    """
    from api.main import app_state

    pipeline = app_state.get("pipeline")
    if pipeline is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Pipeline not initialized. Service is starting up."
        )
    return pipeline


def get_job_manager() -> JobManager:
    """Singleton JobManager, created on first use."""
    from api.main import app_state

    if "job_manager" not in app_state:
        app_state["job_manager"] = JobManager()
    return app_state["job_manager"]


def get_registry() -> TemplateRegistry:
    return default_registry()
