"""
Health Check Endpoints
======================

API health check endpoints for monitoring and Kubernetes probes.
"""

import logging
import time
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

import psutil
import requests
from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from api.dependencies import get_job_manager, get_pipeline
from api.services.job_manager import JobManager
from config import Settings
from pipeline import ClinicalDocumentationPipeline

# Set up module logger
logger = logging.getLogger(__name__)

router = APIRouter()

CRITICAL_SERVICES = ("api", "transcription")


class ServiceStatus(str, Enum):
    """Health of one service, and of the application overall."""
    HEALTHY = "healthy"
    DEGRADED = "degraded"
    UNHEALTHY = "unhealthy"


class ServiceCheckResult(BaseModel):
    """Result of an individual service health check."""
    status: ServiceStatus = Field(description="Service health status")
    message: Optional[str] = Field(None, description="Status message or error details")
    latency_ms: Optional[float] = Field(None, description="Check latency in milliseconds")


class SystemMetrics(BaseModel):
    """System resource metrics."""
    cpu_percent: float = Field(description="CPU usage percentage")
    memory_percent: float = Field(description="Memory usage percentage")
    memory_available_mb: float = Field(description="Available memory in MB")
    disk_usage_percent: float = Field(description="Disk usage percentage")


class HealthCheckResponse(BaseModel):
    """Comprehensive health check response."""
    status: ServiceStatus = Field(description="Overall health status")
    timestamp: str = Field(description="ISO 8601 timestamp of the health check")
    services: Dict[str, ServiceCheckResult] = Field(description="Individual service statuses")
    system_metrics: SystemMetrics = Field(description="System resource metrics")


class ProbeResponse(BaseModel):
    """Kubernetes readiness/liveness probe response."""
    status: str
    message: Optional[str] = None
    timestamp: str


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def check_redis(job_manager: JobManager) -> ServiceCheckResult:
    """Redis connectivity, or DEGRADED when the in-memory store is in use."""
    if job_manager.redis_client is None:
        return ServiceCheckResult(
            status=ServiceStatus.DEGRADED,
            message="Redis not configured, using in-memory fallback"
        )
    try:
        start_time = time.time()
        job_manager.redis_client.ping()
        return ServiceCheckResult(
            status=ServiceStatus.HEALTHY,
            message="Connected",
            latency_ms=round((time.time() - start_time) * 1000, 2)
        )
    except Exception as e:
        logger.warning(f"Redis health check failed: {e}")
        return ServiceCheckResult(
            status=ServiceStatus.UNHEALTHY,
            message=f"Connection failed: {e}"
        )


def check_transcription(pipeline: ClinicalDocumentationPipeline) -> ServiceCheckResult:
    """At least one provider must be configured for transcription to work."""
    providers = pipeline.orchestrator.available_providers()
    if not providers:
        return ServiceCheckResult(
            status=ServiceStatus.UNHEALTHY,
            message="No transcription provider has credentials configured"
        )
    primary = pipeline.settings.primary_provider.value
    if primary not in providers:
        return ServiceCheckResult(
            status=ServiceStatus.DEGRADED,
            message=f"Primary provider '{primary}' unavailable; using {', '.join(providers)}"
        )
    return ServiceCheckResult(status=ServiceStatus.HEALTHY, message=f"Providers: {', '.join(providers)}")


def check_ollama(settings: Settings) -> ServiceCheckResult:
    """
    Lightweight Ollama check via /api/tags (no inference).

    Enhancement is optional, so a disabled enhancer reports HEALTHY.
    """
    if not settings.enable_ai_enhancement:
        return ServiceCheckResult(status=ServiceStatus.HEALTHY, message="AI enhancement disabled")

    try:
        start_time = time.time()
        response = requests.get(f"{settings.ollama_base_url}/api/tags", timeout=2)
        if response.status_code != 200:
            return ServiceCheckResult(
                status=ServiceStatus.UNHEALTHY,
                message=f"Ollama API returned status {response.status_code}"
            )

        model_names = [m.get("name", "").split(":")[0] for m in response.json().get("models", [])]
        configured_model_base = settings.ollama_model.split(":")[0]
        if any(configured_model_base in name for name in model_names):
            return ServiceCheckResult(
                status=ServiceStatus.HEALTHY,
                message=f"Model '{settings.ollama_model}' available",
                latency_ms=round((time.time() - start_time) * 1000, 2)
            )
        return ServiceCheckResult(
            status=ServiceStatus.UNHEALTHY,
            message=f"Model '{settings.ollama_model}' not found. Run: ollama pull {settings.ollama_model}"
        )

    except requests.exceptions.Timeout:
        return ServiceCheckResult(
            status=ServiceStatus.UNHEALTHY,
            message=f"Ollama connection timeout (2s) at {settings.ollama_base_url}"
        )
    except requests.exceptions.RequestException:
        logger.warning(f"Cannot connect to Ollama at {settings.ollama_base_url}")
        return ServiceCheckResult(
            status=ServiceStatus.UNHEALTHY,
            message=f"Cannot connect to Ollama at {settings.ollama_base_url}"
        )


def get_system_metrics() -> SystemMetrics:
    """CPU, memory and disk usage."""
    try:
        memory = psutil.virtual_memory()
        return SystemMetrics(
            cpu_percent=round(psutil.cpu_percent(interval=0.1), 2),
            memory_percent=round(memory.percent, 2),
            memory_available_mb=round(memory.available / (1024 * 1024), 2),
            disk_usage_percent=round(psutil.disk_usage('/').percent, 2)
        )
    except Exception as e:
        logger.error(f"Failed to gather system metrics: {e}")
        return SystemMetrics(cpu_percent=0.0, memory_percent=0.0, memory_available_mb=0.0, disk_usage_percent=0.0)


def determine_overall_status(services: Dict[str, ServiceCheckResult]) -> ServiceStatus:
    """
    UNHEALTHY if a critical service is unhealthy, DEGRADED if anything else
    is not healthy, HEALTHY otherwise.
    """
    for name in CRITICAL_SERVICES:
        if name in services and services[name].status == ServiceStatus.UNHEALTHY:
            return ServiceStatus.UNHEALTHY
    if any(s.status != ServiceStatus.HEALTHY for s in services.values()):
        return ServiceStatus.DEGRADED
    return ServiceStatus.HEALTHY


@router.get(
    "/health",
    response_model=HealthCheckResponse,
    summary="Comprehensive health check",
)
async def health_check(
    pipeline: ClinicalDocumentationPipeline = Depends(get_pipeline),
    job_manager: JobManager = Depends(get_job_manager),
) -> HealthCheckResponse:
    """
    Check every dependency and report system metrics.

    Always HTTP 200; read the `status` field for overall health.
    """
    services = {
        "api": ServiceCheckResult(status=ServiceStatus.HEALTHY, message="API is running"),
        "transcription": check_transcription(pipeline),
        "redis": check_redis(job_manager),
        "ollama": check_ollama(pipeline.settings),
    }
    overall_status = determine_overall_status(services)

    logger.info(f"Health check completed: {overall_status.value}")
    if overall_status != ServiceStatus.HEALTHY:
        unhealthy = [name for name, check in services.items() if check.status != ServiceStatus.HEALTHY]
        logger.warning(f"Unhealthy/degraded services: {unhealthy}")

    return HealthCheckResponse(
        status=overall_status,
        timestamp=_timestamp(),
        services=services,
        system_metrics=get_system_metrics(),
    )


@router.get("/health/ready", response_model=ProbeResponse, summary="Kubernetes readiness probe")
async def readiness_probe(
    pipeline: ClinicalDocumentationPipeline = Depends(get_pipeline),
) -> ProbeResponse:
    """
    Ready when at least one transcription provider is configured.

    Raises:
        HTTPException: 503 if not ready
    """
    transcription = check_transcription(pipeline)
    if transcription.status == ServiceStatus.UNHEALTHY:
        logger.warning(f"Readiness probe failed: {transcription.message}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"Not ready: {transcription.message}"
        )
    return ProbeResponse(status="ready", message="Application is ready to serve traffic", timestamp=_timestamp())


@router.get("/health/live", response_model=ProbeResponse, summary="Kubernetes liveness probe")
async def liveness_probe() -> ProbeResponse:
    """Process is alive; no dependency checks."""
    return ProbeResponse(status="alive", timestamp=_timestamp())
