"""
Job Management Endpoints
========================

API endpoints for submitting and tracking background processing jobs.
"""

from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, File, HTTPException, Query, Request, UploadFile, status

from api.dependencies import get_job_manager
from api.middleware.rate_limiter import configured_rate_limit, limiter
from api.models.requests import AnalyzeTranscriptRequest
from api.models.responses import JobResponse, JobStatus, JobStatusResponse
from api.services.job_manager import JobManager
from api.utils.file_handler import FileHandler
from core.analysis import validate_transcript
from config import get_settings
from models import EncounterType, TranscriptionProvider
from tasks import analyze_transcript_task, process_audio_task, transcribe_audio_task

router = APIRouter(prefix="/jobs")


def _submitted(job_id: str, message: str) -> JobResponse:
    return JobResponse(
        job_id=job_id,
        status=JobStatus.PENDING,
        message=message,
        created_at=datetime.now(timezone.utc),
    )


def _fallbacks(values: Optional[List[TranscriptionProvider]]) -> Optional[list]:
    return [v.value for v in values] if values else None


@router.post("/process", response_model=JobResponse)
@limiter.limit(configured_rate_limit)
async def submit_process_job(
    request: Request,
    file: UploadFile = File(..., description="Audio file to process"),
    provider: Optional[TranscriptionProvider] = Query(default=None),
    fallback: Optional[List[TranscriptionProvider]] = Query(default=None),
    encounter_type: Optional[EncounterType] = Query(default=None),
    enhance: Optional[bool] = Query(default=None),
    job_manager: JobManager = Depends(get_job_manager),
):
    """Submit a full pipeline job (audio -> transcript -> structured note)."""
    file_handler = FileHandler()
    file_handler.validate_filename(file.filename)

    job_id = job_manager.create_job(job_type="process", metadata={"filename": file.filename})
    temp_path = await file_handler.save_upload_file(file, job_id)

    process_audio_task.delay(
        job_id,
        str(temp_path),
        provider.value if provider else None,
        _fallbacks(fallback),
        None,
        encounter_type.value if encounter_type else None,
        enhance,
    )
    return _submitted(job_id, "Job submitted successfully. Processing will begin shortly.")


@router.post("/transcribe", response_model=JobResponse)
@limiter.limit(configured_rate_limit)
async def submit_transcribe_job(
    request: Request,
    file: UploadFile = File(..., description="Audio file to transcribe"),
    provider: Optional[TranscriptionProvider] = Query(default=None),
    fallback: Optional[List[TranscriptionProvider]] = Query(default=None),
    job_manager: JobManager = Depends(get_job_manager),
):
    """Submit a transcription-only job."""
    file_handler = FileHandler()
    file_handler.validate_filename(file.filename)

    job_id = job_manager.create_job(job_type="transcribe", metadata={"filename": file.filename})
    temp_path = await file_handler.save_upload_file(file, job_id)

    transcribe_audio_task.delay(job_id, str(temp_path), provider.value if provider else None, _fallbacks(fallback))
    return _submitted(job_id, "Transcription job submitted successfully.")


@router.post("/analyze", response_model=JobResponse)
@limiter.limit(configured_rate_limit)
async def submit_analyze_job(
    request: Request,
    body: AnalyzeTranscriptRequest,
    job_manager: JobManager = Depends(get_job_manager),
):
    """Submit a transcript analysis job. Short transcripts are rejected up front."""
    transcript = validate_transcript(body.transcript, get_settings().min_transcript_length)

    job_id = job_manager.create_job(
        job_type="analyze",
        metadata={"transcript_length": len(transcript)},
    )
    analyze_transcript_task.delay(
        job_id,
        transcript,
        body.patient_info.model_dump() if body.patient_info else None,
        body.encounter_type_hint.value if body.encounter_type_hint else None,
        body.include_ai_enhancement,
    )
    return _submitted(job_id, "Analysis job submitted successfully.")


def _load_job(job_manager: JobManager, job_id: str) -> dict:
    job_data = job_manager.get_job(job_id)
    if not job_data:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Job {job_id} not found. It may have expired or never existed."
        )
    return job_data


@router.get("/{job_id}", response_model=JobStatusResponse)
async def get_job_status(
    job_id: str,
    job_manager: JobManager = Depends(get_job_manager),
):
    """Current status, progress and (when completed) result of a job."""
    return JobStatusResponse(**_load_job(job_manager, job_id))


@router.get("/{job_id}/result")
async def get_job_result(
    job_id: str,
    job_manager: JobManager = Depends(get_job_manager),
):
    """
    Result payload of a completed job.

    Raises:
        404: Job not found
        409: Job not completed yet
    """
    job_data = _load_job(job_manager, job_id)
    if job_data["status"] != JobStatus.COMPLETED.value:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Job is not completed yet. Current status: {job_data['status']}"
        )
    return job_data["result"]
