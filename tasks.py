"""
Celery Tasks for NeuroScribe Background Processing
==================================================

This module contains Celery tasks for handling background jobs:
- Full pipeline processing (audio -> structured note)
- Transcription only
- Transcript analysis only

Tasks are executed by Celery workers and tracked via the JobManager.
"""

import asyncio
import logging
from typing import Optional

from celery import Celery

from api.services.job_manager import JobManager
from api.utils.file_handler import FileHandler
from config import get_settings
from exceptions import NeuroScribeError, clinician_message
from models import ProcessingStatus
from pipeline import create_pipeline

logger = logging.getLogger(__name__)

settings = get_settings()

# Create Celery app
celery_app = Celery(
    "NeuroScribe",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
)


def progress_callback(job_manager: JobManager, job_id: str):
    """Build a pipeline progress callback that writes to the job record."""

    def callback(status: ProcessingStatus, message: str, progress: int):
        if status in (ProcessingStatus.COMPLETED, ProcessingStatus.FAILED):
            return
        job_manager.set_job_progress(job_id, progress, status.value)

    return callback


def _error_payload(error: Exception) -> dict:
    payload = {"error": type(error).__name__, "message": clinician_message(error)}
    if isinstance(error, NeuroScribeError):
        payload["details"] = error.to_dict()
    return payload


@celery_app.task(name="tasks.process_audio")
def process_audio_task(
    job_id: str,
    audio_path: str,
    provider: Optional[str] = None,
    fallback_providers: Optional[list] = None,
    patient_info: Optional[dict] = None,
    encounter_type_hint: Optional[str] = None,
    include_enhancement: Optional[bool] = None,
):
    """
    Full pipeline for one uploaded recording.

    Returns:
        The ProcessingResult as a JSON-ready dict
    """
    job_manager = JobManager()
    file_handler = FileHandler()

    try:
        pipeline = create_pipeline()
        result = asyncio.run(
            pipeline.aprocess(
                audio_path,
                primary_provider=provider,
                fallback_providers=fallback_providers,
                patient_info=patient_info,
                encounter_type_hint=encounter_type_hint,
                include_enhancement=include_enhancement,
                progress_callback=progress_callback(job_manager, job_id),
            )
        )
        result_dict = result.model_dump(mode="json")

        if result.status == ProcessingStatus.FAILED:
            job_manager.set_job_failed(job_id, {"error": "ProcessingFailed", "message": result.error_message})
        else:
            job_manager.set_job_completed(job_id, result_dict)
        return result_dict

    except Exception as e:
        logger.exception(f"[{job_id}] process_audio task failed")
        job_manager.set_job_failed(job_id, _error_payload(e))
        raise

    finally:
        file_handler.cleanup_file(audio_path)


@celery_app.task(name="tasks.transcribe_audio")
def transcribe_audio_task(
    job_id: str,
    audio_path: str,
    provider: Optional[str] = None,
    fallback_providers: Optional[list] = None,
):
    """Transcription only; returns the TranscriptionResult as a dict."""
    job_manager = JobManager()
    file_handler = FileHandler()

    try:
        job_manager.set_job_progress(job_id, 10, ProcessingStatus.TRANSCRIBING.value)
        pipeline = create_pipeline()
        result = asyncio.run(pipeline.atranscribe_only(audio_path, provider, fallback_providers))

        result_dict = result.model_dump(mode="json")
        job_manager.set_job_completed(job_id, result_dict)
        return result_dict

    except NeuroScribeError as e:
        logger.error(f"[{job_id}] transcription failed: {e.message}")
        job_manager.set_job_failed(job_id, _error_payload(e))
        raise

    except Exception as e:
        logger.exception(f"[{job_id}] transcribe_audio task failed")
        job_manager.set_job_failed(job_id, _error_payload(e))
        raise

    finally:
        file_handler.cleanup_file(audio_path)


@celery_app.task(name="tasks.analyze_transcript")
def analyze_transcript_task(
    job_id: str,
    transcript: str,
    patient_info: Optional[dict] = None,
    encounter_type_hint: Optional[str] = None,
    include_enhancement: Optional[bool] = None,
):
    """Analysis only; returns the DocumentationResult as a dict."""
    job_manager = JobManager()

    try:
        job_manager.set_job_progress(job_id, 10, ProcessingStatus.ANALYZING.value)
        pipeline = create_pipeline()
        result = asyncio.run(
            pipeline.aanalyze_only(transcript, patient_info, encounter_type_hint, include_enhancement)
        )

        result_dict = result.model_dump(mode="json")
        job_manager.set_job_completed(job_id, result_dict)
        return result_dict

    except Exception as e:
        logger.exception(f"[{job_id}] analyze_transcript task failed")
        job_manager.set_job_failed(job_id, _error_payload(e))
        raise
