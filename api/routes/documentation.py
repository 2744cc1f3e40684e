"""
Documentation Endpoints
=======================

Synchronous transcription and transcript analysis, plus read-only access to
the note templates.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, File, Query, Request, UploadFile

from api.dependencies import get_pipeline, get_registry
from api.middleware.rate_limiter import configured_rate_limit, limiter
from api.models.requests import AnalyzeTranscriptRequest
from api.models.responses import (
    AnalyzeTranscriptResponse,
    GenerationMetadata,
    TemplateListResponse,
)
from api.utils.file_handler import FileHandler
from core.templates import TemplateRegistry
from models import NoteTemplate, TranscriptionProvider, TranscriptionResult
from pipeline import ClinicalDocumentationPipeline

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/transcribe", response_model=TranscriptionResult)
@limiter.limit(configured_rate_limit)
async def transcribe(
    request: Request,
    file: UploadFile = File(..., description="Audio recording"),
    provider: Optional[TranscriptionProvider] = Query(
        default=None,
        description="Primary provider; its default fallback chain is used",
    ),
    pipeline: ClinicalDocumentationPipeline = Depends(get_pipeline),
) -> TranscriptionResult:
    """
    Transcribe an uploaded recording.

    Providers are tried in order until one succeeds. On total failure the
    response names the last provider tried and uses its status code.
    """
    audio = await FileHandler(pipeline.settings).read_upload_bytes(file)
    logger.info(f"Transcribe request: {file.filename} ({len(audio)} bytes), provider={provider}")
    return await pipeline.atranscribe_audio(audio, file.filename, provider)


@router.post("/analyze-transcript", response_model=AnalyzeTranscriptResponse)
@limiter.limit(configured_rate_limit)
async def analyze_transcript(
    request: Request,
    body: AnalyzeTranscriptRequest,
    pipeline: ClinicalDocumentationPipeline = Depends(get_pipeline),
) -> AnalyzeTranscriptResponse:
    """
    Turn a transcript into structured documentation.

    Transcripts shorter than the configured minimum are rejected with 400.
    If analysis itself fails, the fallback progress note is returned with
    `generation_metadata.fallback = true`.
    """
    documentation = await pipeline.aanalyze_only(
        body.transcript,
        body.patient_info,
        body.encounter_type_hint,
        body.include_ai_enhancement,
    )
    analysis = documentation.clinical_documentation
    return AnalyzeTranscriptResponse(
        clinical_documentation=analysis,
        ai_enhancement=documentation.ai_enhancement,
        generation_metadata=GenerationMetadata(
            generated_at=documentation.generated_at,
            transcript_length=documentation.transcript_length,
            template_used=analysis.suggested_template,
            confidence=analysis.confidence,
            fallback=documentation.fallback,
        ),
    )


@router.get("/templates", response_model=TemplateListResponse)
async def list_templates(
    specialty: Optional[str] = Query(default=None, description="Filter by specialty"),
    context: Optional[str] = Query(default=None, description="Filter by usage context"),
    registry: TemplateRegistry = Depends(get_registry),
) -> TemplateListResponse:
    if specialty:
        templates = registry.by_specialty(specialty)
    elif context:
        templates = registry.by_context(context)
    else:
        templates = registry.all()
    return TemplateListResponse(templates=list(templates), count=len(templates))


@router.get("/templates/{template_id}", response_model=NoteTemplate)
async def get_template(
    template_id: str,
    registry: TemplateRegistry = Depends(get_registry),
) -> NoteTemplate:
    """Raises TemplateNotFoundError (404) for unknown ids."""
    return registry.get(template_id)
