"""
API Response Models
===================

Pydantic models for API responses.
"""

from datetime import datetime
from enum import Enum
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from models import ClinicalAnalysisResult, NoteEnhancement, NoteTemplate


class JobStatus(str, Enum):
    """Job status enumeration for tracking processing states."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class GenerationMetadata(BaseModel):
    """How a document was produced."""

    generated_at: datetime
    transcript_length: int
    template_used: str
    confidence: float
    fallback: bool = False


class AnalyzeTranscriptResponse(BaseModel):
    """Response model for /analyze-transcript."""

    clinical_documentation: ClinicalAnalysisResult
    ai_enhancement: Optional[NoteEnhancement] = None
    generation_metadata: GenerationMetadata


class TemplateListResponse(BaseModel):
    templates: List[NoteTemplate]
    count: int


class JobResponse(BaseModel):
    """Response model for job submission endpoints."""

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "job_id": "550e8400-e29b-41d4-a716-446655440000",
                "status": "pending",
                "message": "Job submitted successfully",
                "created_at": "2024-01-17T10:30:00Z"
            }
        }
    )

    job_id: str = Field(..., description="Unique identifier for the submitted job")
    status: JobStatus = Field(..., description="Current status of the job")
    message: str = Field(..., description="Human-readable message about the job submission")
    created_at: datetime = Field(..., description="Timestamp when the job was created")


class JobStatusResponse(BaseModel):
    """Response model for job status check endpoints."""

    model_config = ConfigDict(
        extra='ignore',
        json_schema_extra={
            "example": {
                "job_id": "550e8400-e29b-41d4-a716-446655440000",
                "job_type": "process",
                "status": "processing",
                "progress": 50,
                "current_stage": "analyzing",
                "result": None,
                "error": None,
                "created_at": "2024-01-17T10:30:00Z",
                "updated_at": "2024-01-17T10:31:30Z"
            }
        }
    )

    job_id: str = Field(..., description="Unique identifier for the job")
    job_type: Optional[str] = Field(default=None, description="process, transcribe or analyze")
    status: JobStatus = Field(..., description="Current status of the job")
    progress: Optional[int] = Field(default=None, description="Progress percentage (0-100)", ge=0, le=100)
    current_stage: Optional[str] = Field(default=None, description="Current processing stage")
    result: Optional[Any] = Field(default=None, description="Job result (when status is 'completed')")
    error: Optional[dict] = Field(default=None, description="Error details (when status is 'failed')")
    created_at: datetime = Field(..., description="Timestamp when the job was created")
    updated_at: datetime = Field(..., description="Timestamp when the job was last updated")

    @field_validator('created_at', 'updated_at', mode='before')
    @classmethod
    def parse_datetime(cls, v):
        """Parse datetime from ISO format string if needed."""
        if isinstance(v, str):
            return datetime.fromisoformat(v)
        return v
