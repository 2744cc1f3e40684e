"""
API Request Models
==================

Pydantic models for API request validation.
"""

from typing import Optional

from pydantic import BaseModel, Field

from models import EncounterType, PatientInfo


class AnalyzeTranscriptRequest(BaseModel):
    """Request model for structuring an existing transcript."""

    # Length is checked by the pipeline so short transcripts get the
    # clinician-readable 400 instead of a schema error.
    transcript: Optional[str] = Field(
        default=None,
        description="Transcript text from the clinical encounter"
    )
    patient_info: Optional[PatientInfo] = Field(
        default=None,
        description="Known patient demographics"
    )
    encounter_type_hint: Optional[EncounterType] = Field(
        default=None,
        description="Encounter type, if the caller already knows it"
    )
    include_ai_enhancement: Optional[bool] = Field(
        default=None,
        description="Request AI enhancement (defaults to settings.enable_ai_enhancement)"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "transcript": "Post-op day 2. Patient is alert, GCS 15. Plan for MRI tomorrow.",
                "patient_info": {"name": "Jane Doe", "mrn": "12345"},
                "encounter_type_hint": "rounds",
                "include_ai_enhancement": False
            }
        }
