"""
Domain Models for NeuroScribe
=============================

This module defines the core data structures used throughout the application.
We use Pydantic for several important reasons:

1. **Validation**: Automatically validates data types and constraints
2. **Serialization**: Easy conversion to/from JSON for the API and job store
3. **Documentation**: Self-documenting with type hints
4. **Immutability**: Templates and request options are frozen

Design Principle: These models are "pure" - they have no dependencies on
external services, databases, or frameworks. This makes them highly reusable
and testable.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional, List, Dict, Mapping
from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProcessingStatus(str, Enum):
    """
    Enum for tracking the status of a documentation job.

    Using str, Enum allows JSON serialization while maintaining type safety.
    """
    PENDING = "pending"
    TRANSCRIBING = "transcribing"
    ANALYZING = "analyzing"
    ENHANCING = "enhancing"
    COMPLETED = "completed"
    FAILED = "failed"


class TranscriptionProvider(str, Enum):
    """Speech-to-text providers the orchestrator knows how to build."""
    GROQ = "groq"
    LITELLM = "litellm"
    ASSEMBLYAI = "assemblyai"
    WHISPER = "whisper"


# =============================================================================
# Transcription Models
# =============================================================================

class TranscriptionConfig(BaseModel):
    """
    Per-request options passed to a provider adapter.

    Every field is optional; adapters fall back to their own defaults
    (model whisper-large-v3, response format json, temperature 0).
    """
    model_config = ConfigDict(frozen=True)

    model: Optional[str] = Field(default=None, description="Provider model override")
    language: Optional[str] = Field(default=None, description="Language hint (ISO code)")
    temperature: float = Field(default=0.0, ge=0.0, le=1.0, description="Sampling temperature")
    prompt: Optional[str] = Field(default=None, description="Vocabulary / context hint")
    response_format: str = Field(default="json", description="Requested response format")


class Utterance(BaseModel):
    """
    A single diarized utterance.

    Times are seconds from the start of the recording.
    """
    speaker: str = Field(..., description="Provider speaker label (e.g. 'A', 'B')")
    text: str = Field(default="", description="What was said")
    start: float = Field(default=0.0, ge=0.0, description="Start time in seconds")
    end: float = Field(default=0.0, ge=0.0, description="End time in seconds")
    confidence: Optional[float] = Field(
        default=None,
        ge=0.0,
        le=1.0,
        description="Recognition confidence (0.0-1.0)"
    )

    @property
    def duration(self) -> float:
        """Returns the duration of this utterance in seconds."""
        return max(0.0, self.end - self.start)

    @property
    def word_count(self) -> int:
        return len(self.text.split())

    class Config:
        from_attributes = True


class TranscriptionMetadata(BaseModel):
    """Optional measurements reported by the provider."""
    duration: Optional[float] = Field(default=None, ge=0.0, description="Audio duration in seconds")
    confidence: Optional[float] = Field(default=None, ge=0.0, le=1.0, description="Overall confidence")
    speaker_count: Optional[int] = Field(default=None, ge=0, description="Distinct speakers detected")
    word_count: Optional[int] = Field(default=None, ge=0, description="Words in the transcript")


class TranscriptionResult(BaseModel):
    """
    Represents the output of a transcription provider.

    Keeping this separate from the clinical note allows us to:
    1. Cache transcriptions independently
    2. Re-analyze a transcript with different templates
    3. Debug issues at each stage separately
    """
    text: str = Field(default="", description="Formatted transcript")
    model: str = Field(..., description="Provider and model that produced the text, e.g. groq/whisper-large-v3")
    fallback: bool = Field(
        default=False,
        description="True when a provider other than the first candidate produced this result"
    )
    speakers: List[str] = Field(
        default_factory=list,
        description="Distinct speaker labels in order of first appearance"
    )
    raw_utterances: List[Utterance] = Field(
        default_factory=list,
        description="Diarized utterances (empty for providers without diarization)"
    )
    metadata: TranscriptionMetadata = Field(
        default_factory=TranscriptionMetadata,
        description="Provider measurements"
    )

    @property
    def has_diarization(self) -> bool:
        return bool(self.raw_utterances)

    class Config:
        from_attributes = True


# =============================================================================
# Template Models
# =============================================================================

class SectionType(str, Enum):
    """How a section's content is meant to be rendered."""
    TEXT = "text"
    LIST = "list"
    STRUCTURED = "structured"
    VITAL_SIGNS = "vital_signs"
    ASSESSMENT_PLAN = "assessment_plan"


class TemplateSection(BaseModel):
    """One section of a note template."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Section key used in StructuredNote.sections")
    title: str = Field(..., description="Display title")
    required: bool = Field(default=True, description="Counts toward completeness")
    type: SectionType = Field(default=SectionType.TEXT, description="Rendering hint")
    placeholder: str = Field(default="", description="Hint shown in an empty editor")
    examples: tuple[str, ...] = Field(default=(), description="Example content")


class NoteTemplate(BaseModel):
    """A named, ordered list of sections. Templates are immutable."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Template identifier, e.g. neuro_rounds")
    name: str = Field(..., description="Display name")
    description: str = Field(default="", description="What the template is for")
    specialty: str = Field(default="general", description="Clinical specialty")
    context: tuple[str, ...] = Field(default=(), description="Encounter contexts it suits")
    sections: tuple[TemplateSection, ...] = Field(..., description="Ordered sections")

    @property
    def section_ids(self) -> list[str]:
        return [section.id for section in self.sections]

    @property
    def required_section_ids(self) -> list[str]:
        return [section.id for section in self.sections if section.required]


# =============================================================================
# Clinical Analysis Models
# =============================================================================

class EncounterType(str, Enum):
    ROUNDS = "rounds"
    CONSULT = "consult"
    FAMILY_MEETING = "family_meeting"
    PROCEDURE = "procedure"
    DISCHARGE = "discharge"


class NoteStatus(str, Enum):
    DRAFT = "draft"
    COMPLETE = "complete"
    SIGNED = "signed"
    AMENDED = "amended"


class FollowUpPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class PatientInfo(BaseModel):
    """
    Patient identification supplied by the caller.

    Never inferred from the transcript; it is passed through unchanged.
    """
    model_config = ConfigDict(extra="allow")

    id: Optional[str] = None
    name: Optional[str] = None
    mrn: Optional[str] = None
    age: Optional[int] = Field(default=None, ge=0)
    date_of_birth: Optional[str] = None
    sex: Optional[str] = None


class EncounterInfo(BaseModel):
    """Where, when and with whom the encounter happened."""
    date: str = Field(default="", description="Date mentioned in the transcript, else the analysis date")
    time: str = Field(default="", description="Time mentioned in the transcript, else the analysis time")
    type: EncounterType = Field(default=EncounterType.ROUNDS, description="Encounter type")
    location: str = Field(default="", description="Care location mentioned in the transcript")
    duration_minutes: Optional[int] = Field(default=None, ge=0, description="Stated encounter length")
    providers: List[str] = Field(default_factory=list, description="Clinicians named in the transcript")


class KeyFindings(BaseModel):
    """Deduplicated findings, each list in order of first mention."""
    symptoms: List[str] = Field(default_factory=list)
    examinations: List[str] = Field(default_factory=list)
    diagnoses: List[str] = Field(default_factory=list)
    medications: List[str] = Field(default_factory=list)
    procedures: List[str] = Field(default_factory=list)
    plans: List[str] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not any(
            (self.symptoms, self.examinations, self.diagnoses,
             self.medications, self.procedures, self.plans)
        )


class TerminologyEntry(BaseModel):
    term: str = Field(..., description="Abbreviation as written in notes, e.g. GCS")
    context: str = Field(..., description="First sentence mentioning the term")
    normalized: str = Field(..., description="Expanded form, e.g. Glasgow Coma Scale")


class FollowUpItem(BaseModel):
    item: str = Field(..., description="Sentence describing the follow-up")
    priority: FollowUpPriority = Field(default=FollowUpPriority.MEDIUM)
    due_date: Optional[str] = None
    assigned_to: Optional[str] = None


class TimestampEntry(BaseModel):
    section: str = Field(..., description="Note section the statement belongs to")
    time_mentioned: str = Field(..., description="Time expression as spoken")
    content: str = Field(..., description="Sentence containing the time expression")


class StructuredNote(BaseModel):
    """
    A note filled from a template.

    `sections` has exactly the template's section ids as keys, in template
    order. Sections with nothing extractable are empty strings, never
    invented prose.
    """
    template_id: str
    template_name: str
    sections: Dict[str, str] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=datetime.now)
    last_modified: datetime = Field(default_factory=datetime.now)
    status: NoteStatus = Field(default=NoteStatus.DRAFT)

    def to_formatted_string(self, titles: Optional[Mapping[str, str]] = None, width: int = 66) -> str:
        """
        Returns a boxed plain-text rendering for display or export.

        Args:
            titles: Optional section id -> display title mapping
            width: Inner width of the box
        """
        titles = titles or {}
        border = "=" * (width + 2)
        rule = "-" * (width + 2)
        lines = [border, f"| {self.template_name.upper()}".ljust(width + 1) + "|", border]
        for index, (section_id, content) in enumerate(self.sections.items()):
            if index:
                lines.append(rule)
            title = titles.get(section_id, section_id.replace("_", " ").title())
            lines.append(f"| {title.upper()}".ljust(width + 1) + "|")
            lines.append(rule)
            lines.extend(self._wrap_text(content or "(not documented)", width))
        lines.append(border)
        return "\n".join(lines)

    @staticmethod
    def _wrap_text(text: str, width: int) -> list[str]:
        """Helper to wrap text for formatted output."""
        lines = []
        for paragraph in text.split("\n"):
            current_line = "| "
            for word in paragraph.split():
                if len(current_line) + len(word) + 1 <= width:
                    current_line += word + " "
                else:
                    lines.append(current_line.ljust(width + 1) + "|")
                    current_line = "| " + word + " "
            if current_line.strip("| "):
                lines.append(current_line.ljust(width + 1) + "|")
        return lines or ["|" + " " * width + "|"]


class ClinicalAnalysisResult(BaseModel):
    """
    Everything the analysis engine derives from one transcript.

    `confidence` is clamped to [0, 1] on construction, and the note's
    section keys must equal the suggested template's section ids.
    """
    suggested_template: str = Field(..., description="Template id chosen by the classifier")
    confidence: float = Field(..., description="Classifier confidence, clamped to [0, 1]")
    patient_info: PatientInfo = Field(default_factory=PatientInfo)
    encounter_info: EncounterInfo = Field(default_factory=EncounterInfo)
    structured_note: StructuredNote
    key_findings: KeyFindings = Field(default_factory=KeyFindings)
    medical_terminology: List[TerminologyEntry] = Field(default_factory=list)
    follow_up_items: List[FollowUpItem] = Field(default_factory=list)
    timestamps: List[TimestampEntry] = Field(default_factory=list)
    completeness_score: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Fraction of required sections with content"
    )

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, value):
        value = float(value)
        return min(1.0, max(0.0, value))


class Urgency(str, Enum):
    ROUTINE = "routine"
    URGENT = "urgent"
    EMERGENT = "emergent"


class VitalSigns(BaseModel):
    gcs: Optional[int] = Field(default=None, ge=3, le=15, description="Glasgow Coma Scale total")
    blood_pressure: Optional[str] = Field(default=None, description="Systolic/diastolic, e.g. 120/80")
    heart_rate: Optional[int] = Field(default=None, ge=0)
    icp_reading: Optional[int] = Field(default=None, description="Intracranial pressure in mmHg")


class ClinicalContext(BaseModel):
    """Index fields for persistence and triage: diagnosis, vitals, urgency, tags."""
    primary_diagnosis: Optional[str] = None
    vital_signs: VitalSigns = Field(default_factory=VitalSigns)
    urgency: Urgency = Urgency.ROUTINE
    tags: List[str] = Field(default_factory=list)


class NoteEnhancement(BaseModel):
    """
    Optional LLM suggestions layered on top of a rule-based note.

    Unknown keys in the model's JSON are ignored.
    """
    model_config = ConfigDict(extra="ignore")

    neurosurgical_insights: List[str] = Field(default_factory=list)
    clinical_risk_assessment: Dict[str, Any] = Field(default_factory=dict)
    documentation_improvements: List[str] = Field(default_factory=list)
    medical_accuracy_check: Dict[str, Any] = Field(default_factory=dict)
    follow_up_priorities: List[str] = Field(default_factory=list)


class DocumentationResult(BaseModel):
    """Analysis output plus how it was produced."""
    clinical_documentation: ClinicalAnalysisResult
    clinical_context: ClinicalContext = Field(default_factory=ClinicalContext)
    ai_enhancement: Optional[NoteEnhancement] = None
    fallback: bool = Field(
        default=False,
        description="True when the deterministic fallback document was substituted"
    )
    generated_at: datetime = Field(default_factory=datetime.now)
    transcript_length: int = Field(default=0, ge=0)


class ProcessingResult(BaseModel):
    """
    Complete result of processing an audio file.

    This is our main "aggregate" - it combines all related data into
    a single coherent unit.

    Benefits:
    1. Single object to pass around (reduces parameter counts)
    2. Maintains consistency between related data
    3. Easy to serialize for API responses or storage
    """
    id: str = Field(..., description="Unique identifier for this processing job")
    status: ProcessingStatus = Field(
        default=ProcessingStatus.PENDING,
        description="Current processing status"
    )
    audio_file_path: str = Field(..., description="Path to the original audio file")
    transcription: Optional[TranscriptionResult] = Field(
        default=None,
        description="Transcription result (populated after transcription)"
    )
    documentation: Optional[DocumentationResult] = Field(
        default=None,
        description="Structured documentation (populated after analysis)"
    )
    error_message: Optional[str] = Field(
        default=None,
        description="Clinician-readable error message if processing failed"
    )
    created_at: datetime = Field(
        default_factory=datetime.now,
        description="When this processing job was created"
    )
    completed_at: Optional[datetime] = Field(
        default=None,
        description="When processing completed (success or failure)"
    )
    processing_time_seconds: Optional[float] = Field(
        default=None,
        description="Total time taken to process"
    )

    class Config:
        from_attributes = True
        # Allow mutation - we update this object as processing progresses
        frozen = False


# Type alias for cleaner function signatures
AudioPath = str
