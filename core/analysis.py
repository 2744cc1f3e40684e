"""
Clinical Transcript Analysis Engine
===================================

Facade over the formatter, classifier, extractor and assembler:

    transcript -> normalize -> classify -> extract -> assemble -> ClinicalAnalysisResult

Architecture Pattern: Facade + Dependency Injection
- The engine owns no rules itself; every stage is injected
- The template registry is shared by classifier and assembler

The engine is deterministic for a given transcript, except for the note's
created_at/last_modified timestamps. Input validation (minimum length) is
the caller's job; `validate_transcript` is that boundary. When the engine
fails anyway, callers substitute `build_fallback_document`.
"""

import asyncio
import logging
from datetime import datetime
from typing import Optional, Union

from core.assembler import NoteAssembler
from core.classifier import TemplateClassifier
from core.extractor import (
    DEFAULT_VOCABULARY,
    ExtractionVocabulary,
    build_clinical_context,
    extract,
)
from core.formatter import expand_medical_abbreviations
from core.templates import FALLBACK_TEMPLATE_ID, TemplateRegistry, default_registry
from exceptions import AnalysisError, TranscriptValidationError
from models import (
    ClinicalAnalysisResult,
    ClinicalContext,
    DocumentationResult,
    EncounterInfo,
    EncounterType,
    PatientInfo,
)

logger = logging.getLogger(__name__)

MIN_TRANSCRIPT_LENGTH = 10
FALLBACK_CONFIDENCE = 0.5
FALLBACK_SUBJECTIVE_MAX_CHARS = 200

PatientInput = Union[PatientInfo, dict, None]


def validate_transcript(transcript, min_length: int = MIN_TRANSCRIPT_LENGTH) -> str:
    """
    Reject missing or too-short transcripts before any analysis runs.

    Returns:
        The transcript, stripped

    Raises:
        TranscriptValidationError: Not a string, or shorter than min_length after trimming
    """
    if not isinstance(transcript, str):
        raise TranscriptValidationError("Transcript is required", 0, min_length)
    stripped = transcript.strip()
    if len(stripped) < min_length:
        raise TranscriptValidationError(
            f"Transcript too short (minimum {min_length} characters)",
            len(stripped),
            min_length,
        )
    return stripped


def _patient(patient_info: PatientInput) -> PatientInfo:
    if isinstance(patient_info, PatientInfo):
        return patient_info
    return PatientInfo(**(patient_info or {}))


def build_fallback_document(
    transcript,
    patient_info: PatientInput = None,
    registry: Optional[TemplateRegistry] = None,
    max_chars: int = FALLBACK_SUBJECTIVE_MAX_CHARS,
    now: Optional[datetime] = None,
) -> ClinicalAnalysisResult:
    """
    The document returned when analysis fails.

    Always a progress note at confidence 0.5 whose subjective section holds
    the start of the transcript (at most max_chars, ellipsis included).
    Every other section and every finding list is empty.
    """
    registry = registry or default_registry()
    now = now or datetime.now()
    text = transcript.strip() if isinstance(transcript, str) else ""
    if len(text) > max_chars:
        text = text[:max_chars - 3].rstrip() + "..."

    note = registry.create_empty_note(FALLBACK_TEMPLATE_ID, now=now)
    note.sections["subjective"] = text

    try:
        patient = _patient(patient_info)
    except (TypeError, ValueError):
        patient = PatientInfo()

    return ClinicalAnalysisResult(
        suggested_template=FALLBACK_TEMPLATE_ID,
        confidence=FALLBACK_CONFIDENCE,
        patient_info=patient,
        encounter_info=EncounterInfo(
            date=now.strftime("%Y-%m-%d"),
            time=now.strftime("%H:%M"),
            type=EncounterType.ROUNDS,
        ),
        structured_note=note,
        completeness_score=0.0,
    )


class ClinicalAnalysisEngine:
    """
    Turns a transcript into a ClinicalAnalysisResult.

    Example:
        engine = ClinicalAnalysisEngine()
        result = engine.analyze("Patient is alert. GCS 15. Plan for MRI tomorrow.")
        print(result.suggested_template, result.structured_note.sections)
    """

    def __init__(
        self,
        registry: Optional[TemplateRegistry] = None,
        classifier: Optional[TemplateClassifier] = None,
        assembler: Optional[NoteAssembler] = None,
        vocabulary: ExtractionVocabulary = DEFAULT_VOCABULARY,
    ):
        self.registry = registry or default_registry()
        self.classifier = classifier or TemplateClassifier(self.registry)
        self.assembler = assembler or NoteAssembler(self.registry)
        self.vocabulary = vocabulary

    def analyze(
        self,
        transcript: str,
        patient_info: PatientInput = None,
        encounter_type_hint: Optional[str] = None,
    ) -> ClinicalAnalysisResult:
        """
        Analyze one transcript.

        Raises:
            AnalysisError: transcript is not a string or patient_info is malformed
        """
        if not isinstance(transcript, str):
            raise AnalysisError(
                "Transcript must be a string",
                details={"received_type": type(transcript).__name__},
            )
        try:
            patient = _patient(patient_info)
        except (TypeError, ValueError) as e:
            raise AnalysisError("Invalid patient information", details={"reason": str(e)}) from e

        text = expand_medical_abbreviations(transcript)
        choice = self.classifier.classify(text, encounter_type_hint)
        extraction = extract(text, choice.encounter_type, self.vocabulary)
        note = self.assembler.assemble(choice.template_id, text, extraction)

        result = ClinicalAnalysisResult(
            suggested_template=choice.template_id,
            confidence=choice.confidence,
            patient_info=patient,
            encounter_info=extraction.encounter_info,
            structured_note=note,
            key_findings=extraction.findings,
            medical_terminology=extraction.terminology,
            follow_up_items=extraction.follow_up_items,
            timestamps=extraction.timestamps,
            completeness_score=self.assembler.score(note),
        )
        logger.info(
            f"Analyzed transcript ({len(text)} chars): template={result.suggested_template}, "
            f"confidence={result.confidence:.2f}, completeness={result.completeness_score:.2f}"
        )
        return result

    async def aanalyze(
        self,
        transcript: str,
        patient_info: PatientInput = None,
        encounter_type_hint: Optional[str] = None,
    ) -> ClinicalAnalysisResult:
        return await asyncio.to_thread(self.analyze, transcript, patient_info, encounter_type_hint)

    def document(
        self,
        transcript,
        patient_info: PatientInput = None,
        encounter_type_hint: Optional[str] = None,
        fallback_max_chars: int = FALLBACK_SUBJECTIVE_MAX_CHARS,
    ) -> DocumentationResult:
        """
        Analyze, substituting the fallback document if analysis fails.

        Callers still validate length first; this only guards against
        malformed input reaching the engine.
        """
        used_fallback = True
        try:
            result = self.analyze(transcript, patient_info, encounter_type_hint)
            context = build_clinical_context(
                expand_medical_abbreviations(transcript), result.key_findings
            )
            used_fallback = False
        except AnalysisError as e:
            logger.warning(f"Analysis failed, using fallback document: {e.message}")
        except Exception as e:
            logger.exception(f"Unexpected analysis failure, using fallback document: {e}")

        if used_fallback:
            result = build_fallback_document(transcript, patient_info, self.registry, fallback_max_chars)
            context = ClinicalContext()

        return DocumentationResult(
            clinical_documentation=result,
            clinical_context=context,
            fallback=used_fallback,
            transcript_length=len(transcript) if isinstance(transcript, str) else 0,
        )
