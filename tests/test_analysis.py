"""Tests for note assembly, the analysis engine and the fallback document."""

from datetime import datetime

import pytest

from core.analysis import (
    ClinicalAnalysisEngine,
    build_fallback_document,
    validate_transcript,
)
from core.assembler import NoteAssembler, completeness_score
from core.extractor import extract
from core.templates import default_registry
from exceptions import AnalysisError, TranscriptValidationError
from models import EncounterType, PatientInfo

from tests.conftest import CONSULT_TRANSCRIPT, FAMILY_MEETING_TRANSCRIPT, ROUNDS_TRANSCRIPT


class ExplodingAssembler(NoteAssembler):
    def assemble(self, *args, **kwargs):
        raise RuntimeError("assembler bug")


class TestValidateTranscript:

    def test_returns_stripped_transcript(self):
        assert validate_transcript("   Patient is stable today.   ") == "Patient is stable today."

    def test_rejects_short_transcript(self):
        with pytest.raises(TranscriptValidationError) as exc_info:
            validate_transcript("  too short ", min_length=20)
        assert exc_info.value.details == {"transcript_length": 9, "min_length": 20}

    def test_rejects_under_ten_characters_by_default(self):
        with pytest.raises(TranscriptValidationError):
            validate_transcript("GCS 15")

    def test_rejects_missing_transcript(self):
        with pytest.raises(TranscriptValidationError) as exc_info:
            validate_transcript(None)
        assert exc_info.value.message == "Transcript is required"


class TestNoteAssembler:

    def test_neuro_rounds_sections(self):
        extraction = extract(ROUNDS_TRANSCRIPT)
        note = NoteAssembler().assemble("neuro_rounds", ROUNDS_TRANSCRIPT, extraction)
        assert note.sections == {
            "subjective": "",
            "objective": "Examination findings: GCS 13/15, Pupils equal, MRI.",
            "neuro_exam": "GCS 13/15. Pupils equal.",
            "assessment_plan": "Plan for immediate MRI and then craniotomy",
        }

    def test_sections_follow_template_order(self):
        extraction = extract(CONSULT_TRANSCRIPT, EncounterType.CONSULT)
        note = NoteAssembler().assemble("neuro_consult", CONSULT_TRANSCRIPT, extraction)
        assert list(note.sections) == default_registry().get("neuro_consult").section_ids
        assert note.sections["chief_complaint"] == "Patient reports headaches for three weeks"

    def test_family_meeting_sections(self):
        extraction = extract(FAMILY_MEETING_TRANSCRIPT, EncounterType.FAMILY_MEETING)
        note = NoteAssembler().assemble("family_meeting", FAMILY_MEETING_TRANSCRIPT, extraction)
        assert note.sections["attendees"] == "family"
        assert note.sections["discussion_topics"] == "Prognosis discussion\nGoals of care"
        assert note.sections["decisions_made"] == ""

    def test_plan_fallback_matches_whole_word(self):
        transcript = "The shunt implant was revised without issue."
        note = NoteAssembler().assemble("progress_note", transcript, extract(transcript))
        assert note.sections["assessment_plan"] == ""

    @pytest.mark.parametrize("transcript, expected", [
        ("New patient referral for consult. My history: I was there for two weeks.", ""),
        ("Patient is here for evaluation of neck pain. Exam unremarkable.",
         "Patient is here for evaluation of neck pain."),
        ("Seen in clinic today. She complains of numbness in both hands.",
         "She complains of numbness in both hands."),
    ])
    def test_chief_complaint_is_a_whole_sentence(self, transcript, expected):
        note = NoteAssembler().assemble("neuro_consult", transcript, extract(transcript))
        assert note.sections["chief_complaint"] == expected

    def test_timestamps_are_shared(self):
        now = datetime(2024, 3, 1, 8, 30)
        note = NoteAssembler().assemble("progress_note", ROUNDS_TRANSCRIPT, extract(ROUNDS_TRANSCRIPT), now=now)
        assert note.created_at == note.last_modified == now

    def test_completeness_counts_required_sections_only(self):
        registry = default_registry()
        note = registry.create_empty_note("neuro_consult")
        note.sections["imaging"] = "CT head: no acute findings"
        assert completeness_score(note, registry.get("neuro_consult")) == 0.0
        note.sections["chief_complaint"] = "Headache"
        assert completeness_score(note, registry.get("neuro_consult")) == 0.25

    def test_whitespace_is_not_content(self):
        registry = default_registry()
        note = registry.create_empty_note("progress_note")
        note.sections["subjective"] = "   "
        assert completeness_score(note, registry.get("progress_note")) == 0.0


class TestClinicalAnalysisEngine:

    @pytest.fixture
    def engine(self):
        return ClinicalAnalysisEngine()

    def test_rounds_transcript(self, engine):
        result = engine.analyze(ROUNDS_TRANSCRIPT)
        assert result.suggested_template == "neuro_rounds"
        assert result.confidence == pytest.approx(0.82)
        assert result.completeness_score == 0.75
        assert "GCS 13/15" in result.key_findings.examinations
        assert "Pupils equal" in result.key_findings.examinations
        assert "MRI" in result.key_findings.procedures
        assert result.key_findings.diagnoses == []

    def test_note_keys_match_template(self, engine):
        for transcript in (ROUNDS_TRANSCRIPT, FAMILY_MEETING_TRANSCRIPT, CONSULT_TRANSCRIPT):
            result = engine.analyze(transcript)
            template = default_registry().get(result.suggested_template)
            assert list(result.structured_note.sections) == template.section_ids

    def test_confidence_is_clamped(self, engine):
        result = engine.analyze("Family meeting to discuss the decision on goals of care and prognosis.")
        assert result.suggested_template == "family_meeting"
        assert result.confidence == 1.0

    def test_normalizes_abbreviations_first(self, engine):
        result = engine.analyze("Post-op day 2, g.c.s 14 and icp 10 overnight. Brain MRI stable.")
        assert result.suggested_template == "neuro_rounds"
        assert "GCS 14" in result.key_findings.examinations

    def test_patient_info_passes_through(self, engine):
        result = engine.analyze(ROUNDS_TRANSCRIPT, {"name": "Jane Doe", "mrn": "12345"})
        assert result.patient_info == PatientInfo(name="Jane Doe", mrn="12345")

    def test_rejects_non_string(self, engine):
        with pytest.raises(AnalysisError):
            engine.analyze(12345)

    def test_rejects_malformed_patient_info(self, engine):
        with pytest.raises(AnalysisError):
            engine.analyze(ROUNDS_TRANSCRIPT, {"age": -5})

    @pytest.mark.asyncio
    async def test_aanalyze(self, engine):
        result = await engine.aanalyze(ROUNDS_TRANSCRIPT)
        assert result.suggested_template == "neuro_rounds"


class TestDocument:

    def test_successful_analysis(self):
        documentation = ClinicalAnalysisEngine().document(ROUNDS_TRANSCRIPT)
        assert documentation.fallback is False
        assert documentation.transcript_length == len(ROUNDS_TRANSCRIPT)
        assert documentation.clinical_context.vital_signs.gcs == 13
        assert documentation.ai_enhancement is None

    def test_engine_failure_uses_fallback(self):
        engine = ClinicalAnalysisEngine(assembler=ExplodingAssembler())
        documentation = engine.document(ROUNDS_TRANSCRIPT)
        analysis = documentation.clinical_documentation
        assert documentation.fallback is True
        assert analysis.suggested_template == "progress_note"
        assert analysis.confidence == 0.5
        assert analysis.structured_note.sections["subjective"] == ROUNDS_TRANSCRIPT

    def test_malformed_patient_info_uses_fallback(self):
        documentation = ClinicalAnalysisEngine().document(ROUNDS_TRANSCRIPT, {"age": -5})
        assert documentation.fallback is True
        assert documentation.clinical_documentation.patient_info == PatientInfo()


class TestFallbackDocument:

    def test_truncates_long_transcripts(self):
        result = build_fallback_document("x" * 300)
        subjective = result.structured_note.sections["subjective"]
        assert len(subjective) == 200
        assert subjective.endswith("...")

    def test_short_transcript_kept_whole(self):
        result = build_fallback_document("  Patient is comfortable.  ")
        assert result.structured_note.sections["subjective"] == "Patient is comfortable."

    def test_everything_else_is_empty(self):
        now = datetime(2024, 3, 1, 8, 30)
        result = build_fallback_document("Patient is comfortable.", now=now)
        assert result.suggested_template == "progress_note"
        assert result.confidence == 0.5
        assert result.structured_note.sections["objective"] == ""
        assert result.structured_note.sections["assessment_plan"] == ""
        assert result.key_findings.is_empty()
        assert result.follow_up_items == []
        assert result.encounter_info.date == "2024-03-01"
        assert result.encounter_info.time == "08:30"

    def test_non_string_transcript(self):
        result = build_fallback_document(None)
        assert result.structured_note.sections["subjective"] == ""

    def test_custom_length(self):
        result = build_fallback_document("abcdefghij", max_chars=8)
        assert result.structured_note.sections["subjective"] == "abcde..."
