"""Tests for template selection and the template registry."""

import pytest

from core.classifier import (
    ClassifierKeywords,
    ConfidenceWeights,
    TemplateClassifier,
    classify,
    count_matches,
    score_categories,
)
from core.templates import NEUROSURGERY_TEMPLATES, TemplateRegistry, default_registry
from exceptions import TemplateNotFoundError
from models import EncounterType

from tests.conftest import CONSULT_TRANSCRIPT, FAMILY_MEETING_TRANSCRIPT, ROUNDS_TRANSCRIPT


class TestScoring:

    def test_counts_distinct_keywords(self):
        assert count_matches("gcs gcs gcs and icp", ("gcs", "icp", "evd")) == 2

    def test_scores_are_case_insensitive(self):
        scores = score_categories("GCS 13. Pupils equal. Plan for MRI.")
        assert scores.neuro == 2
        assert scores.rounds == 1


class TestClassify:

    def test_neuro_rounds_transcript(self):
        choice = classify(ROUNDS_TRANSCRIPT)
        assert choice.template_id == "neuro_rounds"
        assert choice.encounter_type == EncounterType.ROUNDS
        assert choice.confidence >= 0.7
        assert choice.confidence == pytest.approx(0.82)

    def test_family_meeting_transcript(self):
        choice = classify(FAMILY_MEETING_TRANSCRIPT)
        assert choice.template_id == "family_meeting"
        assert choice.encounter_type == EncounterType.FAMILY_MEETING
        assert choice.confidence >= 0.85

    def test_family_meeting_wins_over_consult(self):
        transcript = (
            "Good morning. The family asked about prognosis. What brings you in, "
            "any history of seizures, and we will order a scan."
        )
        assert classify(transcript).template_id == "family_meeting"

    def test_consult_transcript(self):
        choice = classify(CONSULT_TRANSCRIPT)
        assert choice.template_id == "neuro_consult"
        assert choice.encounter_type == EncounterType.CONSULT
        assert choice.confidence > 0.75

    def test_consult_with_neuro_evidence_uses_higher_base(self):
        plain = classify("New patient referral, chief complaint of back ache.")
        neuro = classify("New patient referral, chief complaint of brain fog.")
        assert plain.template_id == neuro.template_id == "neuro_consult"
        assert neuro.confidence == pytest.approx(plain.confidence + 0.05)

    def test_rounds_hint_selects_progress_note(self):
        choice = classify("Patient resting comfortably, no complaints.", encounter_type_hint="rounds")
        assert choice.template_id == "progress_note"
        assert choice.confidence == pytest.approx(0.6)

    def test_enum_hint_is_accepted(self):
        choice = classify("Patient resting comfortably, no complaints.", EncounterType.ROUNDS)
        assert choice.template_id == "progress_note"

    def test_two_rounds_keywords_select_progress_note(self):
        choice = classify("Stable overnight, eating well.")
        assert choice.template_id == "progress_note"
        assert choice.confidence == pytest.approx(0.6)

    def test_single_consult_keyword(self):
        choice = classify("Patient asked to see the doctor again.")
        assert choice.template_id == "neuro_consult"
        assert choice.confidence == pytest.approx(0.6)

    def test_default_is_progress_note(self):
        choice = classify("Patient resting comfortably, no complaints.")
        assert choice.template_id == "progress_note"
        assert choice.confidence == pytest.approx(0.5)

    def test_confidence_is_not_clamped_by_classifier(self):
        transcript = "family meeting to discuss the decision on goals of care and prognosis"
        assert classify(transcript).confidence > 1.0

    def test_injected_weights_and_keywords(self):
        keywords = ClassifierKeywords(neuro=(), meeting=("huddle",), consult=(), rounds=())
        weights = ConfidenceWeights(meeting_threshold=1, meeting_base=0.5, meeting_step=0.1)
        choice = classify("Team huddle at noon.", keywords=keywords, weights=weights)
        assert choice.template_id == "family_meeting"
        assert choice.confidence == pytest.approx(0.6)


class TestTemplateClassifier:

    def test_validates_choice_against_registry(self):
        registry = TemplateRegistry(NEUROSURGERY_TEMPLATES)
        classifier = TemplateClassifier(registry)
        assert classifier.classify(ROUNDS_TRANSCRIPT).template_id == "neuro_rounds"
        with pytest.raises(TemplateNotFoundError):
            classifier.classify("Patient resting comfortably, no complaints.")


class TestTemplateRegistry:

    def test_default_templates(self):
        registry = default_registry()
        assert registry.template_ids == [
            "neuro_rounds", "neuro_consult", "family_meeting", "progress_note", "discharge_summary",
        ]

    def test_get_unknown_template(self):
        with pytest.raises(TemplateNotFoundError) as exc_info:
            default_registry().get("op_note")
        assert exc_info.value.details["template_id"] == "op_note"
        assert "neuro_rounds" in exc_info.value.details["available_templates"]

    def test_find_returns_none_for_unknown(self):
        assert default_registry().find("op_note") is None

    def test_by_specialty_includes_general(self):
        ids = [t.id for t in default_registry().by_specialty("neurosurgery")]
        assert "neuro_rounds" in ids and "progress_note" in ids

    def test_by_context(self):
        ids = [t.id for t in default_registry().by_context("referral")]
        assert ids == ["neuro_consult"]

    def test_empty_note_has_every_section(self):
        note = default_registry().create_empty_note("neuro_consult")
        assert list(note.sections) == ["chief_complaint", "hpi", "physical_exam", "imaging", "impression_plan"]
        assert all(value == "" for value in note.sections.values())

    def test_duplicate_ids_rejected(self):
        with pytest.raises(ValueError):
            TemplateRegistry(NEUROSURGERY_TEMPLATES + NEUROSURGERY_TEMPLATES[:1])

    def test_required_sections(self):
        template = default_registry().get("neuro_consult")
        assert "imaging" not in template.required_section_ids
