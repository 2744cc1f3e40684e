"""Tests for transcript normalization and diarized rendering."""

import pytest

from core.formatter import (
    PATIENT_ROLE,
    PROVIDER_ROLE,
    assign_speaker_roles,
    calculate_speaking_stats,
    confidence_level,
    expand_medical_abbreviations,
    format_labeled_transcript,
    format_timestamp,
)
from models import Utterance


class TestExpandMedicalAbbreviations:

    @pytest.mark.parametrize("raw, expected", [
        ("gcs 13", "GCS 13"),
        ("g.c.s 13", "GCS 13"),
        ("G.C.S. 13", "GCS 13"),
        ("icp stable", "ICP stable"),
        ("i.c.p. rising", "ICP rising"),
        ("evd in place", "EVD in place"),
        ("ordered an mri and a ct", "ordered an MRI and a CT"),
    ])
    def test_normalizes_abbreviations(self, raw, expected):
        assert expand_medical_abbreviations(raw) == expected

    def test_is_idempotent(self):
        once = expand_medical_abbreviations("g.c.s 13, icp 12, bp 120/80, hr 88")
        assert expand_medical_abbreviations(once) == once

    def test_collapses_spaces_and_strips(self):
        assert expand_medical_abbreviations("  patient   is  alert ") == "patient is alert"

    def test_does_not_touch_words_containing_abbreviations(self):
        assert expand_medical_abbreviations("the doctor ordered a factor") == "the doctor ordered a factor"

    def test_empty_text(self):
        assert expand_medical_abbreviations("") == ""
        assert expand_medical_abbreviations(None) == ""


class TestAssignSpeakerRoles:

    def test_clinician_and_patient(self):
        utterances = [
            Utterance(speaker="A", text="How are you feeling today? Any new symptoms?"),
            Utterance(speaker="B", text="I feel dizzy and I have a headache."),
        ]
        roles = assign_speaker_roles(utterances)
        assert roles == {"A": PROVIDER_ROLE, "B": PATIENT_ROLE}

    def test_speaker_without_keywords_is_numbered(self):
        utterances = [
            Utterance(speaker="A", text="Do you take any medication?"),
            Utterance(speaker="B", text="Yes."),
            Utterance(speaker="C", text="She also said it hurts at night."),
        ]
        roles = assign_speaker_roles(utterances)
        assert roles["A"] == PROVIDER_ROLE
        assert roles["B"] == "speaker 2"
        assert roles["C"] == PATIENT_ROLE

    @pytest.mark.parametrize("first, second", [("A", "B"), ("B", "A")])
    def test_clinician_tie_goes_to_first_speaker(self, first, second):
        text = {"A": "Any new symptoms since yesterday?", "B": "What about the medication?"}
        utterances = [
            Utterance(speaker=first, text=text[first]),
            Utterance(speaker=second, text=text[second]),
        ]
        assert assign_speaker_roles(utterances) == {first: PROVIDER_ROLE, second: "speaker 2"}

    def test_no_keywords_at_all(self):
        utterances = [Utterance(speaker="A", text="Hello."), Utterance(speaker="B", text="Hi.")]
        assert assign_speaker_roles(utterances) == {"A": "speaker 1", "B": "speaker 2"}


class TestTimestampsAndConfidence:

    @pytest.mark.parametrize("seconds, expected", [(0, "00:00"), (5.9, "00:05"), (65, "01:05"), (-3, "00:00")])
    def test_format_timestamp(self, seconds, expected):
        assert format_timestamp(seconds) == expected

    @pytest.mark.parametrize("confidence, expected", [
        (0.95, "HIGH"),
        (0.8, "MED"),
        (0.75, "LOW"),
        (None, None),
    ])
    def test_confidence_level(self, confidence, expected):
        assert confidence_level(confidence) == expected


class TestLabeledTranscript:

    @pytest.fixture
    def utterances(self):
        return [
            Utterance(speaker="A", text="How are you feeling? Any symptoms?", start=0.0, end=4.0, confidence=0.97),
            Utterance(speaker="B", text="I feel better, gcs is fine they said.", start=4.5, end=10.0, confidence=0.8),
            Utterance(speaker="B", text="", start=10.0, end=10.0),
        ]

    def test_renders_roles_times_and_levels(self, utterances):
        rendered = format_labeled_transcript(utterances)
        assert rendered.splitlines() == [
            "[00:00] HEALTHCARE PROVIDER (HIGH): How are you feeling? Any symptoms?",
            "",
            "[00:04] PATIENT (MED): I feel better, GCS is fine they said.",
        ]

    def test_explicit_roles(self, utterances):
        rendered = format_labeled_transcript(utterances, roles={"A": "nurse", "B": "mother"})
        assert rendered.startswith("[00:00] NURSE (HIGH):")

    def test_speaking_stats(self, utterances):
        stats = calculate_speaking_stats(utterances)
        assert [s.speaker for s in stats] == [PROVIDER_ROLE, PATIENT_ROLE]
        assert stats[0].duration_seconds == 4.0
        assert stats[0].percentage == 40.0
        assert stats[1].word_count == 8

    def test_speaking_stats_with_no_duration(self):
        stats = calculate_speaking_stats([Utterance(speaker="A", text="hello")])
        assert stats[0].percentage == 0.0
