"""
Medical Information Extractor
=============================

Rule-based extraction of clinical facts from a transcript:

- key findings (symptoms, examinations, diagnoses, medications, procedures, plans)
- abbreviation terminology with the sentence each term first appears in
- follow-up items and time-referenced statements
- encounter details (date, time, duration, location, named providers)

Every function here is a pure function of its arguments. The phrase tables
live in an `ExtractionVocabulary` value so tests and other specialties can
pass their own tables instead of patching module globals.
"""

import re
from dataclasses import dataclass, field
from typing import Iterable, Optional

from models import (
    ClinicalContext,
    EncounterInfo,
    EncounterType,
    FollowUpItem,
    FollowUpPriority,
    KeyFindings,
    TerminologyEntry,
    TimestampEntry,
    Urgency,
    VitalSigns,
)

_FLAGS = re.IGNORECASE


def _compile(*patterns: str) -> tuple:
    return tuple(re.compile(pattern, _FLAGS) for pattern in patterns)


@dataclass(frozen=True)
class ExtractionVocabulary:
    """Phrase tables and patterns driving extraction."""

    symptom_phrase: re.Pattern = re.compile(
        r"\b(?:experiencing|having|feeling)\s+(?:some\s+)?([^.,!?]+)", _FLAGS
    )
    pain_patterns: tuple = _compile(
        r"\b(?:pain|ache|aching|hurt|hurting)\s+in\s+(?:my\s+|the\s+)?[^.,!?]+",
        r"[^.,!?\s]+\s+(?:pain|ache)\b",
        r"\b(?:chest|back|head|stomach|abdominal)\s+pain\b",
    )
    breathing_phrases: tuple[str, ...] = (
        "shortness of breath",
        "difficulty breathing",
        "trouble breathing",
        "can't breathe",
        "hard to breathe",
        "breathing problems",
    )
    activity_trigger: re.Pattern = re.compile(
        r"\bhappens\s+when\s+([^.,!?]+)|\bwhen\s+(i\b[^.,!?]+)", _FLAGS
    )
    duration_phrase: re.Pattern = re.compile(
        r"\b(?:for|been)\s+(?:about\s+)?(\w+\s+(?:weeks?|months?|days?|years?))\b", _FLAGS
    )
    standalone_symptoms: tuple = _compile(
        r"\bbothering me\b",
        r"\b(?:nausea|vomiting|weakness|numbness|confusion|dizziness|fatigue|tired)\b",
        r"\bnot feeling well\b",
    )
    symptom_fillers: tuple[str, ...] = ("today",)

    examination_patterns: tuple = _compile(
        r"\bgcs\s*\d+(?:\s*/\s*\d+)?|\bglasgow coma scale\b",
        r"\bpupils?\s*(?:are\s+)?(?:equal|reactive|dilated|fixed)\b",
        r"\bmotor\s*\d+/\d+|\bstrength\s*\d+/\d+",
        r"\b(?:alert|oriented|responsive|follows commands)\b",
        r"\belectrocardiogram\b|\becg\b|\bekg\b",
        r"\bmri\b|\bct scan\b|\bct\b|\beeg\b",
        r"\bbaseline assessment\b|\belectrical activity\b",
    )

    ordering_patterns: tuple = _compile(
        r"\b(?:order|ordering|get|obtain)\s+(?:an?\s+)?([\w\s-]+?)(?:\s+to\b|\s*,|\.|$)",
        r"\bi'd like to order\s+([^.,!?]+)",
        r"\blet's\s+(?:order|get|do)\s+(?:an?\s+)?([\w\s-]+)",
    )
    procedure_vocabulary: tuple = _compile(
        r"\belectrocardiogram\b|\becg\b|\bekg\b",
        r"\bmri\b|\bmagnetic resonance imaging\b",
        r"\bct scan\b|\bcomputed tomography\b",
        r"\bx-ray\b|\bradiograph\b",
        r"\bblood test\b|\blab work\b|\blaboratory\b",
        r"\bultrasound\b|\bsonogram\b",
        r"\bbiopsy\b|\bendoscopy\b|\bcolonoscopy\b",
        r"\bstress test\b|\bcardiac catheterization\b",
        r"\bcraniotomy\b|\bcraniectomy\b|\bventriculostomy\b|\blumbar puncture\b|\blaminectomy\b",
    )
    assessment_phrase: re.Pattern = re.compile(
        r"\b(?:baseline|assessment)\s+(?:of\s+)?([^.,!?]+)", _FLAGS
    )

    medication_phrase: re.Pattern = re.compile(
        r"\b(?:medication|medicine|drug|prescription|taking|prescribed)\s+(\w+)", _FLAGS
    )

    diagnosis_terms: tuple[str, ...] = (
        "glioblastoma", "glioma", "meningioma", "brain tumor",
        "traumatic brain injury", "tbi", "subdural hematoma", "epidural hematoma",
        "subarachnoid hemorrhage", "sah", "intracerebral hemorrhage",
        "hydrocephalus", "brain aneurysm", "aneurysm", "arteriovenous malformation", "avm",
        "spinal cord injury", "spinal tumor", "chiari malformation",
    )
    negation_cue: re.Pattern = re.compile(
        r"\b(?:no|not|denies|denied|without|negative for|ruled out|rule out|free of)\b", _FLAGS
    )

    plan_phrase: re.Pattern = re.compile(
        r"\b(?:plan|plans|planning|recommend\w*|we will|we'll|will continue|schedule\w*)\b", _FLAGS
    )

    terminology: tuple[tuple[str, str], ...] = (
        ("gcs", "Glasgow Coma Scale"),
        ("icp", "Intracranial Pressure"),
        ("evd", "External Ventricular Drain"),
        ("ct", "Computed Tomography"),
        ("mri", "Magnetic Resonance Imaging"),
        ("bp", "Blood Pressure"),
        ("hr", "Heart Rate"),
        ("ecg", "Electrocardiogram"),
        ("ekg", "Electrocardiogram"),
    )

    follow_up_patterns: tuple = _compile(
        r"\b(?:follow[\s-]?up|return|appointment|check|monitor|repeat)\w*",
        r"\b(?:continue|stop|discontinue|change|adjust)\w*",
    )

    time_reference: re.Pattern = re.compile(
        r"\b\d{1,2}:\d{2}(?:\s*(?:am|pm))?|\b\d{1,2}\s*(?:am|pm)\b|\bthis (?:morning|afternoon|evening)\b"
        r"|\blast night\b|\bovernight\b|\byesterday\b|\btonight\b|\btomorrow\b|\bin \d+ (?:hours?|days?)\b",
        _FLAGS,
    )
    objective_cue: re.Pattern = re.compile(
        r"\b(?:gcs|pupils?|motor|exam\w*|vitals?|bp|hr|icp|temperature|scan|mri|ct)\b", _FLAGS
    )

    date_pattern: re.Pattern = re.compile(
        r"\b\d{1,2}/\d{1,2}/\d{4}\b|\b\d{4}-\d{2}-\d{2}\b"
        r"|\b(?:january|february|march|april|may|june|july|august|september|october|november|december)"
        r"\s+\d{1,2}(?:st|nd|rd|th)?(?:,?\s+\d{4})?\b",
        _FLAGS,
    )
    time_pattern: re.Pattern = re.compile(r"\b\d{1,2}:\d{2}(?:\s*(?:am|pm))?", _FLAGS)
    duration_minutes: re.Pattern = re.compile(r"\b(\d+)\s*minutes?\b", _FLAGS)
    provider_pattern: re.Pattern = re.compile(
        r"\b(?:(?i:dr)\.?|(?i:doctor))\s+([A-Z][\w'-]+)|\b((?i:attending|resident))\b"
    )
    location_pattern: re.Pattern = re.compile(
        r"\b(icu|ward|emergency|clinic|room \d+|(?-i:ER))\b", _FLAGS
    )


DEFAULT_VOCABULARY = ExtractionVocabulary()


@dataclass(frozen=True)
class MedicalExtraction:
    findings: KeyFindings
    terminology: list[TerminologyEntry] = field(default_factory=list)
    timestamps: list[TimestampEntry] = field(default_factory=list)
    follow_up_items: list[FollowUpItem] = field(default_factory=list)
    encounter_info: EncounterInfo = field(default_factory=EncounterInfo)


# =============================================================================
# Text helpers
# =============================================================================

def split_sentences(text: str) -> list[str]:
    """Split on . ! ? and drop empty pieces."""
    return [part.strip() for part in re.split(r"[.!?]", text) if part.strip()]


def normalize_text(text: str) -> str:
    """
    First letter upper, the rest lower, keeping acronyms as written.

    "pupils Equal" -> "Pupils equal", "GCS 13/15" -> "GCS 13/15"
    """
    words = []
    for word in re.sub(r"\s+", " ", text.strip()).split(" "):
        keep = word == "I" or (len(word) > 1 and word.isupper() and word.isalpha())
        words.append(word if keep else word.lower())
    return capitalize_first(" ".join(words))


def capitalize_first(text: str) -> str:
    return text[:1].upper() + text[1:]


def dedupe(items: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(items))


# =============================================================================
# Findings
# =============================================================================

def extract_symptoms(transcript: str, vocabulary: ExtractionVocabulary = DEFAULT_VOCABULARY) -> list[str]:
    candidates = []
    for sentence in split_sentences(transcript):
        lower = sentence.lower()

        for match in vocabulary.symptom_phrase.finditer(sentence):
            symptom = match.group(1).strip()
            if 2 < len(symptom) < 50:
                candidates.append(normalize_text(symptom))

        for pattern in vocabulary.pain_patterns:
            candidates.extend(normalize_text(m.group(0)) for m in pattern.finditer(sentence))

        if "breath" in lower:
            candidates.extend(
                normalize_text(phrase) for phrase in vocabulary.breathing_phrases if phrase in lower
            )

        for match in vocabulary.activity_trigger.finditer(sentence):
            context = (match.group(1) or match.group(2) or "").strip()
            if context:
                candidates.append(f"Symptoms occur when {context}")

        for match in vocabulary.duration_phrase.finditer(sentence):
            candidates.append(f"Symptoms present for {match.group(1).strip()}")

    for pattern in vocabulary.standalone_symptoms:
        candidates.extend(normalize_text(m.group(0)) for m in pattern.finditer(transcript))

    symptoms = []
    for symptom in dedupe(candidates):
        lower = symptom.lower()
        if not 2 < len(symptom) < 100:
            continue
        if any(filler in lower for filler in vocabulary.symptom_fillers):
            continue
        if lower.endswith("some pain"):
            continue
        symptoms.append(capitalize_first(symptom))
    return dedupe(symptoms)


def extract_examinations(transcript: str, vocabulary: ExtractionVocabulary = DEFAULT_VOCABULARY) -> list[str]:
    found = []
    for pattern in vocabulary.examination_patterns:
        found.extend(normalize_text(m.group(0)) for m in pattern.finditer(transcript))
    return dedupe(found)


def extract_procedures(transcript: str, vocabulary: ExtractionVocabulary = DEFAULT_VOCABULARY) -> list[str]:
    found = []
    for pattern in vocabulary.ordering_patterns:
        for match in pattern.finditer(transcript):
            procedure = re.sub(r"\s+", " ", match.group(1)).strip()
            if 2 < len(procedure) < 80:
                found.append(normalize_text(procedure))

    for pattern in vocabulary.procedure_vocabulary:
        found.extend(normalize_text(m.group(0)) for m in pattern.finditer(transcript))

    for sentence in split_sentences(transcript):
        for match in vocabulary.assessment_phrase.finditer(sentence):
            subject = match.group(1).strip()
            if 3 < len(subject) < 50 and "assessment" not in subject.lower():
                found.append(f"Assessment of {subject}")

    return dedupe(capitalize_first(p) for p in found if len(p) > 2)


def extract_medications(transcript: str, vocabulary: ExtractionVocabulary = DEFAULT_VOCABULARY) -> list[str]:
    return dedupe(normalize_text(m.group(1)) for m in vocabulary.medication_phrase.finditer(transcript))


def _diagnosis_label(term: str) -> str:
    return term.upper() if len(term) <= 3 else term.title()


def extract_diagnoses(transcript: str, vocabulary: ExtractionVocabulary = DEFAULT_VOCABULARY) -> list[str]:
    """
    Neurosurgical diagnoses named in the transcript.

    A mention preceded by a negation cue in the same sentence
    ("no signs of hydrocephalus") is not a diagnosis.
    """
    hits = []
    for index, sentence in enumerate(split_sentences(transcript)):
        for term in vocabulary.diagnosis_terms:
            for match in re.finditer(rf"\b{re.escape(term)}\b", sentence, _FLAGS):
                if vocabulary.negation_cue.search(sentence[:match.start()]):
                    continue
                hits.append((index, match.start(), term))
                break

    labels = [_diagnosis_label(term) for _, _, term in sorted(hits)]
    # "aneurysm" is subsumed by "brain aneurysm" when both hit.
    return [
        label for label in dedupe(labels)
        if not any(label != other and label.lower() in other.lower() for other in labels)
    ]


def extract_plans(transcript: str, vocabulary: ExtractionVocabulary = DEFAULT_VOCABULARY) -> list[str]:
    return dedupe(
        capitalize_first(sentence) for sentence in split_sentences(transcript)
        if vocabulary.plan_phrase.search(sentence)
    )


def extract_findings(transcript: str, vocabulary: ExtractionVocabulary = DEFAULT_VOCABULARY) -> KeyFindings:
    return KeyFindings(
        symptoms=extract_symptoms(transcript, vocabulary),
        examinations=extract_examinations(transcript, vocabulary),
        diagnoses=extract_diagnoses(transcript, vocabulary),
        medications=extract_medications(transcript, vocabulary),
        procedures=extract_procedures(transcript, vocabulary),
        plans=extract_plans(transcript, vocabulary),
    )


# =============================================================================
# Terminology, follow-ups, timestamps
# =============================================================================

GENERIC_CONTEXT = "Mentioned in clinical context"


def extract_terminology(
    transcript: str,
    vocabulary: ExtractionVocabulary = DEFAULT_VOCABULARY,
) -> list[TerminologyEntry]:
    sentences = split_sentences(transcript)
    entries = []
    for abbreviation, full_term in vocabulary.terminology:
        pattern = re.compile(rf"\b{re.escape(abbreviation)}\b", _FLAGS)
        if not pattern.search(transcript):
            continue
        context = next((s for s in sentences if pattern.search(s)), GENERIC_CONTEXT)
        entries.append(TerminologyEntry(
            term=abbreviation.upper(),
            context=context,
            normalized=full_term,
        ))
    return entries


def extract_follow_up_items(
    transcript: str,
    vocabulary: ExtractionVocabulary = DEFAULT_VOCABULARY,
) -> list[FollowUpItem]:
    """
    One medium-priority item per sentence with a follow-up or medication-change verb.

    Priority is never inferred from wording.
    """
    items = []
    for sentence in split_sentences(transcript):
        for pattern in vocabulary.follow_up_patterns:
            match = pattern.search(sentence)
            if match:
                items.append(sentence or match.group(0))
                break
    return [FollowUpItem(item=item, priority=FollowUpPriority.MEDIUM) for item in dedupe(items)]


def extract_timestamps(
    transcript: str,
    vocabulary: ExtractionVocabulary = DEFAULT_VOCABULARY,
) -> list[TimestampEntry]:
    entries = []
    for sentence in split_sentences(transcript):
        match = vocabulary.time_reference.search(sentence)
        if not match:
            continue
        if vocabulary.plan_phrase.search(sentence):
            section = "assessment_plan"
        elif vocabulary.objective_cue.search(sentence):
            section = "objective"
        else:
            section = "subjective"
        entries.append(TimestampEntry(
            section=section,
            time_mentioned=match.group(0),
            content=sentence,
        ))
    return entries


# =============================================================================
# Encounter details
# =============================================================================

def extract_providers(transcript: str, vocabulary: ExtractionVocabulary = DEFAULT_VOCABULARY) -> list[str]:
    providers = []
    for match in vocabulary.provider_pattern.finditer(transcript):
        if match.group(1):
            providers.append(f"Dr. {match.group(1)}")
        else:
            providers.append(match.group(2).capitalize())
    return dedupe(providers)


def extract_location(transcript: str, vocabulary: ExtractionVocabulary = DEFAULT_VOCABULARY) -> str:
    match = vocabulary.location_pattern.search(transcript)
    if not match:
        return ""
    location = match.group(1)
    return location.upper() if location.lower() in ("icu", "er") else location


def extract_encounter_info(
    transcript: str,
    encounter_type: EncounterType = EncounterType.ROUNDS,
    vocabulary: ExtractionVocabulary = DEFAULT_VOCABULARY,
) -> EncounterInfo:
    """
    Best-effort encounter details.

    Fields not found in the transcript stay empty; providers default to an
    empty list.
    """
    date = vocabulary.date_pattern.search(transcript)
    time = vocabulary.time_pattern.search(transcript)
    duration = vocabulary.duration_minutes.search(transcript)
    return EncounterInfo(
        date=date.group(0) if date else "",
        time=time.group(0) if time else "",
        type=encounter_type,
        location=extract_location(transcript, vocabulary),
        duration_minutes=int(duration.group(1)) if duration else None,
        providers=extract_providers(transcript, vocabulary),
    )


def extract(
    transcript: str,
    encounter_type: EncounterType = EncounterType.ROUNDS,
    vocabulary: ExtractionVocabulary = DEFAULT_VOCABULARY,
) -> MedicalExtraction:
    """Run every extractor over one transcript."""
    return MedicalExtraction(
        findings=extract_findings(transcript, vocabulary),
        terminology=extract_terminology(transcript, vocabulary),
        timestamps=extract_timestamps(transcript, vocabulary),
        follow_up_items=extract_follow_up_items(transcript, vocabulary),
        encounter_info=extract_encounter_info(transcript, encounter_type, vocabulary),
    )


# =============================================================================
# Clinical context (vitals, urgency, tags)
# =============================================================================

_GCS_VALUE = re.compile(r"\bgcs\s*(\d+)", _FLAGS)
_BLOOD_PRESSURE = re.compile(r"\b(\d{2,3})\s*/\s*(\d{2,3})\b")
_HEART_RATE = re.compile(r"\b(?:hr|heart rate)\s*(?:of\s+|is\s+|was\s+)?(\d{2,3})\b", _FLAGS)
_ICP_VALUE = re.compile(r"\bicp\s*(?:of\s+|is\s+|was\s+)?(\d+)", _FLAGS)
_EMERGENT = re.compile(r"\b(?:emergency|emergent|stat)\b", _FLAGS)
_URGENT = re.compile(r"\b(?:urgent|urgently|asap)\b|\bdeteriorat", _FLAGS)


def extract_gcs(transcript: str) -> Optional[int]:
    """First GCS value in the valid 3-15 range."""
    for match in _GCS_VALUE.finditer(transcript):
        value = int(match.group(1))
        if 3 <= value <= 15:
            return value
    return None


def extract_vital_signs(transcript: str) -> VitalSigns:
    blood_pressure = None
    for match in _BLOOD_PRESSURE.finditer(transcript):
        systolic, diastolic = int(match.group(1)), int(match.group(2))
        # Ratios like GCS 13/15 or motor 4/5 fall outside these ranges.
        if 50 <= systolic <= 300 and 20 <= diastolic <= 200:
            blood_pressure = f"{systolic}/{diastolic}"
            break
    heart_rate = _HEART_RATE.search(transcript)
    icp = _ICP_VALUE.search(transcript)
    return VitalSigns(
        gcs=extract_gcs(transcript),
        blood_pressure=blood_pressure,
        heart_rate=int(heart_rate.group(1)) if heart_rate else None,
        icp_reading=int(icp.group(1)) if icp else None,
    )


def determine_urgency(transcript: str) -> Urgency:
    if _EMERGENT.search(transcript):
        return Urgency.EMERGENT
    if _URGENT.search(transcript):
        return Urgency.URGENT
    return Urgency.ROUTINE


def generate_tags(transcript: str, primary_diagnosis: Optional[str] = None) -> list[str]:
    tags = ["neurosurgery"]
    if primary_diagnosis:
        tags.append(re.sub(r"\s+", "-", primary_diagnosis.lower()))
    lower = transcript.lower()
    for needle, tag in (
        ("icp", "icp-monitoring"),
        ("evd", "evd"),
        ("craniotomy", "post-craniotomy"),
        ("family", "family-meeting"),
    ):
        if needle in lower:
            tags.append(tag)
    if determine_urgency(transcript) != Urgency.ROUTINE:
        tags.append("urgent")
    return dedupe(tags)


def build_clinical_context(transcript: str, findings: KeyFindings) -> ClinicalContext:
    """Summary fields persistence and triage consumers index on."""
    primary = findings.diagnoses[0] if findings.diagnoses else None
    return ClinicalContext(
        primary_diagnosis=primary,
        vital_signs=extract_vital_signs(transcript),
        urgency=determine_urgency(transcript),
        tags=generate_tags(transcript, primary),
    )
