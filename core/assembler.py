"""
Note Assembler
==============

Fills a template's sections from the transcript and the extracted findings.

Section content comes from a dispatch table of generator functions keyed by
section id. A section with no generator, or with nothing to extract, is an
empty string: the assembler never writes placeholder prose.
"""

import re
from datetime import datetime
from typing import Callable, Mapping, Optional

from core.extractor import MedicalExtraction, split_sentences
from core.templates import TemplateRegistry, default_registry
from models import NoteTemplate, StructuredNote

SectionGenerator = Callable[[str, MedicalExtraction], str]

_FLAGS = re.IGNORECASE


def _subjective(transcript: str, extraction: MedicalExtraction) -> str:
    elements = []
    for sentence in split_sentences(transcript)[:8]:
        lower = sentence.lower()

        if "i've been" in lower or "experiencing" in lower or "having" in lower:
            match = re.search(r"(?:i've been|experiencing|having)\s+([^.,!?]+)", sentence, _FLAGS)
            if match and len(match.group(1)) < 100:
                elements.append(f"Patient reports {match.group(1).strip()}")

        if "for" in lower and any(unit in lower for unit in ("week", "month", "day")):
            match = re.search(r"\bfor\s+([^.,!?]*(?:week|month|day)[^.,!?]*)", sentence, _FLAGS)
            if match:
                elements.append(f"Duration: {match.group(1).strip()}")

        match = re.search(r"(?:when i|happens when)\s+([^.,!?]+)", sentence, _FLAGS)
        if match:
            elements.append(f"Occurs when {match.group(1).strip()}")

    if elements:
        return ". ".join(elements) + "."

    main = [s for s in extraction.findings.symptoms if "symptoms occur" not in s.lower()][:2]
    if main:
        return f"Patient reports {' and '.join(main)}."
    return ""


def _objective(transcript: str, extraction: MedicalExtraction) -> str:
    exams = extraction.findings.examinations
    return f"Examination findings: {', '.join(exams)}." if exams else ""


def _neuro_exam(transcript: str, extraction: MedicalExtraction) -> str:
    neuro = [
        exam for exam in extraction.findings.examinations
        if any(cue in exam.lower() for cue in ("gcs", "pupil", "motor", "alert"))
    ]
    return ". ".join(neuro) + "." if neuro else ""


_PLAN_WORD = re.compile(r"\bplan\b", _FLAGS)
_COMPLAINT_CUES = (
    re.compile(r"\bchief complaint\b", _FLAGS),
    re.compile(r"\bhere for\b", _FLAGS),
    re.compile(r"\bcomplains? of\b", _FLAGS),
)


def _assessment_plan(transcript: str, extraction: MedicalExtraction) -> str:
    if extraction.findings.plans:
        return "\n".join(extraction.findings.plans)
    sentences = [s for s in split_sentences(transcript) if _PLAN_WORD.search(s)]
    return ". ".join(sentences) + "." if sentences else ""


def _chief_complaint(transcript: str, extraction: MedicalExtraction) -> str:
    sentences = split_sentences(transcript)
    for cue in _COMPLAINT_CUES:
        for sentence in sentences:
            if cue.search(sentence):
                return sentence + "."

    for sentence in sentences[:5]:
        lower = sentence.lower()
        match = re.search(r"(?:experiencing|been having)\s+([^.,!?]+)", sentence, _FLAGS)
        if match:
            return f"Patient reports {match.group(1).strip()}"
        if "pain" in lower and re.search(r"\b(?:i|my|i'm|i've)\b", lower):
            return sentence
    return ""


def _hpi(transcript: str, extraction: MedicalExtraction) -> str:
    elements = []
    for sentence in split_sentences(transcript):
        lower = sentence.lower()

        if "for" in lower and any(unit in lower for unit in ("weeks", "months", "days")):
            match = re.search(r"\b(?:for|been)\s+(?:about\s+)?([^.,!?]*(?:weeks?|months?|days?))", sentence, _FLAGS)
            if match:
                elements.append(f"Duration: {match.group(1).strip()}")

        if "when" in lower and any(cue in lower for cue in ("climbing", "walking", "physical")):
            match = re.search(r"\bwhen\s+([^.,!?]+)", sentence, _FLAGS)
            if match:
                elements.append(f"Triggers: {match.group(1).strip()}")

        match = re.search(r"(?:experiencing|having)\s+([^.,!?]+)", sentence, _FLAGS)
        if match:
            elements.append(f"Symptoms: {match.group(1).strip()}")

    return ". ".join(elements) + "." if elements else ""


_FAMILY = re.compile(r"\b(?:family|mother|father|spouse|wife|husband|daughter|son|brother|sister)\b", _FLAGS)
_CARE_TEAM = re.compile(r"\b(?:doctor|dr\.|nurse|social worker|chaplain)", _FLAGS)


def _attendees(transcript: str, extraction: MedicalExtraction) -> str:
    mentions = [m.group(0) for m in _FAMILY.finditer(transcript)]
    mentions += [m.group(0) for m in _CARE_TEAM.finditer(transcript)]
    unique = {}
    for mention in mentions:
        unique.setdefault(mention.lower(), mention)
    return ", ".join(unique.values())


_DISCUSSION_TOPICS = (
    ("prognosis", "Prognosis discussion"),
    ("treatment", "Treatment options"),
    ("goals", "Goals of care"),
)


def _discussion_topics(transcript: str, extraction: MedicalExtraction) -> str:
    lower = transcript.lower()
    return "\n".join(topic for needle, topic in _DISCUSSION_TOPICS if needle in lower)


def _empty(transcript: str, extraction: MedicalExtraction) -> str:
    return ""


SECTION_GENERATORS: Mapping[str, SectionGenerator] = {
    "subjective": _subjective,
    "objective": _objective,
    "neuro_exam": _neuro_exam,
    "assessment_plan": _assessment_plan,
    "impression_plan": _assessment_plan,
    "chief_complaint": _chief_complaint,
    "hpi": _hpi,
    "attendees": _attendees,
    "discussion_topics": _discussion_topics,
}


def completeness_score(note: StructuredNote, template: NoteTemplate) -> float:
    """Fraction of the template's required sections with non-blank content."""
    required = template.required_section_ids
    if not required:
        return 1.0
    filled = sum(1 for section_id in required if note.sections.get(section_id, "").strip())
    return round(filled / len(required), 2)


class NoteAssembler:
    """
    Builds a StructuredNote for a template.

    Example:
        assembler = NoteAssembler()
        note = assembler.assemble("neuro_rounds", transcript, extraction)
    """

    def __init__(
        self,
        registry: Optional[TemplateRegistry] = None,
        generators: Mapping[str, SectionGenerator] = SECTION_GENERATORS,
    ):
        self.registry = registry or default_registry()
        self.generators = generators

    def generate_section(self, section_id: str, transcript: str, extraction: MedicalExtraction) -> str:
        generator = self.generators.get(section_id, _empty)
        return generator(transcript, extraction)

    def assemble(
        self,
        template_id: str,
        transcript: str,
        extraction: MedicalExtraction,
        now: Optional[datetime] = None,
    ) -> StructuredNote:
        template = self.registry.get(template_id)
        timestamp = now or datetime.now()
        return StructuredNote(
            template_id=template.id,
            template_name=template.name,
            sections={
                section.id: self.generate_section(section.id, transcript, extraction)
                for section in template.sections
            },
            created_at=timestamp,
            last_modified=timestamp,
        )

    def score(self, note: StructuredNote) -> float:
        return completeness_score(note, self.registry.get(note.template_id))
