"""
Transcript Formatter
====================

Pure text helpers applied to every transcript before analysis:

1. **Abbreviation normalization**: "g.c.s 13" and "gcs 13" both become "GCS 13".
   Applying it twice gives the same text as applying it once.
2. **Speaker roles**: maps provider labels ("A", "B") to "healthcare provider",
   "patient" or "speaker N" from what each speaker actually said.
3. **Rendering**: timestamped, role-labelled transcript lines and per-speaker
   speaking statistics for diarized results.

Nothing here performs I/O or keeps state.
"""

import re
from dataclasses import dataclass
from typing import Iterable, Optional, Sequence

from models import Utterance


PROVIDER_ROLE = "healthcare provider"
PATIENT_ROLE = "patient"

# Order matters: dotted and numbered forms before the bare word.
ABBREVIATION_PATTERNS = (
    (re.compile(r"\bg\.?c\.?s\b\.?\s*(\d+)", re.IGNORECASE), r"GCS \1"),
    (re.compile(r"\bg\.c\.s\.?", re.IGNORECASE), "GCS"),
    (re.compile(r"\bgcs\b", re.IGNORECASE), "GCS"),
    (re.compile(r"\bi\.c\.p\.?", re.IGNORECASE), "ICP"),
    (re.compile(r"\bicp\b", re.IGNORECASE), "ICP"),
    (re.compile(r"\bevd\b", re.IGNORECASE), "EVD"),
    (re.compile(r"\bmri\b", re.IGNORECASE), "MRI"),
    (re.compile(r"\bct\b", re.IGNORECASE), "CT"),
    (re.compile(r"\bbp\b", re.IGNORECASE), "BP"),
    (re.compile(r"\bhr\b", re.IGNORECASE), "HR"),
    (re.compile(r"\becg\b", re.IGNORECASE), "ECG"),
    (re.compile(r"\bekg\b", re.IGNORECASE), "EKG"),
)

_WHITESPACE = re.compile(r"[ \t]+")

CLINICIAN_KEYWORDS = (
    "medication",
    "condition",
    "feeling",
    "symptoms",
    "treatment",
    "prescription",
    "diagnosis",
    "how are you",
    "what's the",
    "have you taken",
    "do you",
    "examination",
    "test",
)

PATIENT_KEYWORDS = (
    "i feel",
    "i'm feeling",
    "i don't",
    "i can't",
    "i have",
    "my pain",
    "it hurts",
    "i'm not",
    "please help",
    "i need",
)


def expand_medical_abbreviations(text: str) -> str:
    """
    Normalize common clinical abbreviations and collapse runs of spaces.

    Example:
        >>> expand_medical_abbreviations("gcs 13, icp stable")
        'GCS 13, ICP stable'
    """
    if not text:
        return ""
    for pattern, replacement in ABBREVIATION_PATTERNS:
        text = pattern.sub(replacement, text)
    return _WHITESPACE.sub(" ", text).strip()


def _keyword_score(text: str, keywords: Iterable[str]) -> int:
    return sum(1 for keyword in keywords if keyword in text)


def assign_speaker_roles(
    utterances: Sequence[Utterance],
    clinician_keywords: Sequence[str] = CLINICIAN_KEYWORDS,
    patient_keywords: Sequence[str] = PATIENT_KEYWORDS,
) -> dict[str, str]:
    """
    Map each provider speaker label to a role.

    The speaker with the most clinician-keyword hits becomes the healthcare
    provider; among the rest, the one with the most patient-keyword hits
    becomes the patient. Ties go to whoever spoke first. A role is only
    assigned on at least one keyword hit; everyone else is "speaker N",
    numbered by order of first appearance.
    """
    order: list[str] = []
    spoken: dict[str, list[str]] = {}
    for utterance in utterances:
        if utterance.speaker not in spoken:
            order.append(utterance.speaker)
            spoken[utterance.speaker] = []
        spoken[utterance.speaker].append(utterance.text.lower())

    text_by_speaker = {speaker: " ".join(parts) for speaker, parts in spoken.items()}
    roles = {speaker: f"speaker {index}" for index, speaker in enumerate(order, start=1)}

    provider = _best_speaker(order, text_by_speaker, clinician_keywords)
    if provider is not None:
        roles[provider] = PROVIDER_ROLE

    remaining = [speaker for speaker in order if speaker != provider]
    patient = _best_speaker(remaining, text_by_speaker, patient_keywords)
    if patient is not None:
        roles[patient] = PATIENT_ROLE

    return roles


def _best_speaker(candidates, text_by_speaker, keywords) -> Optional[str]:
    best, best_score = None, 0
    for speaker in candidates:
        score = _keyword_score(text_by_speaker[speaker], keywords)
        # Strictly greater keeps the earliest speaker on ties.
        if score > best_score:
            best, best_score = speaker, score
    return best


def format_timestamp(seconds: float) -> str:
    """Seconds to MM:SS."""
    total = max(0, int(seconds))
    return f"{total // 60:02d}:{total % 60:02d}"


def confidence_level(confidence: Optional[float]) -> Optional[str]:
    """HIGH above 90%, MED above 75%, LOW otherwise; None when unknown."""
    if confidence is None:
        return None
    percent = round(confidence * 100)
    if percent > 90:
        return "HIGH"
    if percent > 75:
        return "MED"
    return "LOW"


def format_labeled_transcript(
    utterances: Sequence[Utterance],
    roles: Optional[dict[str, str]] = None,
) -> str:
    """
    Render diarized utterances as "[mm:ss] ROLE (LEVEL): text" lines.

    A blank line separates turns of different speakers.
    """
    roles = roles if roles is not None else assign_speaker_roles(utterances)
    lines = []
    previous = None
    for utterance in utterances:
        text = expand_medical_abbreviations(utterance.text)
        if not text:
            continue
        if previous is not None and previous != utterance.speaker:
            lines.append("")
        label = roles.get(utterance.speaker, utterance.speaker).upper()
        level = confidence_level(utterance.confidence)
        header = f"[{format_timestamp(utterance.start)}] {label}"
        if level:
            header += f" ({level})"
        lines.append(f"{header}: {text}")
        previous = utterance.speaker
    return "\n".join(lines)


@dataclass(frozen=True)
class SpeakingStats:
    speaker: str
    duration_seconds: float
    word_count: int
    percentage: float


def calculate_speaking_stats(
    utterances: Sequence[Utterance],
    roles: Optional[dict[str, str]] = None,
    total_duration: Optional[float] = None,
) -> list[SpeakingStats]:
    """Per-speaker talk time, word count and share of the recording."""
    roles = roles if roles is not None else assign_speaker_roles(utterances)
    if total_duration is None:
        total_duration = max((u.end for u in utterances), default=0.0)

    stats = []
    for speaker in dict.fromkeys(u.speaker for u in utterances):
        own = [u for u in utterances if u.speaker == speaker]
        duration = sum(u.duration for u in own)
        share = round(duration / total_duration * 100, 1) if total_duration else 0.0
        stats.append(SpeakingStats(
            speaker=roles.get(speaker, speaker),
            duration_seconds=round(duration, 1),
            word_count=sum(u.word_count for u in own),
            percentage=share,
        ))
    return stats
