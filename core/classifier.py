"""
Template Classifier
===================

Picks a note template for a transcript from keyword evidence.

Each category (neuro, family meeting, consult, rounds) scores the number of
distinct keywords found anywhere in the lowercased transcript. The decision
is a fixed priority order, not a max over scores: a family meeting wins
over everything else as soon as two meeting phrases appear.

The keyword tables and the confidence formula constants are plain immutable
values passed in at construction. They are hand-tuned heuristics and are
the intended tuning surface.
"""

import logging
from dataclasses import dataclass
from typing import Iterable, Optional

from core.templates import TemplateRegistry, default_registry
from models import EncounterType

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClassifierKeywords:
    """Keyword table per category. Matching is case-insensitive substring."""
    neuro: tuple[str, ...]
    meeting: tuple[str, ...]
    consult: tuple[str, ...]
    rounds: tuple[str, ...]


DEFAULT_KEYWORDS = ClassifierKeywords(
    neuro=(
        "gcs", "icp", "craniotomy", "hydrocephalus", "evd",
        "brain", "neurological", "pupil", "motor",
    ),
    meeting=(
        "family", "goals of care", "prognosis", "decision", "meeting", "discuss",
    ),
    consult=(
        "new patient", "referral", "consult", "chief complaint", "history",
        "good morning", "good afternoon", "good evening", "how are you feeling",
        "what brings you", "experiencing", "symptoms", "bothering me", "came in",
        "doctor", "let me ask", "order", "assessment", "important to", "consider",
        "baseline", "determine if", "i'm glad you came in", "not to ignore",
        "better understand", "condition", "ask you a few questions",
        "have you noticed", "any history", "family", "based on your symptoms",
        "i'd like to order", "help us determine",
    ),
    rounds=(
        "post-op", "daily", "overnight", "stable", "improving", "plan for",
    ),
)


@dataclass(frozen=True)
class ConfidenceWeights:
    """
    Thresholds and linear confidence formulas for each decision rule.

    confidence = base + score * step
    """
    meeting_threshold: int = 2
    meeting_base: float = 0.8
    meeting_step: float = 0.05
    consult_threshold: int = 3
    consult_with_neuro_base: float = 0.8
    consult_base: float = 0.75
    consult_step: float = 0.02
    neuro_threshold: int = 2
    neuro_base: float = 0.7
    neuro_step: float = 0.03
    rounds_threshold: int = 2
    rounds_confidence: float = 0.6
    weak_consult_confidence: float = 0.6
    default_confidence: float = 0.5


DEFAULT_WEIGHTS = ConfidenceWeights()


@dataclass(frozen=True)
class CategoryScores:
    neuro: int
    meeting: int
    consult: int
    rounds: int


@dataclass(frozen=True)
class TemplateChoice:
    """
    Classifier output.

    `confidence` is NOT clamped here; the formulas can exceed 1.0 and the
    analysis result model clamps it.
    """
    template_id: str
    encounter_type: EncounterType
    confidence: float
    scores: Optional[CategoryScores] = None


def count_matches(text: str, keywords: Iterable[str]) -> int:
    """Number of distinct keywords contained in an already-lowercased text."""
    return sum(1 for keyword in set(keywords) if keyword in text)


def score_categories(transcript: str, keywords: ClassifierKeywords = DEFAULT_KEYWORDS) -> CategoryScores:
    text = transcript.lower()
    return CategoryScores(
        neuro=count_matches(text, keywords.neuro),
        meeting=count_matches(text, keywords.meeting),
        consult=count_matches(text, keywords.consult),
        rounds=count_matches(text, keywords.rounds),
    )


def classify(
    transcript: str,
    encounter_type_hint: Optional[str] = None,
    keywords: ClassifierKeywords = DEFAULT_KEYWORDS,
    weights: ConfidenceWeights = DEFAULT_WEIGHTS,
) -> TemplateChoice:
    """
    Choose a template id, encounter type and raw confidence.

    Rules, first match wins:
        1. meeting >= 2                 -> family_meeting
        2. consult >= 3                 -> neuro_consult
        3. neuro >= 2 and rounds >= 1   -> neuro_rounds
        4. hint "rounds" or rounds >= 2 -> progress_note
        5. consult >= 1                 -> neuro_consult
        6. otherwise                    -> progress_note
    """
    scores = score_categories(transcript, keywords)
    w = weights

    if scores.meeting >= w.meeting_threshold:
        return TemplateChoice(
            "family_meeting", EncounterType.FAMILY_MEETING,
            w.meeting_base + scores.meeting * w.meeting_step, scores,
        )

    if scores.consult >= w.consult_threshold:
        base = w.consult_with_neuro_base if scores.neuro >= 1 else w.consult_base
        return TemplateChoice(
            "neuro_consult", EncounterType.CONSULT,
            base + scores.consult * w.consult_step, scores,
        )

    if scores.neuro >= w.neuro_threshold and scores.rounds >= 1:
        return TemplateChoice(
            "neuro_rounds", EncounterType.ROUNDS,
            w.neuro_base + scores.neuro * w.neuro_step, scores,
        )

    hint = encounter_type_hint.value if isinstance(encounter_type_hint, EncounterType) else encounter_type_hint
    if hint == EncounterType.ROUNDS.value or scores.rounds >= w.rounds_threshold:
        return TemplateChoice("progress_note", EncounterType.ROUNDS, w.rounds_confidence, scores)

    if scores.consult >= 1:
        return TemplateChoice("neuro_consult", EncounterType.CONSULT, w.weak_consult_confidence, scores)

    return TemplateChoice("progress_note", EncounterType.ROUNDS, w.default_confidence, scores)


class TemplateClassifier:
    """
    Classifier bound to a template registry.

    Every choice is checked against the registry, so a registry without one
    of the rule targets fails loudly instead of producing a dangling id.
    """

    def __init__(
        self,
        registry: Optional[TemplateRegistry] = None,
        keywords: ClassifierKeywords = DEFAULT_KEYWORDS,
        weights: ConfidenceWeights = DEFAULT_WEIGHTS,
    ):
        self.registry = registry or default_registry()
        self.keywords = keywords
        self.weights = weights

    def classify(self, transcript: str, encounter_type_hint: Optional[str] = None) -> TemplateChoice:
        choice = classify(transcript, encounter_type_hint, self.keywords, self.weights)
        self.registry.get(choice.template_id)
        logger.debug(
            f"Classified transcript as {choice.template_id} "
            f"(confidence {choice.confidence:.2f}, scores {choice.scores})"
        )
        return choice
