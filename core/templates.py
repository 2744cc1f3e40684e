"""
Note Template Registry
======================

Templates are immutable data: an id, a display name and an ordered list of
sections. The registry is built once and only ever read, so a single
instance can be shared freely between the classifier, the assembler and
the API.
"""

import logging
from datetime import datetime
from functools import lru_cache
from typing import Iterable, Optional

from exceptions import TemplateNotFoundError
from models import (
    NoteTemplate,
    SectionType,
    StructuredNote,
    TemplateSection,
)

logger = logging.getLogger(__name__)


NEUROSURGERY_TEMPLATES = (
    NoteTemplate(
        id="neuro_rounds",
        name="Neurosurgery Rounds Note",
        description="Daily rounds documentation for neurosurgical patients",
        specialty="neurosurgery",
        context=("rounds", "daily_assessment", "icu", "ward"),
        sections=(
            TemplateSection(
                id="subjective",
                title="Subjective",
                type=SectionType.TEXT,
                placeholder="Patient complaints, symptoms, pain level, neurological symptoms",
                examples=(
                    "Patient reports headache 7/10, improved from yesterday",
                    "Family reports patient more confused this morning",
                ),
            ),
            TemplateSection(
                id="objective",
                title="Objective",
                type=SectionType.STRUCTURED,
                placeholder="Vital signs, neurological exam, GCS, imaging findings",
                examples=(
                    "GCS 15 (E4V5M6), pupils equal and reactive",
                    "ICP readings 8-12 mmHg overnight",
                ),
            ),
            TemplateSection(
                id="neuro_exam",
                title="Neurological Examination",
                type=SectionType.STRUCTURED,
                placeholder="Mental status, cranial nerves, motor, sensory, reflexes, coordination",
                examples=(
                    "Alert, oriented x3. CNs II-XII intact. Motor 5/5 all extremities",
                    "GCS 13 (E3V4M6), follows commands appropriately",
                ),
            ),
            TemplateSection(
                id="assessment_plan",
                title="Assessment & Plan",
                type=SectionType.ASSESSMENT_PLAN,
                placeholder="Primary diagnosis, differential, treatment plan, monitoring",
                examples=(
                    "Post-op day 2 s/p craniotomy for tumor resection. Stable.",
                    "Hydrocephalus with EVD in place. Consider VP shunt placement.",
                ),
            ),
        ),
    ),
    NoteTemplate(
        id="neuro_consult",
        name="Neurosurgery Consultation",
        description="New consultation note template",
        specialty="neurosurgery",
        context=("consultation", "new_patient", "referral"),
        sections=(
            TemplateSection(
                id="chief_complaint",
                title="Chief Complaint",
                placeholder="Brief statement of primary concern",
                examples=("Severe headache and vomiting x 3 days", "Progressive weakness in left arm"),
            ),
            TemplateSection(
                id="hpi",
                title="History of Present Illness",
                placeholder="Detailed chronological account of current illness",
            ),
            TemplateSection(
                id="physical_exam",
                title="Physical Examination",
                type=SectionType.STRUCTURED,
                placeholder="General appearance, vital signs, neurological examination",
            ),
            TemplateSection(
                id="imaging",
                title="Imaging/Studies",
                required=False,
                type=SectionType.LIST,
                placeholder="CT, MRI, angiography, other relevant studies",
                examples=("CT head: 4cm right frontal mass with surrounding edema",),
            ),
            TemplateSection(
                id="impression_plan",
                title="Impression & Plan",
                type=SectionType.ASSESSMENT_PLAN,
                placeholder="Clinical impression and detailed management plan",
            ),
        ),
    ),
    NoteTemplate(
        id="family_meeting",
        name="Family Meeting Note",
        description="Documentation for family conferences and goals of care discussions",
        specialty="general",
        context=("family_meeting", "goals_of_care", "prognosis_discussion"),
        sections=(
            TemplateSection(
                id="attendees",
                title="Meeting Attendees",
                type=SectionType.LIST,
                placeholder="List all attendees: family members, medical team, etc.",
            ),
            TemplateSection(
                id="discussion_topics",
                title="Topics Discussed",
                type=SectionType.LIST,
                placeholder="Key discussion points, questions addressed",
            ),
            TemplateSection(
                id="family_concerns",
                title="Family Questions/Concerns",
                required=False,
                placeholder="Specific questions or concerns raised by family",
            ),
            TemplateSection(
                id="decisions_made",
                title="Decisions/Plans",
                type=SectionType.LIST,
                placeholder="Decisions made, next steps, follow-up plans",
                examples=("Family agrees to proceed with surgery",),
            ),
        ),
    ),
)

GENERAL_TEMPLATES = (
    NoteTemplate(
        id="progress_note",
        name="Progress Note",
        description="General progress note template",
        context=("daily_note", "follow_up", "ward_rounds"),
        sections=(
            TemplateSection(
                id="subjective",
                title="Subjective",
                placeholder="Patient-reported symptoms, concerns, changes since last visit",
            ),
            TemplateSection(
                id="objective",
                title="Objective",
                type=SectionType.STRUCTURED,
                placeholder="Vital signs, physical exam findings, laboratory results",
            ),
            TemplateSection(
                id="assessment_plan",
                title="Assessment & Plan",
                type=SectionType.ASSESSMENT_PLAN,
                placeholder="Clinical assessment and management plan by problem",
            ),
        ),
    ),
    NoteTemplate(
        id="discharge_summary",
        name="Discharge Summary",
        description="Hospital discharge documentation",
        context=("discharge", "transfer", "summary"),
        sections=(
            TemplateSection(id="admission_diagnosis", title="Admission Diagnosis",
                            placeholder="Primary reason for admission"),
            TemplateSection(id="discharge_diagnosis", title="Discharge Diagnosis",
                            type=SectionType.LIST, placeholder="Final diagnoses at discharge"),
            TemplateSection(id="hospital_course", title="Hospital Course",
                            placeholder="Summary of hospital stay, treatments, procedures"),
            TemplateSection(id="discharge_instructions", title="Discharge Instructions",
                            type=SectionType.LIST,
                            placeholder="Medications, activity restrictions, follow-up appointments"),
        ),
    ),
)

FALLBACK_TEMPLATE_ID = "progress_note"


class TemplateRegistry:
    """
    Read-only lookup over a fixed set of note templates.

    Example:
        registry = default_registry()
        template = registry.get("neuro_rounds")
        note = registry.create_empty_note("neuro_rounds")
    """

    def __init__(self, templates: Iterable[NoteTemplate]):
        self._templates = {}
        for template in templates:
            if template.id in self._templates:
                raise ValueError(f"Duplicate template id: {template.id}")
            self._templates[template.id] = template

    def __contains__(self, template_id: str) -> bool:
        return template_id in self._templates

    def __len__(self) -> int:
        return len(self._templates)

    @property
    def template_ids(self) -> list[str]:
        return list(self._templates)

    def all(self) -> list[NoteTemplate]:
        return list(self._templates.values())

    def find(self, template_id: str) -> Optional[NoteTemplate]:
        return self._templates.get(template_id)

    def get(self, template_id: str) -> NoteTemplate:
        """Return a template or raise TemplateNotFoundError."""
        template = self._templates.get(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id, self.template_ids)
        return template

    def by_context(self, context: str) -> list[NoteTemplate]:
        return [t for t in self._templates.values() if context in t.context]

    def by_specialty(self, specialty: str) -> list[NoteTemplate]:
        # General templates are offered to every specialty.
        return [
            t for t in self._templates.values()
            if t.specialty == specialty or t.specialty == "general"
        ]

    def create_empty_note(self, template_id: str, now: Optional[datetime] = None) -> StructuredNote:
        """A draft note with every section present and empty."""
        template = self.get(template_id)
        timestamp = now or datetime.now()
        return StructuredNote(
            template_id=template.id,
            template_name=template.name,
            sections={section_id: "" for section_id in template.section_ids},
            created_at=timestamp,
            last_modified=timestamp,
        )


@lru_cache()
def default_registry() -> TemplateRegistry:
    """The built-in neurosurgery and general templates (cached)."""
    return TemplateRegistry(NEUROSURGERY_TEMPLATES + GENERAL_TEMPLATES)
