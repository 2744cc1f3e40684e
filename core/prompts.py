"""
Enhancement Prompts for NeuroScribe
===================================

Prompt text for the optional LLM review of a generated note.

The model sees the structured note and the transcript, and must answer with a
single JSON object whose keys match NoteEnhancement. Nothing here is sent
unless AI enhancement is enabled.
"""

import json

from models import ClinicalAnalysisResult

# =============================================================================
# System Prompt
# =============================================================================

ENHANCEMENT_SYSTEM_PROMPT = (
    "You are a neurosurgical medical documentation assistant with expertise in "
    "neurocritical care, brain tumors, trauma, and vascular neurosurgery. "
    "Always respond with valid JSON only."
)

# =============================================================================
# Response Schema
# =============================================================================

ENHANCEMENT_RESPONSE_SCHEMA = """{
  "neurosurgical_insights": [
    "Specific neurosurgical observations, GCS trends, ICP concerns, neurological deficits"
  ],
  "clinical_risk_assessment": {
    "neurological_deterioration_risk": "LOW/MEDIUM/HIGH with rationale",
    "surgical_intervention_indicators": ["Any indicators for surgical intervention"],
    "monitoring_recommendations": ["Specific monitoring recommendations"]
  },
  "documentation_improvements": [
    "Suggestions for improving neurosurgical documentation"
  ],
  "medical_accuracy_check": {
    "terminology_corrections": ["Any neurosurgical terms that need correction"],
    "missing_neurological_elements": ["Important neurological assessments not documented"],
    "accuracy_score": "1-10 rating of neurosurgical documentation accuracy"
  },
  "follow_up_priorities": [
    "High-priority follow-up items specific to neurosurgical care"
  ]
}"""

ENHANCEMENT_KEYS = (
    "neurosurgical_insights",
    "clinical_risk_assessment",
    "documentation_improvements",
    "medical_accuracy_check",
    "follow_up_priorities",
)


def build_enhancement_prompt(transcript: str, analysis: ClinicalAnalysisResult) -> str:
    """
    Build the user prompt for reviewing one note.

    Args:
        transcript: The transcript the note was generated from
        analysis: The rule-based analysis result

    Returns:
        Prompt text ending with the JSON shape the model must return
    """
    sections = json.dumps(analysis.structured_note.sections, indent=2)
    return f"""Review the structured medical note and transcript to provide neurosurgically-focused clinical insights.

STRUCTURED NOTE GENERATED:
Template: {analysis.suggested_template}
Sections: {sections}

ORIGINAL TRANSCRIPT:
{transcript}

Focus on neurosurgical aspects and provide enhancement suggestions in JSON format:
{ENHANCEMENT_RESPONSE_SCHEMA}"""
