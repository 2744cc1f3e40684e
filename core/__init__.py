"""
Core Processing Module
======================

Contains the processing components for NeuroScribe:
- transcriber: Speech-to-text provider adapters
- orchestrator: Ordered provider fallback
- formatter: Abbreviation expansion and diarized transcript rendering
- classifier: Template selection
- extractor: Findings, terminology, follow-ups and encounter details
- assembler: Per-section note content and completeness
- analysis: Analysis engine facade and fallback document
- enhancer: Optional LLM review of a note
"""

from core.analysis import ClinicalAnalysisEngine, build_fallback_document, validate_transcript
from core.classifier import TemplateClassifier, classify
from core.enhancer import MockNoteEnhancer, OllamaNoteEnhancer, create_note_enhancer
from core.orchestrator import TranscriptionOrchestrator, create_orchestrator
from core.templates import TemplateRegistry, default_registry
from core.transcriber import (
    AssemblyAITranscriber,
    GroqTranscriber,
    LiteLLMTranscriber,
    MockTranscriber,
    WhisperLocalTranscriber,
    create_transcriber,
)

__all__ = [
    'ClinicalAnalysisEngine',
    'build_fallback_document',
    'validate_transcript',
    'TemplateClassifier',
    'classify',
    'MockNoteEnhancer',
    'OllamaNoteEnhancer',
    'create_note_enhancer',
    'TranscriptionOrchestrator',
    'create_orchestrator',
    'TemplateRegistry',
    'default_registry',
    'AssemblyAITranscriber',
    'GroqTranscriber',
    'LiteLLMTranscriber',
    'MockTranscriber',
    'WhisperLocalTranscriber',
    'create_transcriber',
]
