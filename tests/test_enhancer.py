"""Tests for AI note enhancement."""

import json

import pytest
from langchain_core.language_models import FakeListLLM
from langchain_core.runnables import RunnableLambda

from core.analysis import ClinicalAnalysisEngine
from core.enhancer import (
    MockNoteEnhancer,
    OllamaNoteEnhancer,
    create_note_enhancer,
    parse_enhancement,
)
from core.prompts import ENHANCEMENT_KEYS, build_enhancement_prompt
from exceptions import InvalidResponseFormatError, ModelNotFoundError, OllamaConnectionError
from models import NoteEnhancement

from tests.conftest import ROUNDS_TRANSCRIPT

ENHANCEMENT_JSON = json.dumps({
    "neurosurgical_insights": ["GCS 13 warrants hourly neuro checks"],
    "clinical_risk_assessment": {"neurological_deterioration_risk": "MEDIUM"},
    "documentation_improvements": ["Document pupil size in mm"],
    "medical_accuracy_check": {"accuracy_score": "8"},
    "follow_up_priorities": ["Repeat CT if GCS drops"],
})


@pytest.fixture
def analysis():
    return ClinicalAnalysisEngine().analyze(ROUNDS_TRANSCRIPT)


def failing_llm(message: str) -> RunnableLambda:
    def call(_):
        raise RuntimeError(message)
    return RunnableLambda(call)


class TestParseEnhancement:

    def test_plain_json(self):
        enhancement = parse_enhancement(ENHANCEMENT_JSON)
        assert enhancement.neurosurgical_insights == ["GCS 13 warrants hourly neuro checks"]
        assert enhancement.clinical_risk_assessment["neurological_deterioration_risk"] == "MEDIUM"

    def test_json_wrapped_in_prose(self):
        raw = f"Here is my review:\n```json\n{ENHANCEMENT_JSON}\n```\nLet me know if you need more."
        assert parse_enhancement(raw).follow_up_priorities == ["Repeat CT if GCS drops"]

    def test_missing_keys_default_and_unknown_keys_ignored(self):
        enhancement = parse_enhancement('{"neurosurgical_insights": ["x"], "mood": "cheerful"}')
        assert enhancement.neurosurgical_insights == ["x"]
        assert enhancement.documentation_improvements == []

    @pytest.mark.parametrize("raw", [
        "I cannot review this note.",
        "{not json at all}",
        '{"neurosurgical_insights": "should be a list"}',
        '{"summary": "Patient stable"}',
        '["neurosurgical_insights"]',
        "",
    ])
    def test_unusable_responses(self, raw):
        with pytest.raises(InvalidResponseFormatError) as exc_info:
            parse_enhancement(raw)
        assert exc_info.value.provider == "ollama"


class TestPrompt:

    def test_prompt_contains_note_transcript_and_schema(self, analysis):
        prompt = build_enhancement_prompt(ROUNDS_TRANSCRIPT, analysis)
        assert "Template: neuro_rounds" in prompt
        assert '"neuro_exam": "GCS 13/15. Pupils equal."' in prompt
        assert ROUNDS_TRANSCRIPT in prompt
        assert all(key in prompt for key in ENHANCEMENT_KEYS)


class TestOllamaNoteEnhancer:

    def test_enhance(self, settings, analysis):
        enhancer = OllamaNoteEnhancer(settings, llm=FakeListLLM(responses=[ENHANCEMENT_JSON]))
        enhancement = enhancer.enhance(ROUNDS_TRANSCRIPT, analysis)
        assert enhancement.documentation_improvements == ["Document pupil size in mm"]

    @pytest.mark.asyncio
    async def test_aenhance(self, settings, analysis):
        enhancer = OllamaNoteEnhancer(settings, llm=FakeListLLM(responses=[ENHANCEMENT_JSON]))
        enhancement = await enhancer.aenhance(ROUNDS_TRANSCRIPT, analysis)
        assert enhancement.medical_accuracy_check == {"accuracy_score": "8"}

    def test_connection_error(self, settings, analysis):
        enhancer = OllamaNoteEnhancer(settings, llm=failing_llm("Connection refused"))
        with pytest.raises(OllamaConnectionError) as exc_info:
            enhancer.enhance(ROUNDS_TRANSCRIPT, analysis)
        assert exc_info.value.details["ollama_url"] == settings.ollama_base_url

    def test_model_not_found(self, settings, analysis):
        enhancer = OllamaNoteEnhancer(settings, llm=failing_llm("model 'llama3.2' not found, try pulling it first"))
        with pytest.raises(ModelNotFoundError):
            enhancer.enhance(ROUNDS_TRANSCRIPT, analysis)

    @pytest.mark.asyncio
    async def test_async_connection_error(self, settings, analysis):
        enhancer = OllamaNoteEnhancer(settings, llm=failing_llm("Connection refused"))
        with pytest.raises(OllamaConnectionError):
            await enhancer.aenhance(ROUNDS_TRANSCRIPT, analysis)

    def test_bad_model_output(self, settings, analysis):
        enhancer = OllamaNoteEnhancer(settings, llm=FakeListLLM(responses=["Sure! The note looks fine."]))
        with pytest.raises(InvalidResponseFormatError):
            enhancer.enhance(ROUNDS_TRANSCRIPT, analysis)


class TestMockNoteEnhancer:

    def test_default_enhancement(self, analysis):
        enhancer = MockNoteEnhancer()
        assert enhancer.enhance(ROUNDS_TRANSCRIPT, analysis).neurosurgical_insights == ["Mock insight"]
        assert enhancer.call_count == 1

    def test_scripted_error(self, analysis):
        enhancer = MockNoteEnhancer(error=OllamaConnectionError("http://localhost:11434", "refused"))
        with pytest.raises(OllamaConnectionError):
            enhancer.enhance(ROUNDS_TRANSCRIPT, analysis)

    def test_factory(self, settings):
        custom = NoteEnhancement(follow_up_priorities=["custom"])
        assert create_note_enhancer(settings, use_mock=True, mock_enhancement=custom).mock_enhancement is custom
        assert isinstance(create_note_enhancer(settings), OllamaNoteEnhancer)
