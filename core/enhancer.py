"""
AI Note Enhancement for NeuroScribe
===================================

Optional second opinion on a rule-based note, produced by a local LLM
through Ollama and LangChain.

Architecture Pattern: Service with Strategy
-------------------------------------------
The enhancer is designed to:
1. Stay out of the critical path (the note is complete without it)
2. Accept different LLM backends behind `NoteEnhancerProtocol`
3. Turn free-form model output into a validated NoteEnhancement

The model is asked for JSON only, but models wrap JSON in prose often
enough that the first {...} block in the reply is what gets parsed.
"""

import json
import logging
import re
from typing import Optional, Protocol

from langchain_core.output_parsers import StrOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_ollama import OllamaLLM
from pydantic import ValidationError

from config import Settings, get_settings
from core.prompts import ENHANCEMENT_KEYS, ENHANCEMENT_SYSTEM_PROMPT, build_enhancement_prompt
from exceptions import (
    EnhancementError,
    InvalidResponseFormatError,
    ModelNotFoundError,
    OllamaConnectionError,
)
from models import ClinicalAnalysisResult, NoteEnhancement

# Set up module logger
logger = logging.getLogger(__name__)

_JSON_BLOCK = re.compile(r"\{[\s\S]*\}")


class NoteEnhancerProtocol(Protocol):
    """Anything that can review a note and return a NoteEnhancement."""

    def enhance(self, transcript: str, analysis: ClinicalAnalysisResult) -> NoteEnhancement:
        ...

    async def aenhance(self, transcript: str, analysis: ClinicalAnalysisResult) -> NoteEnhancement:
        ...


def parse_enhancement(raw_response: str, provider: str = "ollama") -> NoteEnhancement:
    """
    Parse an LLM reply into a NoteEnhancement.

    Raises:
        InvalidResponseFormatError: no JSON object in the reply, or it does not fit the schema
    """
    match = _JSON_BLOCK.search(raw_response or "")
    if not match:
        raise InvalidResponseFormatError(provider, "no JSON object in model response")
    try:
        payload = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise InvalidResponseFormatError(provider, f"malformed JSON: {e.msg}")

    if not isinstance(payload, dict) or not any(key in payload for key in ENHANCEMENT_KEYS):
        raise InvalidResponseFormatError(provider, "JSON has none of the expected enhancement keys")
    try:
        return NoteEnhancement.model_validate(payload)
    except ValidationError as e:
        raise InvalidResponseFormatError(provider, f"unexpected JSON shape: {e.error_count()} error(s)")


class OllamaNoteEnhancer:
    """
    Note enhancer using an Ollama-hosted model.

    Key Design Decisions:
    ---------------------
    1. Lazy initialization: no connection until the first enhancement
    2. Prompt text is passed as template variables, so JSON braces in the
       transcript or schema are never read as placeholders
    3. Connection and model errors map to EnhancementError subclasses
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        llm: Optional[OllamaLLM] = None,
    ):
        """
        Args:
            settings: Application settings (uses defaults if not provided)
            llm: Pre-configured LLM instance (creates one if not provided)
        """
        self.settings = settings or get_settings()
        self._llm = llm
        logger.info(f"OllamaNoteEnhancer initialized with model: {self.settings.ollama_model}")

    @property
    def llm(self) -> OllamaLLM:
        """Lazy-load the LLM instance."""
        if self._llm is None:
            logger.info(
                f"Initializing Ollama LLM: {self.settings.ollama_model} "
                f"at {self.settings.ollama_base_url}"
            )
            self._llm = OllamaLLM(
                model=self.settings.ollama_model,
                base_url=self.settings.ollama_base_url,
                temperature=self.settings.ollama_temperature,
                num_ctx=self.settings.ollama_context_window,
            )
        return self._llm

    def _chain(self):
        prompt = ChatPromptTemplate.from_messages([
            ("system", "{system_prompt}"),
            ("human", "{user_prompt}"),
        ])
        return prompt | self.llm | StrOutputParser()

    def _variables(self, transcript: str, analysis: ClinicalAnalysisResult) -> dict:
        return {
            "system_prompt": ENHANCEMENT_SYSTEM_PROMPT,
            "user_prompt": build_enhancement_prompt(transcript, analysis),
        }

    def _translate_error(self, error: Exception) -> EnhancementError:
        message = str(error)
        lowered = message.lower()
        if "not found" in lowered or "pull" in lowered:
            return ModelNotFoundError(self.settings.ollama_model)
        return OllamaConnectionError(url=self.settings.ollama_base_url, original_error=message)

    def enhance(self, transcript: str, analysis: ClinicalAnalysisResult) -> NoteEnhancement:
        """
        Review one note.

        Raises:
            EnhancementError: Ollama unreachable or model missing
            InvalidResponseFormatError: reply is not usable JSON
        """
        logger.info(f"Requesting AI enhancement for {analysis.suggested_template} note")
        try:
            raw_response = self._chain().invoke(self._variables(transcript, analysis))
        except Exception as e:
            logger.error(f"AI enhancement request failed: {e}")
            raise self._translate_error(e)

        logger.debug(f"Received enhancement response ({len(raw_response)} chars)")
        return parse_enhancement(raw_response)

    async def aenhance(self, transcript: str, analysis: ClinicalAnalysisResult) -> NoteEnhancement:
        """Async version of enhance() using LangChain's ainvoke."""
        logger.info(f"Requesting AI enhancement (async) for {analysis.suggested_template} note")
        try:
            raw_response = await self._chain().ainvoke(self._variables(transcript, analysis))
        except Exception as e:
            logger.error(f"AI enhancement request failed: {e}")
            raise self._translate_error(e)

        return parse_enhancement(raw_response)


class MockNoteEnhancer:
    """
    Mock enhancer for testing.

    Returns `mock_enhancement`, or raises `error` when given one.
    """

    def __init__(
        self,
        mock_enhancement: Optional[NoteEnhancement] = None,
        error: Optional[Exception] = None,
    ):
        self.mock_enhancement = mock_enhancement or NoteEnhancement(
            neurosurgical_insights=["Mock insight"],
            follow_up_priorities=["Mock follow-up"],
        )
        self.error = error
        self.call_count = 0

    def enhance(self, transcript: str, analysis: ClinicalAnalysisResult) -> NoteEnhancement:
        self.call_count += 1
        if self.error is not None:
            raise self.error
        return self.mock_enhancement

    async def aenhance(self, transcript: str, analysis: ClinicalAnalysisResult) -> NoteEnhancement:
        return self.enhance(transcript, analysis)


# =============================================================================
# Factory Function
# =============================================================================

def create_note_enhancer(
    settings: Optional[Settings] = None,
    use_mock: bool = False,
    mock_enhancement: Optional[NoteEnhancement] = None,
) -> NoteEnhancerProtocol:
    """
    Factory function to create the appropriate note enhancer.

    Args:
        settings: Application settings
        use_mock: If True, returns a mock enhancer
        mock_enhancement: NoteEnhancement returned by the mock
    """
    if use_mock:
        logger.info("Creating mock note enhancer")
        return MockNoteEnhancer(mock_enhancement=mock_enhancement)

    logger.info("Creating Ollama note enhancer")
    return OllamaNoteEnhancer(settings=settings)
