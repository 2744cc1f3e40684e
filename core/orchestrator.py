"""
Transcription Orchestrator
==========================

Tries an ordered list of providers until one returns a transcript.

Architecture Pattern: Chain of Responsibility
---------------------------------------------
    primary -> fallback[0] -> fallback[1] -> ... -> AllProvidersFailedError

Rules:
- Candidates are the primary followed by the fallbacks, duplicates removed
  (first occurrence wins)
- Only ProviderError moves the chain along; anything else is a bug and
  propagates
- The winning result has `fallback=True` when it did not come from the
  first candidate
- Every attempt, successful or not, is recorded for diagnostics
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Sequence

import requests

from config import Settings, get_settings
from core.transcriber import (
    DEFAULT_FILENAME,
    TranscriberProtocol,
    create_available_transcribers,
)
from exceptions import AllProvidersFailedError, ProviderError, ProviderUnavailableError
from models import TranscriptionConfig, TranscriptionProvider, TranscriptionResult

logger = logging.getLogger(__name__)


DEFAULT_FALLBACK_CHAINS = {
    TranscriptionProvider.GROQ.value: (TranscriptionProvider.ASSEMBLYAI.value,),
    TranscriptionProvider.LITELLM.value: (
        TranscriptionProvider.GROQ.value,
        TranscriptionProvider.ASSEMBLYAI.value,
    ),
    TranscriptionProvider.ASSEMBLYAI.value: (TranscriptionProvider.GROQ.value,),
    TranscriptionProvider.WHISPER.value: (TranscriptionProvider.GROQ.value,),
}


def _provider_name(provider) -> str:
    return provider.value if isinstance(provider, TranscriptionProvider) else str(provider)


def default_fallbacks_for(primary) -> tuple:
    """Fallback chain used when a caller names a primary but no fallbacks."""
    return DEFAULT_FALLBACK_CHAINS.get(_provider_name(primary), ())


def build_candidate_list(primary, fallbacks: Iterable = ()) -> List[str]:
    """Primary then fallbacks, in order, without repeats."""
    names = [_provider_name(primary)] + [_provider_name(p) for p in fallbacks]
    return list(dict.fromkeys(names))


@dataclass
class ProviderAttempt:
    """Outcome of one provider call."""
    provider: str
    result: Optional[TranscriptionResult] = None
    error: Optional[ProviderError] = None

    @property
    def succeeded(self) -> bool:
        return self.result is not None


class TranscriptionOrchestrator:
    """
    Runs the provider fallback chain.

    Example:
        orchestrator = TranscriptionOrchestrator({"groq": groq, "assemblyai": assembly})
        result = orchestrator.transcribe(audio, "groq", ["assemblyai"])
        if result.fallback:
            print("primary provider failed")
    """

    def __init__(self, transcribers: Mapping[str, TranscriberProtocol]):
        self.transcribers = dict(transcribers)
        self.last_attempts: List[ProviderAttempt] = []

    def available_providers(self) -> List[str]:
        return list(self.transcribers)

    def _attempt(
        self,
        provider: str,
        audio: bytes,
        config: Optional[TranscriptionConfig],
        filename: str,
    ) -> ProviderAttempt:
        transcriber = self.transcribers.get(provider)
        if transcriber is None:
            return ProviderAttempt(provider, error=ProviderUnavailableError(provider))
        try:
            return ProviderAttempt(provider, result=transcriber.transcribe(audio, config, filename))
        except ProviderError as e:
            return ProviderAttempt(provider, error=e)

    async def _aattempt(
        self,
        provider: str,
        audio: bytes,
        config: Optional[TranscriptionConfig],
        filename: str,
    ) -> ProviderAttempt:
        transcriber = self.transcribers.get(provider)
        if transcriber is None:
            return ProviderAttempt(provider, error=ProviderUnavailableError(provider))
        try:
            return ProviderAttempt(provider, result=await transcriber.atranscribe(audio, config, filename))
        except ProviderError as e:
            return ProviderAttempt(provider, error=e)

    def _finish(self, attempts: Sequence[ProviderAttempt]) -> TranscriptionResult:
        self.last_attempts = list(attempts)
        winner = attempts[-1]
        if not winner.succeeded:
            logger.error(f"All transcription providers failed: {[a.provider for a in attempts]}")
            raise AllProvidersFailedError(attempts)
        used_fallback = len(attempts) > 1
        if used_fallback:
            logger.info(f"Transcribed with fallback provider {winner.provider}")
        return winner.result.model_copy(update={"fallback": used_fallback})

    def _log_attempt(self, attempt: ProviderAttempt) -> None:
        if attempt.error is not None:
            logger.warning(f"Provider {attempt.provider} failed: {attempt.error.message}")

    def transcribe(
        self,
        audio: bytes,
        primary_provider,
        fallback_providers: Iterable = (),
        config: Optional[TranscriptionConfig] = None,
        filename: str = DEFAULT_FILENAME,
    ) -> TranscriptionResult:
        """
        Transcribe with the first provider that succeeds.

        Raises:
            AllProvidersFailedError: every candidate failed
        """
        attempts = []
        for provider in build_candidate_list(primary_provider, fallback_providers):
            logger.info(f"Attempting transcription with {provider}")
            attempt = self._attempt(provider, audio, config, filename)
            attempts.append(attempt)
            self._log_attempt(attempt)
            if attempt.succeeded:
                break
        return self._finish(attempts)

    async def atranscribe(
        self,
        audio: bytes,
        primary_provider,
        fallback_providers: Iterable = (),
        config: Optional[TranscriptionConfig] = None,
        filename: str = DEFAULT_FILENAME,
    ) -> TranscriptionResult:
        """Async version of transcribe(). Providers are still tried one at a time."""
        attempts = []
        for provider in build_candidate_list(primary_provider, fallback_providers):
            logger.info(f"Attempting transcription with {provider}")
            attempt = await self._aattempt(provider, audio, config, filename)
            attempts.append(attempt)
            self._log_attempt(attempt)
            if attempt.succeeded:
                break
        return self._finish(attempts)


# =============================================================================
# Factory Function
# =============================================================================

def create_orchestrator(
    settings: Optional[Settings] = None,
    session: Optional[requests.Session] = None,
    transcribers: Optional[Mapping[str, TranscriberProtocol]] = None,
) -> TranscriptionOrchestrator:
    """
    Build an orchestrator over every configured provider.

    Args:
        settings: Application settings
        session: Shared HTTP session
        transcribers: Explicit provider map (skips discovery; used by tests)
    """
    if transcribers is None:
        settings = settings or get_settings()
        include_local = TranscriptionProvider.WHISPER in (
            [settings.primary_provider] + list(settings.fallback_providers)
        )
        transcribers = create_available_transcribers(settings, session, include_local=include_local)
    return TranscriptionOrchestrator(transcribers)
