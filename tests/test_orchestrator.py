"""Tests for the provider fallback chain."""

import pytest

from core.orchestrator import (
    TranscriptionOrchestrator,
    build_candidate_list,
    create_orchestrator,
    default_fallbacks_for,
)
from core.transcriber import MockTranscriber
from exceptions import (
    AllProvidersFailedError,
    PollingTimeoutError,
    ProviderAuthError,
    ProviderNetworkError,
    ProviderRateLimitError,
)
from models import TranscriptionProvider

AUDIO = b"fake-audio-bytes"


class BrokenTranscriber(MockTranscriber):
    """Raises something that is not a ProviderError."""

    def transcribe(self, *args, **kwargs):
        self.call_count += 1
        raise KeyError("bug in adapter")


class TestCandidateList:

    def test_primary_first_then_fallbacks(self):
        assert build_candidate_list("litellm", ["groq", "assemblyai"]) == ["litellm", "groq", "assemblyai"]

    def test_duplicates_removed(self):
        assert build_candidate_list("groq", ["groq", "assemblyai", "groq"]) == ["groq", "assemblyai"]

    def test_accepts_enums(self):
        candidates = build_candidate_list(TranscriptionProvider.ASSEMBLYAI, [TranscriptionProvider.GROQ])
        assert candidates == ["assemblyai", "groq"]

    def test_default_fallbacks(self):
        assert default_fallbacks_for("groq") == ("assemblyai",)
        assert default_fallbacks_for(TranscriptionProvider.LITELLM) == ("groq", "assemblyai")
        assert default_fallbacks_for("unknown") == ()


class TestTranscriptionOrchestrator:

    def test_primary_success_is_not_fallback(self):
        groq = MockTranscriber(name="groq")
        assembly = MockTranscriber(name="assemblyai")
        orchestrator = TranscriptionOrchestrator({"groq": groq, "assemblyai": assembly})

        result = orchestrator.transcribe(AUDIO, "groq", ["assemblyai"])

        assert result.model == "groq/mock"
        assert result.fallback is False
        assert assembly.call_count == 0
        assert [a.provider for a in orchestrator.last_attempts] == ["groq"]

    @pytest.mark.parametrize("error", [
        ProviderAuthError("groq", "HTTP 401"),
        ProviderNetworkError("groq", "connection refused"),
        ProviderRateLimitError("groq", "10"),
        PollingTimeoutError("groq", 60, 3.0),
    ])
    def test_falls_back_on_provider_errors(self, error):
        groq = MockTranscriber(name="groq", error=error)
        assembly = MockTranscriber(name="assemblyai")
        orchestrator = TranscriptionOrchestrator({"groq": groq, "assemblyai": assembly})

        result = orchestrator.transcribe(AUDIO, "groq", ["assemblyai"])

        assert result.model == "assemblyai/mock"
        assert result.fallback is True
        assert groq.call_count == 1
        assert orchestrator.last_attempts[0].error is error

    def test_providers_tried_in_order(self):
        calls = []

        class Recording(MockTranscriber):
            def transcribe(self, *args, **kwargs):
                calls.append(self.name)
                return super().transcribe(*args, **kwargs)

        orchestrator = TranscriptionOrchestrator({
            "litellm": Recording(name="litellm", error=ProviderNetworkError("litellm", "down")),
            "groq": Recording(name="groq", error=ProviderNetworkError("groq", "down")),
            "assemblyai": Recording(name="assemblyai"),
        })

        result = orchestrator.transcribe(AUDIO, "litellm", ["groq", "assemblyai"])

        assert calls == ["litellm", "groq", "assemblyai"]
        assert result.fallback is True

    def test_all_providers_fail(self):
        orchestrator = TranscriptionOrchestrator({
            "groq": MockTranscriber(name="groq", error=ProviderAuthError("groq")),
            "litellm": MockTranscriber(name="litellm", error=ProviderNetworkError("litellm", "down")),
            "assemblyai": MockTranscriber(name="assemblyai", error=PollingTimeoutError("assemblyai", 60, 3.0)),
        })

        with pytest.raises(AllProvidersFailedError) as exc_info:
            orchestrator.transcribe(AUDIO, "groq", ["litellm", "assemblyai"])

        error = exc_info.value
        assert error.provider == "assemblyai"
        assert "assemblyai" in error.message
        assert "Transcription polling timeout" in error.message
        assert [a["provider"] for a in error.details["attempts"]] == ["groq", "litellm", "assemblyai"]
        assert len(error.attempts) == 3

    def test_unconfigured_provider_is_skipped(self):
        orchestrator = TranscriptionOrchestrator({"assemblyai": MockTranscriber(name="assemblyai")})

        result = orchestrator.transcribe(AUDIO, "groq", ["assemblyai"])

        assert result.fallback is True
        assert orchestrator.last_attempts[0].error.provider == "groq"

    def test_single_unconfigured_provider(self):
        with pytest.raises(AllProvidersFailedError) as exc_info:
            TranscriptionOrchestrator({}).transcribe(AUDIO, "groq")
        assert exc_info.value.provider == "groq"

    def test_non_provider_errors_propagate(self):
        assembly = MockTranscriber(name="assemblyai")
        orchestrator = TranscriptionOrchestrator({"groq": BrokenTranscriber(name="groq"), "assemblyai": assembly})

        with pytest.raises(KeyError):
            orchestrator.transcribe(AUDIO, "groq", ["assemblyai"])
        assert assembly.call_count == 0

    @pytest.mark.asyncio
    async def test_atranscribe_falls_back(self):
        orchestrator = TranscriptionOrchestrator({
            "groq": MockTranscriber(name="groq", error=ProviderNetworkError("groq", "down")),
            "assemblyai": MockTranscriber(name="assemblyai"),
        })

        result = await orchestrator.atranscribe(AUDIO, "groq", ["assemblyai"])

        assert result.model == "assemblyai/mock"
        assert result.fallback is True

    @pytest.mark.asyncio
    async def test_atranscribe_all_fail(self):
        orchestrator = TranscriptionOrchestrator({
            "groq": MockTranscriber(name="groq", error=ProviderNetworkError("groq", "down")),
        })
        with pytest.raises(AllProvidersFailedError):
            await orchestrator.atranscribe(AUDIO, "groq", ["assemblyai"])


class TestCreateOrchestrator:

    def test_explicit_transcribers(self, settings):
        orchestrator = create_orchestrator(settings, transcribers={"groq": MockTranscriber(name="groq")})
        assert orchestrator.available_providers() == ["groq"]

    def test_discovers_configured_providers(self, settings, fake_session):
        orchestrator = create_orchestrator(settings, fake_session)
        assert orchestrator.available_providers() == ["groq", "assemblyai"]
