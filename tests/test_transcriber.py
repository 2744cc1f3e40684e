"""Tests for the provider adapters, run against a fake HTTP session."""

from pathlib import Path

import pytest
import requests

from config import get_settings_for_testing
from core.polling import PollPolicy
from core.transcriber import (
    AssemblyAITranscriber,
    GroqTranscriber,
    LiteLLMTranscriber,
    MockTranscriber,
    WhisperLocalTranscriber,
    create_available_transcribers,
    create_transcriber,
)
from exceptions import (
    ConfigurationError,
    InvalidResponseFormatError,
    PollingTimeoutError,
    ProviderAuthError,
    ProviderNetworkError,
    ProviderRateLimitError,
    ProviderResponseError,
    TranscriptionFailedError,
    TranscriptionJobError,
)
from models import TranscriptionConfig

from tests.conftest import FakeResponse, FakeSession

AUDIO = b"fake-audio-bytes"


class TestGroqTranscriber:

    def test_successful_transcription(self, settings, fake_session):
        fake_session.queue(FakeResponse(200, {"text": "gcs 13, icp  stable"}))
        transcriber = GroqTranscriber(settings, fake_session)

        result = transcriber.transcribe(AUDIO, settings.transcription_config(), filename="visit.mp3")

        assert result.text == "GCS 13, ICP stable"
        assert result.model == "groq/whisper-large-v3"
        assert result.fallback is False
        assert result.metadata.word_count == 4
        assert result.has_diarization is False

        call = fake_session.calls[0]
        assert call["method"] == "POST"
        assert call["url"] == "https://api.groq.com/openai/v1/audio/transcriptions"
        assert call["headers"] == {"Authorization": "Bearer gsk_test"}
        assert call["files"]["file"] == ("visit.mp3", AUDIO, "audio/mpeg")
        assert call["data"]["model"] == "whisper-large-v3"
        assert call["data"]["response_format"] == "json"
        assert call["data"]["temperature"] == "0.0"
        assert "GCS" in call["data"]["prompt"]
        assert call["timeout"] == settings.request_timeout_seconds

    def test_model_and_language_overrides(self, settings, fake_session):
        fake_session.queue(FakeResponse(200, {"text": "hola"}))
        config = TranscriptionConfig(model="whisper-large-v3-turbo", language="es")

        result = GroqTranscriber(settings, fake_session).transcribe(AUDIO, config)

        assert result.model == "groq/whisper-large-v3-turbo"
        assert fake_session.calls[0]["data"]["language"] == "es"
        assert "prompt" not in fake_session.calls[0]["data"]

    def test_text_response_format(self, settings, fake_session):
        fake_session.queue(FakeResponse(200, text="plain text transcript"))
        config = TranscriptionConfig(response_format="text")

        result = GroqTranscriber(settings, fake_session).transcribe(AUDIO, config)

        assert result.text == "plain text transcript"

    def test_missing_key(self, fake_session):
        with pytest.raises(ProviderAuthError) as exc_info:
            GroqTranscriber(get_settings_for_testing(), fake_session)
        assert exc_info.value.provider == "groq"
        assert exc_info.value.status_code == 401

    @pytest.mark.parametrize("status_code, error_type", [
        (401, ProviderAuthError),
        (403, ProviderAuthError),
        (500, ProviderResponseError),
        (400, ProviderResponseError),
    ])
    def test_http_errors(self, settings, fake_session, status_code, error_type):
        fake_session.queue(FakeResponse(status_code, text="vendor says no"))
        with pytest.raises(error_type) as exc_info:
            GroqTranscriber(settings, fake_session).transcribe(AUDIO)
        assert exc_info.value.provider == "groq"

    def test_vendor_status_is_kept(self, settings, fake_session):
        fake_session.queue(FakeResponse(502, text="bad gateway"))
        with pytest.raises(ProviderResponseError) as exc_info:
            GroqTranscriber(settings, fake_session).transcribe(AUDIO)
        assert exc_info.value.status_code == 502

    def test_rate_limit(self, settings, fake_session):
        fake_session.queue(FakeResponse(429, text="slow down", headers={"retry-after": "30"}))
        with pytest.raises(ProviderRateLimitError) as exc_info:
            GroqTranscriber(settings, fake_session).transcribe(AUDIO)
        assert exc_info.value.status_code == 429
        assert exc_info.value.details["retry_after"] == "30"

    def test_malformed_json(self, settings, fake_session):
        fake_session.queue(FakeResponse(200, text="<html>oops</html>"))
        with pytest.raises(InvalidResponseFormatError):
            GroqTranscriber(settings, fake_session).transcribe(AUDIO)

    def test_non_object_json(self, settings, fake_session):
        fake_session.queue(FakeResponse(200, ["not", "an", "object"]))
        with pytest.raises(InvalidResponseFormatError):
            GroqTranscriber(settings, fake_session).transcribe(AUDIO)

    @pytest.mark.parametrize("error", [
        requests.ConnectionError("connection refused"),
        requests.Timeout("read timed out"),
    ])
    def test_network_errors(self, settings, fake_session, error):
        fake_session.queue(error)
        with pytest.raises(ProviderNetworkError) as exc_info:
            GroqTranscriber(settings, fake_session).transcribe(AUDIO)
        assert exc_info.value.status_code == 503

    @pytest.mark.asyncio
    async def test_atranscribe(self, settings, fake_session):
        fake_session.queue(FakeResponse(200, {"text": "evd draining"}))
        result = await GroqTranscriber(settings, fake_session).atranscribe(AUDIO)
        assert result.text == "EVD draining"


class TestLiteLLMTranscriber:

    def test_key_without_base_url(self, fake_session):
        settings = get_settings_for_testing(litellm_api_key="sk-test")
        with pytest.raises(ConfigurationError):
            LiteLLMTranscriber(settings, fake_session)

    def test_missing_key(self, fake_session):
        with pytest.raises(ProviderAuthError):
            LiteLLMTranscriber(get_settings_for_testing(), fake_session)

    def test_successful_transcription(self, fake_session):
        settings = get_settings_for_testing(litellm_api_key="sk-test", litellm_base_url="http://proxy:4000/")
        fake_session.queue(FakeResponse(200, {"text": "patient alert"}))

        result = LiteLLMTranscriber(settings, fake_session).transcribe(AUDIO)

        assert result.model == "litellm/groq/whisper-large-v3"
        assert fake_session.calls[0]["url"] == "http://proxy:4000/v1/audio/transcriptions"
        assert fake_session.calls[0]["headers"] == {"Authorization": "Bearer sk-test"}


COMPLETED_JOB = {
    "id": "job-1",
    "status": "completed",
    "text": "How are you feeling? I have a headache. Any nausea?",
    "audio_duration": 4.0,
    "confidence": 0.93,
    "utterances": [
        {"speaker": "A", "text": "How are you feeling?", "start": 0, "end": 1500, "confidence": 0.95},
        {"speaker": "B", "text": "I have a headache.", "start": 1600, "end": 3000, "confidence": 0.9},
        {"speaker": "A", "text": "Any nausea?", "start": 3100, "end": 4000, "confidence": 0.92},
    ],
}


class TestAssemblyAITranscriber:

    @pytest.fixture
    def transcriber(self, settings, fake_session, no_sleep):
        return AssemblyAITranscriber(settings, fake_session, sleep=no_sleep)

    def queue_job(self, session: FakeSession, *statuses):
        session.queue(
            FakeResponse(200, {"upload_url": "https://cdn.assemblyai.com/upload/abc"}),
            FakeResponse(200, {"id": "job-1", "status": "queued"}),
            *[FakeResponse(200, status) for status in statuses],
        )

    def test_upload_submit_poll(self, transcriber, fake_session, no_sleep):
        self.queue_job(fake_session, {"id": "job-1", "status": "processing"}, COMPLETED_JOB)

        result = transcriber.transcribe(AUDIO)

        upload, submit, first_poll, second_poll = fake_session.calls
        assert upload["url"] == "https://api.assemblyai.com/v2/upload"
        assert upload["headers"] == {"authorization": "aai_test", "content-type": "application/octet-stream"}
        assert upload["data"] == AUDIO
        assert submit["url"] == "https://api.assemblyai.com/v2/transcript"
        assert submit["json"] == {
            "audio_url": "https://cdn.assemblyai.com/upload/abc",
            "speech_model": "universal",
            "speaker_labels": True,
            "speakers_expected": 2,
        }
        assert first_poll["method"] == second_poll["method"] == "GET"
        assert second_poll["url"] == "https://api.assemblyai.com/v2/transcript/job-1"
        assert no_sleep.calls == [0.0]

        assert result.model == "assemblyai/universal"
        assert result.speakers == ["A", "B"]
        assert result.has_diarization
        assert result.raw_utterances[0].end == 1.5
        assert result.raw_utterances[1].start == 1.6
        assert result.metadata.duration == 4.0
        assert result.metadata.confidence == 0.93
        assert result.metadata.speaker_count == 2
        assert result.metadata.word_count == 10

    def test_prompt_and_language_options(self, transcriber, fake_session):
        self.queue_job(fake_session, COMPLETED_JOB)
        transcriber.transcribe(AUDIO, TranscriptionConfig(prompt="neurosurgery", language="en"))
        submit = fake_session.calls[1]["json"]
        assert submit["language_code"] == "en"
        assert submit["boost_param"] == "high"

    def test_failed_job(self, transcriber, fake_session):
        self.queue_job(fake_session, {"id": "job-1", "status": "error", "error": "Audio file is empty"})
        with pytest.raises(TranscriptionJobError) as exc_info:
            transcriber.transcribe(AUDIO)
        assert exc_info.value.details["reason"] == "Audio file is empty"

    def test_polling_timeout(self, transcriber, fake_session, no_sleep):
        processing = {"id": "job-1", "status": "processing"}
        self.queue_job(fake_session, processing, processing, processing)
        with pytest.raises(PollingTimeoutError) as exc_info:
            transcriber.transcribe(AUDIO)
        assert exc_info.value.provider == "assemblyai"
        assert len(fake_session.calls) == 5
        assert len(no_sleep.calls) == 3

    def test_explicit_poll_policy(self, settings, fake_session, no_sleep):
        transcriber = AssemblyAITranscriber(
            settings, fake_session, poll_policy=PollPolicy(max_attempts=1, interval_seconds=5), sleep=no_sleep
        )
        self.queue_job(fake_session, {"id": "job-1", "status": "processing"})
        with pytest.raises(PollingTimeoutError):
            transcriber.transcribe(AUDIO)
        assert no_sleep.calls == [5]

    def test_upload_without_url(self, transcriber, fake_session):
        fake_session.queue(FakeResponse(200, {"message": "ok"}))
        with pytest.raises(InvalidResponseFormatError):
            transcriber.transcribe(AUDIO)

    def test_submit_without_id(self, transcriber, fake_session):
        fake_session.queue(
            FakeResponse(200, {"upload_url": "https://cdn.assemblyai.com/upload/abc"}),
            FakeResponse(200, {"status": "queued"}),
        )
        with pytest.raises(InvalidResponseFormatError):
            transcriber.transcribe(AUDIO)

    def test_rejected_key(self, transcriber, fake_session):
        fake_session.queue(FakeResponse(401, {"error": "Invalid API key"}))
        with pytest.raises(ProviderAuthError):
            transcriber.transcribe(AUDIO)

    def test_result_without_utterances(self, transcriber, fake_session):
        self.queue_job(fake_session, {"id": "job-1", "status": "completed", "text": "gcs 15"})
        result = transcriber.transcribe(AUDIO)
        assert result.text == "GCS 15"
        assert result.speakers == []
        assert result.metadata.word_count == 2


class FakeWhisperModel:
    def __init__(self, result=None, error=None):
        self.result = result or {"text": " gcs 15, moving all extremities ", "segments": [{"end": 12.5}]}
        self.error = error
        self.paths = []
        self.kwargs = None

    def transcribe(self, path, **kwargs):
        self.paths.append(path)
        self.kwargs = kwargs
        assert Path(path).read_bytes() == AUDIO
        if self.error:
            raise self.error
        return self.result


class TestWhisperLocalTranscriber:

    def test_transcribes_with_preloaded_model(self, settings):
        model = FakeWhisperModel()
        result = WhisperLocalTranscriber(settings, model=model).transcribe(
            AUDIO, TranscriptionConfig(prompt="neuro"), filename="visit.wav"
        )
        assert result.text == "GCS 15, moving all extremities"
        assert result.model == "whisper/base"
        assert result.metadata.duration == 12.5
        assert model.kwargs["initial_prompt"] == "neuro"
        assert model.paths[0].endswith(".wav")
        assert not Path(model.paths[0]).exists()

    def test_failure_is_a_provider_error(self, settings):
        model = FakeWhisperModel(error=RuntimeError("ffmpeg not found"))
        with pytest.raises(TranscriptionFailedError) as exc_info:
            WhisperLocalTranscriber(settings, model=model).transcribe(AUDIO)
        assert exc_info.value.provider == "whisper"
        assert not Path(model.paths[0]).exists()


class TestMockTranscriber:

    def test_returns_text_and_counts_calls(self):
        transcriber = MockTranscriber(name="groq", mock_text="icp 12")
        result = transcriber.transcribe(AUDIO)
        assert result.text == "ICP 12"
        assert result.model == "groq/mock"
        assert transcriber.call_count == 1

    def test_scripted_error(self):
        transcriber = MockTranscriber(error=ProviderNetworkError("mock", "down"))
        with pytest.raises(ProviderNetworkError):
            transcriber.transcribe(AUDIO)
        assert transcriber.call_count == 1


class TestFactories:

    def test_unknown_provider(self, settings):
        with pytest.raises(ConfigurationError):
            create_transcriber("deepgram", settings)

    def test_mock_provider(self, settings):
        transcriber = create_transcriber("assemblyai", settings, use_mock=True)
        assert isinstance(transcriber, MockTranscriber)
        assert transcriber.name == "assemblyai"

    def test_real_provider(self, settings, fake_session):
        assert isinstance(create_transcriber("groq", settings, fake_session), GroqTranscriber)
        assert isinstance(create_transcriber("whisper", settings), WhisperLocalTranscriber)

    def test_available_transcribers_skip_unconfigured(self, settings, fake_session):
        available = create_available_transcribers(settings, fake_session)
        assert list(available) == ["groq", "assemblyai"]

    def test_available_transcribers_with_local(self, settings, fake_session):
        available = create_available_transcribers(settings, fake_session, include_local=True)
        assert "whisper" in available
