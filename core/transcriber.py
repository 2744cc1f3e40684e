"""
Transcription Providers for NeuroScribe
=======================================

This module turns audio bytes into a TranscriptionResult through one of
several speech-to-text providers.

Architecture Pattern: Protocol-based Service
--------------------------------------------
Every provider satisfies `TranscriberProtocol`. This allows:
1. The orchestrator to treat providers as an ordered list of interchangeable calls
2. Simple mocking for tests
3. Clear contracts for service behavior

Providers:
- **GroqTranscriber**: Whisper on Groq's OpenAI-compatible API (synchronous)
- **LiteLLMTranscriber**: Any speech model behind a LiteLLM proxy (synchronous)
- **AssemblyAITranscriber**: Upload, submit, then poll; returns speaker-labelled utterances
- **WhisperLocalTranscriber**: Local openai-whisper model, no network
- **MockTranscriber**: Canned results or scripted failures for tests

Error contract: adapters raise only ProviderError subclasses, so the
orchestrator can record the failure and move on to the next provider.
"""

import asyncio
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional, Protocol

import requests

from config import Settings, get_settings
from core.formatter import expand_medical_abbreviations
from core.polling import PollPolicy, poll_until
from exceptions import (
    ConfigurationError,
    InvalidResponseFormatError,
    ProviderAuthError,
    ProviderError,
    ProviderNetworkError,
    ProviderRateLimitError,
    ProviderResponseError,
    TranscriptionFailedError,
    TranscriptionJobError,
)
from models import (
    TranscriptionConfig,
    TranscriptionMetadata,
    TranscriptionProvider,
    TranscriptionResult,
    Utterance,
)

# Set up module logger
logger = logging.getLogger(__name__)

DEFAULT_FILENAME = "recording.webm"
DEFAULT_SPEECH_MODEL = "whisper-large-v3"


class TranscriberProtocol(Protocol):
    """
    Protocol defining the interface for transcription providers.

    Any class with a `name` and `transcribe`/`atranscribe` methods matching
    these signatures is a valid provider.
    """

    name: str

    def transcribe(
        self,
        audio: bytes,
        config: Optional[TranscriptionConfig] = None,
        filename: str = DEFAULT_FILENAME,
    ) -> TranscriptionResult:
        """
        Transcribe audio bytes (synchronous).

        Raises:
            ProviderError: Any provider failure, already classified
        """
        ...

    async def atranscribe(
        self,
        audio: bytes,
        config: Optional[TranscriptionConfig] = None,
        filename: str = DEFAULT_FILENAME,
    ) -> TranscriptionResult:
        """Async version of transcribe()."""
        ...


# =============================================================================
# HTTP Helpers
# =============================================================================

def _content_type(filename: str) -> str:
    extension = Path(filename).suffix.lower().lstrip(".")
    return {
        "mp3": "audio/mpeg",
        "wav": "audio/wav",
        "m4a": "audio/mp4",
        "mp4": "audio/mp4",
        "ogg": "audio/ogg",
        "flac": "audio/flac",
    }.get(extension, "audio/webm")


def raise_for_provider_status(provider: str, response: requests.Response) -> None:
    """Map a non-2xx response to the matching ProviderError."""
    status = response.status_code
    if 200 <= status < 300:
        return
    if status in (401, 403):
        raise ProviderAuthError(provider, f"HTTP {status}")
    if status == 429:
        raise ProviderRateLimitError(provider, response.headers.get("retry-after"))
    raise ProviderResponseError(provider, status, response.text)


def parse_json(provider: str, response: requests.Response) -> dict:
    try:
        payload = response.json()
    except ValueError as e:
        raise InvalidResponseFormatError(provider, f"response is not JSON: {e}")
    if not isinstance(payload, dict):
        raise InvalidResponseFormatError(provider, "expected a JSON object")
    return payload


class HTTPTranscriber(ABC):
    """
    Shared plumbing for providers reached over HTTP.

    The requests.Session is injectable so tests can substitute a fake.
    """

    name = "http"

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
    ):
        if not api_key:
            raise ProviderAuthError(self.name)
        self.settings = settings or get_settings()
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.session = session or requests.Session()
        self.timeout = self.settings.request_timeout_seconds

    @abstractmethod
    def transcribe(
        self,
        audio: bytes,
        config: Optional[TranscriptionConfig] = None,
        filename: str = DEFAULT_FILENAME,
    ) -> TranscriptionResult:
        ...

    async def atranscribe(
        self,
        audio: bytes,
        config: Optional[TranscriptionConfig] = None,
        filename: str = DEFAULT_FILENAME,
    ) -> TranscriptionResult:
        """
        Async version of transcribe().

        HTTP calls and polling block, so they run in a worker thread to keep
        the event loop responsive.
        """
        return await asyncio.to_thread(self.transcribe, audio, config, filename)

    def _request(self, method: str, url: str, **kwargs) -> requests.Response:
        try:
            response = self.session.request(method, url, timeout=self.timeout, **kwargs)
        except requests.Timeout as e:
            raise ProviderNetworkError(self.name, f"request timed out: {e}")
        except requests.RequestException as e:
            raise ProviderNetworkError(self.name, str(e))
        raise_for_provider_status(self.name, response)
        return response


# =============================================================================
# OpenAI-compatible Providers (Groq, LiteLLM)
# =============================================================================

class OpenAICompatibleTranscriber(HTTPTranscriber):
    """POSTs multipart audio to an /audio/transcriptions endpoint."""

    endpoint = "/audio/transcriptions"
    default_model = DEFAULT_SPEECH_MODEL

    def _model_label(self, model: str) -> str:
        return f"{self.name}/{model}"

    def transcribe(
        self,
        audio: bytes,
        config: Optional[TranscriptionConfig] = None,
        filename: str = DEFAULT_FILENAME,
    ) -> TranscriptionResult:
        config = config or TranscriptionConfig()
        model = config.model or self.default_model

        data = {
            "model": model,
            "response_format": config.response_format,
            "temperature": str(config.temperature),
        }
        if config.prompt:
            data["prompt"] = config.prompt
        if config.language:
            data["language"] = config.language

        logger.info(f"{self.name}: transcribing {len(audio)} bytes with {model}")
        response = self._request(
            "POST",
            f"{self.base_url}{self.endpoint}",
            headers={"Authorization": f"Bearer {self.api_key}"},
            files={"file": (filename, audio, _content_type(filename))},
            data=data,
        )

        if config.response_format == "json" or config.response_format.endswith("_json"):
            payload = parse_json(self.name, response)
            raw_text = payload.get("text") or ""
        else:
            raw_text = response.text

        text = expand_medical_abbreviations(raw_text)
        logger.info(f"{self.name}: transcription complete, {len(text)} characters")
        return TranscriptionResult(
            text=text,
            model=self._model_label(model),
            metadata=TranscriptionMetadata(word_count=len(text.split())),
        )


class GroqTranscriber(OpenAICompatibleTranscriber):
    """
    Whisper on Groq.

    Usage:
        transcriber = GroqTranscriber(settings=settings)
        result = transcriber.transcribe(audio_bytes, filename="visit.webm")
    """

    name = TranscriptionProvider.GROQ.value

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        settings = settings or get_settings()
        super().__init__(settings.groq_api_key, settings.groq_base_url, settings, session)
        self.default_model = settings.groq_model


class LiteLLMTranscriber(OpenAICompatibleTranscriber):
    """A speech model routed through a LiteLLM proxy. Needs a key and a base URL."""

    name = TranscriptionProvider.LITELLM.value
    endpoint = "/v1/audio/transcriptions"

    def __init__(self, settings: Optional[Settings] = None, session: Optional[requests.Session] = None):
        settings = settings or get_settings()
        if settings.litellm_api_key and not settings.litellm_base_url:
            raise ConfigurationError("litellm_base_url", "required when litellm_api_key is set")
        super().__init__(settings.litellm_api_key, settings.litellm_base_url or "", settings, session)
        self.default_model = settings.litellm_model


# =============================================================================
# AssemblyAI (asynchronous job + polling)
# =============================================================================

class AssemblyAITranscriber(HTTPTranscriber):
    """
    AssemblyAI with speaker diarization.

    Flow: upload audio -> submit a transcript job -> poll until the job is
    completed or errored. The poll is bounded by `poll_policy`.
    """

    name = TranscriptionProvider.ASSEMBLYAI.value

    def __init__(
        self,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        poll_policy: Optional[PollPolicy] = None,
        sleep=None,
    ):
        settings = settings or get_settings()
        super().__init__(settings.assemblyai_api_key, settings.assemblyai_base_url, settings, session)
        self.poll_policy = poll_policy or PollPolicy(
            max_attempts=settings.poll_max_attempts,
            interval_seconds=settings.poll_interval_seconds,
        )
        self._sleep = sleep

    @property
    def _headers(self) -> dict:
        return {"authorization": self.api_key}

    def upload(self, audio: bytes) -> str:
        response = self._request(
            "POST",
            f"{self.base_url}/upload",
            headers={**self._headers, "content-type": "application/octet-stream"},
            data=audio,
        )
        upload_url = parse_json(self.name, response).get("upload_url")
        if not upload_url:
            raise InvalidResponseFormatError(self.name, "upload response has no upload_url")
        return upload_url

    def submit(self, audio_url: str, config: TranscriptionConfig) -> str:
        payload: dict[str, Any] = {
            "audio_url": audio_url,
            "speech_model": config.model or self.settings.assemblyai_speech_model,
            "speaker_labels": True,
            "speakers_expected": self.settings.assemblyai_speakers_expected,
        }
        if config.language:
            payload["language_code"] = config.language
        if config.prompt:
            payload["boost_param"] = "high"

        response = self._request("POST", f"{self.base_url}/transcript", headers=self._headers, json=payload)
        job_id = parse_json(self.name, response).get("id")
        if not job_id:
            raise InvalidResponseFormatError(self.name, "transcript response has no id")
        return job_id

    def fetch_status(self, job_id: str) -> dict:
        response = self._request("GET", f"{self.base_url}/transcript/{job_id}", headers=self._headers)
        payload = parse_json(self.name, response)
        if payload.get("status") == "error":
            raise TranscriptionJobError(self.name, payload.get("error") or "unknown error")
        return payload

    def transcribe(
        self,
        audio: bytes,
        config: Optional[TranscriptionConfig] = None,
        filename: str = DEFAULT_FILENAME,
    ) -> TranscriptionResult:
        config = config or TranscriptionConfig()
        logger.info(f"{self.name}: uploading {len(audio)} bytes")
        audio_url = self.upload(audio)
        job_id = self.submit(audio_url, config)
        logger.info(f"{self.name}: job {job_id} submitted, polling")

        poll_kwargs = {"sleep": self._sleep} if self._sleep is not None else {}
        payload = poll_until(
            lambda: self.fetch_status(job_id),
            lambda result: result.get("status") == "completed",
            policy=self.poll_policy,
            provider=self.name,
            **poll_kwargs,
        )
        return self._to_result(payload, config)

    def _to_result(self, payload: dict, config: TranscriptionConfig) -> TranscriptionResult:
        utterances = []
        for item in payload.get("utterances") or []:
            try:
                utterances.append(Utterance(
                    speaker=str(item.get("speaker", "")),
                    text=item.get("text") or "",
                    start=(item.get("start") or 0) / 1000,
                    end=(item.get("end") or 0) / 1000,
                    confidence=_clamp(item.get("confidence")),
                ))
            except (TypeError, ValueError) as e:
                raise InvalidResponseFormatError(self.name, f"malformed utterance: {e}")

        speakers = list(dict.fromkeys(u.speaker for u in utterances))
        text = expand_medical_abbreviations(payload.get("text") or "")
        word_count = sum(u.word_count for u in utterances) if utterances else len(text.split())

        logger.info(
            f"{self.name}: transcription complete, {len(text)} characters, "
            f"{len(speakers)} speakers"
        )
        return TranscriptionResult(
            text=text,
            model=f"{self.name}/{config.model or self.settings.assemblyai_speech_model}",
            speakers=speakers,
            raw_utterances=utterances,
            metadata=TranscriptionMetadata(
                duration=payload.get("audio_duration"),
                confidence=_clamp(payload.get("confidence")),
                speaker_count=len(speakers),
                word_count=word_count,
            ),
        )


def _clamp(value) -> Optional[float]:
    if value is None:
        return None
    return min(1.0, max(0.0, float(value)))


# =============================================================================
# Local Whisper
# =============================================================================

class WhisperLocalTranscriber:
    """
    Transcriber using a local openai-whisper model.

    Using local Whisper ensures:
    1. Data privacy (no audio leaves the machine)
    2. No API costs
    3. Works offline

    openai-whisper is an optional dependency (the `local` extra) and is
    imported on first use.
    """

    name = TranscriptionProvider.WHISPER.value

    def __init__(self, settings: Optional[Settings] = None, model=None):
        """
        Args:
            settings: Application settings (uses defaults if not provided)
            model: Pre-loaded Whisper model (loads lazily if not provided)
        """
        self.settings = settings or get_settings()
        self._model = model
        logger.info(f"WhisperLocalTranscriber initialized with model: {self.settings.whisper_model}")

    @property
    def model(self):
        """Lazy-load the Whisper model; the same instance serves every call."""
        if self._model is None:
            self._load_model()
        return self._model

    def _load_model(self) -> None:
        try:
            import whisper

            logger.info(f"Loading Whisper model: {self.settings.whisper_model}")
            self._model = whisper.load_model(
                self.settings.whisper_model,
                device=self.settings.whisper_device,
            )
        except Exception as e:
            logger.error(f"Failed to load Whisper model: {e}")
            raise TranscriptionFailedError(
                file_path=self.settings.whisper_model,
                reason=f"model load failed: {e}",
            )

    def transcribe(
        self,
        audio: bytes,
        config: Optional[TranscriptionConfig] = None,
        filename: str = DEFAULT_FILENAME,
    ) -> TranscriptionResult:
        config = config or TranscriptionConfig()
        model = self.model
        suffix = Path(filename).suffix or ".webm"
        handle, path = tempfile.mkstemp(suffix=suffix)
        try:
            with os.fdopen(handle, "wb") as f:
                f.write(audio)
            result = model.transcribe(
                path,
                language=config.language or self.settings.whisper_language,
                initial_prompt=config.prompt,
                temperature=config.temperature,
                verbose=False,
            )
        except ProviderError:
            raise
        except Exception as e:
            logger.error(f"Transcription failed: {e}")
            raise TranscriptionFailedError(file_path=filename, reason=str(e))
        finally:
            Path(path).unlink(missing_ok=True)

        text = expand_medical_abbreviations(result.get("text", ""))
        segments = result.get("segments") or []
        duration = segments[-1].get("end", 0.0) if segments else None
        return TranscriptionResult(
            text=text,
            model=f"{self.name}/{self.settings.whisper_model}",
            metadata=TranscriptionMetadata(duration=duration, word_count=len(text.split())),
        )

    async def atranscribe(
        self,
        audio: bytes,
        config: Optional[TranscriptionConfig] = None,
        filename: str = DEFAULT_FILENAME,
    ) -> TranscriptionResult:
        return await asyncio.to_thread(self.transcribe, audio, config, filename)


# =============================================================================
# Mock
# =============================================================================

class MockTranscriber:
    """
    Mock transcriber for testing.

    Returns a fixed result, or raises `error` on every call when given one.

    Usage in tests:
        ok = MockTranscriber(name="groq", mock_text="Patient has headache...")
        down = MockTranscriber(name="assemblyai", error=ProviderNetworkError("assemblyai", "down"))
    """

    def __init__(
        self,
        name: str = "mock",
        mock_text: str = "Mock transcription text",
        error: Optional[Exception] = None,
    ):
        self.name = name
        self.mock_text = mock_text
        self.error = error
        self.call_count = 0

    def transcribe(
        self,
        audio: bytes,
        config: Optional[TranscriptionConfig] = None,
        filename: str = DEFAULT_FILENAME,
    ) -> TranscriptionResult:
        self.call_count += 1
        if self.error is not None:
            raise self.error
        text = expand_medical_abbreviations(self.mock_text)
        return TranscriptionResult(
            text=text,
            model=f"{self.name}/mock",
            metadata=TranscriptionMetadata(word_count=len(text.split())),
        )

    async def atranscribe(
        self,
        audio: bytes,
        config: Optional[TranscriptionConfig] = None,
        filename: str = DEFAULT_FILENAME,
    ) -> TranscriptionResult:
        return self.transcribe(audio, config, filename)


# =============================================================================
# Factory Functions
# =============================================================================

_PROVIDER_CLASSES = {
    TranscriptionProvider.GROQ: GroqTranscriber,
    TranscriptionProvider.LITELLM: LiteLLMTranscriber,
    TranscriptionProvider.ASSEMBLYAI: AssemblyAITranscriber,
}


def create_transcriber(
    provider,
    settings: Optional[Settings] = None,
    session: Optional[requests.Session] = None,
    use_mock: bool = False,
    mock_text: str = "",
) -> TranscriberProtocol:
    """
    Factory function to create one provider.

    Args:
        provider: Provider name or TranscriptionProvider
        settings: Application settings
        session: Shared HTTP session for remote providers
        use_mock: If True, returns a mock transcriber under the provider's name
        mock_text: Text returned by the mock

    Raises:
        ProviderAuthError: The provider has no credentials configured
        ConfigurationError: The provider is misconfigured or unknown
    """
    try:
        provider = TranscriptionProvider(provider)
    except ValueError:
        raise ConfigurationError("provider", f"unknown transcription provider '{provider}'")

    if use_mock:
        logger.info(f"Creating mock transcriber for {provider.value}")
        return MockTranscriber(name=provider.value, mock_text=mock_text or "Mock transcription text")

    if provider == TranscriptionProvider.WHISPER:
        return WhisperLocalTranscriber(settings=settings)

    return _PROVIDER_CLASSES[provider](settings=settings, session=session)


def create_available_transcribers(
    settings: Optional[Settings] = None,
    session: Optional[requests.Session] = None,
    include_local: bool = False,
) -> dict[str, TranscriberProtocol]:
    """
    Build every provider that has credentials configured.

    Providers without credentials are logged and left out; asking the
    orchestrator for one later yields ProviderUnavailableError.
    """
    settings = settings or get_settings()
    session = session or requests.Session()
    available = {}
    for provider in _PROVIDER_CLASSES:
        try:
            available[provider.value] = create_transcriber(provider, settings, session)
        except (ProviderAuthError, ConfigurationError) as e:
            logger.warning(f"Transcription provider {provider.value} not available: {e.message}")
    if include_local:
        available[TranscriptionProvider.WHISPER.value] = WhisperLocalTranscriber(settings=settings)
    logger.info(f"Available transcription providers: {', '.join(available) or 'none'}")
    return available
