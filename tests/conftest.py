"""
Shared pytest fixtures for NeuroScribe.

Provider adapters talk to a FakeSession instead of the network, and polling
uses a sleep that records its calls instead of waiting.
"""

import json
from typing import Any, List, Optional

import pytest

from config import get_settings, get_settings_for_testing
from core.enhancer import MockNoteEnhancer
from core.orchestrator import TranscriptionOrchestrator
from core.transcriber import MockTranscriber
from pipeline import ClinicalDocumentationPipeline


ROUNDS_TRANSCRIPT = (
    "Patient presented with a GCS 13/15, pupils equal and reactive to light. "
    "No signs of hydrocephalus. Plan for immediate MRI and then craniotomy."
)

FAMILY_MEETING_TRANSCRIPT = (
    "Thank you for coming in. Let's discuss goals of care and prognosis with the family."
)

CONSULT_TRANSCRIPT = (
    "Good morning, what brings you in today? I've been experiencing headaches for three weeks. "
    "It happens when I climb stairs. Any history of migraines? "
    "I'd like to order an MRI to help us determine the cause."
)


class FakeResponse:
    """Just enough of requests.Response for the adapters."""

    def __init__(
        self,
        status_code: int = 200,
        payload: Any = None,
        text: Optional[str] = None,
        headers: Optional[dict] = None,
    ):
        self.status_code = status_code
        self._payload = payload
        self.text = text if text is not None else (json.dumps(payload) if payload is not None else "")
        self.headers = headers or {}

    def json(self):
        if self._payload is None:
            raise ValueError("No JSON object could be decoded")
        return self._payload


class FakeSession:
    """
    Records requests and answers from a queue.

    Queue items are FakeResponse objects, or exceptions to raise.
    """

    def __init__(self, responses: Optional[List[Any]] = None):
        self.responses = list(responses or [])
        self.calls: List[dict] = []

    def queue(self, *responses) -> "FakeSession":
        self.responses.extend(responses)
        return self

    def request(self, method: str, url: str, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self.responses:
            raise AssertionError(f"Unexpected request: {method} {url}")
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class RecordingSleep:
    def __init__(self):
        self.calls: List[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Keep every test away from a developer's .env and real directories."""
    for key in ("GROQ_API_KEY", "LITELLM_API_KEY", "LITELLM_BASE_URL", "ASSEMBLYAI_API_KEY"):
        monkeypatch.delenv(f"NEUROSCRIBE_{key}", raising=False)
    monkeypatch.setenv("NEUROSCRIBE_TEMP_FILE_DIR", str(tmp_path / "uploads"))
    monkeypatch.setenv("NEUROSCRIBE_OUTPUT_DIR", str(tmp_path / "output"))
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def settings(tmp_path):
    return get_settings_for_testing(
        groq_api_key="gsk_test",
        assemblyai_api_key="aai_test",
        poll_max_attempts=3,
        poll_interval_seconds=0,
        temp_file_dir=str(tmp_path / "uploads"),
        output_dir=str(tmp_path / "output"),
        enable_ai_enhancement=False,
    )


@pytest.fixture
def fake_session():
    return FakeSession()


@pytest.fixture
def no_sleep():
    return RecordingSleep()


@pytest.fixture
def mock_transcribers():
    return {
        "groq": MockTranscriber(name="groq", mock_text=ROUNDS_TRANSCRIPT),
        "assemblyai": MockTranscriber(name="assemblyai", mock_text=ROUNDS_TRANSCRIPT),
    }


@pytest.fixture
def mock_enhancer():
    return MockNoteEnhancer()


@pytest.fixture
def pipeline(settings, mock_transcribers, mock_enhancer):
    return ClinicalDocumentationPipeline(
        settings=settings,
        orchestrator=TranscriptionOrchestrator(mock_transcribers),
        enhancer=mock_enhancer,
    )


@pytest.fixture
def audio_file(tmp_path):
    path = tmp_path / "rounds.webm"
    path.write_bytes(b"\x1a\x45\xdf\xa3 fake webm audio")
    return path
