"""
Processing Pipeline for NeuroScribe
===================================

This module provides the main orchestration layer that combines
transcription, transcript analysis and optional AI enhancement into a
single, coherent workflow.

Architecture Pattern: Pipeline
------------------------------
A pipeline is a series of processing stages where:
1. Each stage transforms data
2. Output of one stage is input to the next
3. Stages are independent and reusable

Our Pipeline:
Audio File → [Orchestrator] → Transcript → [Analysis Engine] → Structured Note
                                                   ↓ (optional)
                                            [Note Enhancer] → AI insights

Failure semantics:
- Transcription failure fails the run (nothing to document)
- Analysis failure never fails the run; the fallback document is used
- Enhancement failure never fails the run; ai_enhancement stays None
"""

import asyncio
import json
import logging
import uuid
from datetime import datetime
from pathlib import Path
from typing import Awaitable, Callable, Iterable, Optional, Union

from config import Settings, get_settings
from core.analysis import ClinicalAnalysisEngine, PatientInput, validate_transcript
from core.enhancer import NoteEnhancerProtocol, create_note_enhancer
from core.orchestrator import TranscriptionOrchestrator, create_orchestrator, default_fallbacks_for
from core.transcriber import DEFAULT_FILENAME, create_transcriber
from exceptions import (
    AudioFileNotFoundError,
    AudioTooLargeError,
    NeuroScribeError,
    UnsupportedAudioFormatError,
    clinician_message,
)
from models import (
    AudioPath,
    DocumentationResult,
    ProcessingResult,
    ProcessingStatus,
    TranscriptionProvider,
    TranscriptionResult,
)

# Set up module logger
logger = logging.getLogger(__name__)


# Type aliases for progress callbacks
ProgressCallback = Callable[[ProcessingStatus, str, int], None]
AsyncProgressCallback = Callable[[ProcessingStatus, str, int], Awaitable[None]]
AnyProgressCallback = Union[ProgressCallback, AsyncProgressCallback]


class _ProgressHelper:
    """Maps per-stage progress onto the overall 0-100 scale."""

    TRANSCRIPTION_WEIGHT = 50  # 0-50%
    ANALYSIS_WEIGHT = 30       # 50-80%
    ENHANCEMENT_WEIGHT = 20    # 80-100%

    @staticmethod
    def transcription_progress(stage_percent: int) -> int:
        return stage_percent * _ProgressHelper.TRANSCRIPTION_WEIGHT // 100

    @staticmethod
    def analysis_progress(stage_percent: int) -> int:
        base = _ProgressHelper.TRANSCRIPTION_WEIGHT
        return base + stage_percent * _ProgressHelper.ANALYSIS_WEIGHT // 100

    @staticmethod
    def enhancement_progress(stage_percent: int) -> int:
        base = _ProgressHelper.TRANSCRIPTION_WEIGHT + _ProgressHelper.ANALYSIS_WEIGHT
        return base + stage_percent * _ProgressHelper.ENHANCEMENT_WEIGHT // 100


def validate_audio_file(audio_path: AudioPath, settings: Settings) -> Path:
    """
    Check an audio file exists, has a supported extension and fits the size limit.

    Raises:
        AudioFileNotFoundError, UnsupportedAudioFormatError, AudioTooLargeError
    """
    path = Path(audio_path)
    if not path.is_file():
        raise AudioFileNotFoundError(str(audio_path))

    extension = path.suffix.lower().lstrip(".")
    if extension not in settings.supported_audio_formats:
        raise UnsupportedAudioFormatError(str(audio_path), extension, settings.supported_audio_formats)

    max_bytes = settings.max_upload_size_mb * 1024 * 1024
    size = path.stat().st_size
    if size > max_bytes:
        raise AudioTooLargeError(str(audio_path), size, max_bytes)
    return path


class ClinicalDocumentationPipeline:
    """
    Main pipeline for turning clinical audio into structured notes.

    Design Principles:
    -----------------
    1. Dependency Injection: orchestrator, engine and enhancer are injectable
    2. Single Responsibility: only sequences stages, owns no rules
    3. Error Handling: every failure ends up as a clinician-readable message

    Usage:
        pipeline = ClinicalDocumentationPipeline()
        result = pipeline.process("rounds.webm")
        print(result.documentation.clinical_documentation.structured_note.to_formatted_string())
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        orchestrator: Optional[TranscriptionOrchestrator] = None,
        engine: Optional[ClinicalAnalysisEngine] = None,
        enhancer: Optional[NoteEnhancerProtocol] = None,
    ):
        """
        Args:
            settings: Application settings
            orchestrator: Transcription orchestrator (built from settings when omitted)
            engine: Clinical analysis engine
            enhancer: Note enhancer, only used when enhancement is requested
        """
        self.settings = settings or get_settings()
        self._orchestrator = orchestrator
        self.engine = engine or ClinicalAnalysisEngine()
        self._enhancer = enhancer

        logger.info("ClinicalDocumentationPipeline initialized")

    @property
    def orchestrator(self) -> TranscriptionOrchestrator:
        """Lazy-load the orchestrator; provider discovery happens on first use."""
        if self._orchestrator is None:
            self._orchestrator = create_orchestrator(self.settings)
        return self._orchestrator

    @property
    def enhancer(self) -> NoteEnhancerProtocol:
        if self._enhancer is None:
            self._enhancer = create_note_enhancer(settings=self.settings)
        return self._enhancer

    def resolve_providers(self, primary_provider=None, fallback_providers: Optional[Iterable] = None) -> tuple:
        """
        Decide the provider chain for one request.

        No primary: the configured primary and fallbacks. A primary with no
        fallbacks: that provider's default fallback chain.
        """
        if primary_provider is None:
            primary = self.settings.primary_provider
            fallbacks = self.settings.fallback_providers if fallback_providers is None else fallback_providers
        else:
            primary = primary_provider
            fallbacks = default_fallbacks_for(primary) if fallback_providers is None else fallback_providers
        return primary, list(fallbacks)

    def _should_enhance(self, include_enhancement: Optional[bool]) -> bool:
        if include_enhancement is None:
            return self.settings.enable_ai_enhancement
        return include_enhancement

    # =========================================================================
    # Sync API
    # =========================================================================

    def transcribe_audio(
        self,
        audio: bytes,
        filename: str = DEFAULT_FILENAME,
        primary_provider=None,
        fallback_providers: Optional[Iterable] = None,
    ) -> TranscriptionResult:
        """
        Transcribe raw audio bytes through the provider chain.

        Raises:
            AllProvidersFailedError: no provider produced a transcript
        """
        primary, fallbacks = self.resolve_providers(primary_provider, fallback_providers)
        return self.orchestrator.transcribe(
            audio,
            primary,
            fallbacks,
            config=self.settings.transcription_config(),
            filename=filename,
        )

    def transcribe_only(
        self,
        audio_path: AudioPath,
        primary_provider=None,
        fallback_providers: Optional[Iterable] = None,
    ) -> TranscriptionResult:
        """Validate and transcribe a file without analysing it."""
        logger.info(f"Transcribe-only mode for: {audio_path}")
        path = validate_audio_file(audio_path, self.settings)
        return self.transcribe_audio(path.read_bytes(), path.name, primary_provider, fallback_providers)

    def enhance(self, transcript: str, documentation: DocumentationResult) -> DocumentationResult:
        """
        Attach AI enhancement to a documentation result.

        Enhancement failure is logged and leaves ai_enhancement as None.
        """
        try:
            enhancement = self.enhancer.enhance(transcript, documentation.clinical_documentation)
        except NeuroScribeError as e:
            logger.warning(f"AI enhancement skipped: {e.message}")
            return documentation
        except Exception as e:
            logger.exception(f"Unexpected AI enhancement failure: {e}")
            return documentation
        return documentation.model_copy(update={"ai_enhancement": enhancement})

    def analyze_only(
        self,
        transcript: str,
        patient_info: PatientInput = None,
        encounter_type_hint: Optional[str] = None,
        include_enhancement: Optional[bool] = None,
    ) -> DocumentationResult:
        """
        Analyze an existing transcript.

        Raises:
            TranscriptValidationError: transcript missing or too short
        """
        text = validate_transcript(transcript, self.settings.min_transcript_length)
        documentation = self.engine.document(
            text,
            patient_info,
            encounter_type_hint,
            fallback_max_chars=self.settings.fallback_subjective_max_chars,
        )
        if self._should_enhance(include_enhancement) and not documentation.fallback:
            documentation = self.enhance(text, documentation)
        return documentation

    def process(
        self,
        audio_path: AudioPath,
        primary_provider=None,
        fallback_providers: Optional[Iterable] = None,
        patient_info: PatientInput = None,
        encounter_type_hint: Optional[str] = None,
        include_enhancement: Optional[bool] = None,
        progress_callback: Optional[ProgressCallback] = None,
    ) -> ProcessingResult:
        """
        Process an audio file into structured documentation.

        Never raises for domain failures: the returned ProcessingResult has
        status FAILED and a clinician-readable error_message instead.

        Example:
            def on_progress(status, message, percent):
                print(f"[{status.value}] {percent}% {message}")

            result = pipeline.process("audio.webm", progress_callback=on_progress)
        """
        job_id = str(uuid.uuid4())[:8]
        start_time = datetime.now()
        logger.info(f"[{job_id}] Starting pipeline for: {audio_path}")

        result = ProcessingResult(id=job_id, audio_file_path=str(audio_path))

        try:
            # Stage 1: Transcription
            self._notify_progress(progress_callback, ProcessingStatus.TRANSCRIBING,
                                  "Starting transcription...", _ProgressHelper.transcription_progress(0))
            result.status = ProcessingStatus.TRANSCRIBING
            result.transcription = self.transcribe_only(audio_path, primary_provider, fallback_providers)
            self._notify_progress(progress_callback, ProcessingStatus.TRANSCRIBING,
                                  f"Transcribed with {result.transcription.model}",
                                  _ProgressHelper.transcription_progress(100))
            logger.info(f"[{job_id}] Transcription complete: {len(result.transcription.text)} chars")

            # Stage 2: Analysis
            result.status = ProcessingStatus.ANALYZING
            self._notify_progress(progress_callback, ProcessingStatus.ANALYZING,
                                  "Analyzing transcript...", _ProgressHelper.analysis_progress(0))
            documentation = self.analyze_only(
                result.transcription.text, patient_info, encounter_type_hint, include_enhancement=False
            )
            self._notify_progress(progress_callback, ProcessingStatus.ANALYZING,
                                  "Structured note generated", _ProgressHelper.analysis_progress(100))

            # Stage 3: Enhancement (optional)
            if self._should_enhance(include_enhancement) and not documentation.fallback:
                result.status = ProcessingStatus.ENHANCING
                self._notify_progress(progress_callback, ProcessingStatus.ENHANCING,
                                      "Requesting AI enhancement...", _ProgressHelper.enhancement_progress(0))
                documentation = self.enhance(result.transcription.text, documentation)

            result.documentation = documentation
            self._complete(result, start_time)
            self._notify_progress(progress_callback, ProcessingStatus.COMPLETED,
                                  f"Processing complete in {result.processing_time_seconds:.1f}s", 100)

        except NeuroScribeError as e:
            self._fail(result, e)
            self._notify_progress(progress_callback, ProcessingStatus.FAILED, result.error_message, 0)
            logger.error(f"[{job_id}] Pipeline failed: {e.message}")

        except Exception as e:
            self._fail(result, e)
            self._notify_progress(progress_callback, ProcessingStatus.FAILED, result.error_message, 0)
            logger.exception(f"[{job_id}] Unexpected error in pipeline")

        return result

    def _complete(self, result: ProcessingResult, start_time: datetime) -> None:
        result.status = ProcessingStatus.COMPLETED
        result.completed_at = datetime.now()
        result.processing_time_seconds = (result.completed_at - start_time).total_seconds()
        logger.info(f"[{result.id}] Pipeline completed in {result.processing_time_seconds:.1f}s")

    def _fail(self, result: ProcessingResult, error: Exception) -> None:
        result.status = ProcessingStatus.FAILED
        result.error_message = clinician_message(error)
        result.completed_at = datetime.now()

    def _notify_progress(
        self,
        callback: Optional[ProgressCallback],
        status: ProcessingStatus,
        message: str,
        progress: int = 0,
    ) -> None:
        """Call the progress callback; a failing callback never breaks the pipeline."""
        if callback:
            try:
                callback(status, message, progress)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")

    # =========================================================================
    # Async API (for FastAPI/Celery)
    # =========================================================================

    async def atranscribe_audio(
        self,
        audio: bytes,
        filename: str = DEFAULT_FILENAME,
        primary_provider=None,
        fallback_providers: Optional[Iterable] = None,
    ) -> TranscriptionResult:
        """Async version of transcribe_audio()."""
        primary, fallbacks = self.resolve_providers(primary_provider, fallback_providers)
        return await self.orchestrator.atranscribe(
            audio,
            primary,
            fallbacks,
            config=self.settings.transcription_config(),
            filename=filename,
        )

    async def atranscribe_only(
        self,
        audio_path: AudioPath,
        primary_provider=None,
        fallback_providers: Optional[Iterable] = None,
    ) -> TranscriptionResult:
        logger.info(f"Async transcribe-only mode for: {audio_path}")
        path = validate_audio_file(audio_path, self.settings)
        audio = await asyncio.to_thread(path.read_bytes)
        return await self.atranscribe_audio(audio, path.name, primary_provider, fallback_providers)

    async def aenhance(self, transcript: str, documentation: DocumentationResult) -> DocumentationResult:
        try:
            enhancement = await self.enhancer.aenhance(transcript, documentation.clinical_documentation)
        except NeuroScribeError as e:
            logger.warning(f"AI enhancement skipped: {e.message}")
            return documentation
        except Exception as e:
            logger.exception(f"Unexpected AI enhancement failure: {e}")
            return documentation
        return documentation.model_copy(update={"ai_enhancement": enhancement})

    async def aanalyze_only(
        self,
        transcript: str,
        patient_info: PatientInput = None,
        encounter_type_hint: Optional[str] = None,
        include_enhancement: Optional[bool] = None,
    ) -> DocumentationResult:
        """Async version of analyze_only(). Analysis runs in a worker thread."""
        text = validate_transcript(transcript, self.settings.min_transcript_length)
        documentation = await asyncio.to_thread(
            self.engine.document,
            text,
            patient_info,
            encounter_type_hint,
            self.settings.fallback_subjective_max_chars,
        )
        if self._should_enhance(include_enhancement) and not documentation.fallback:
            documentation = await self.aenhance(text, documentation)
        return documentation

    async def aprocess(
        self,
        audio_path: AudioPath,
        primary_provider=None,
        fallback_providers: Optional[Iterable] = None,
        patient_info: PatientInput = None,
        encounter_type_hint: Optional[str] = None,
        include_enhancement: Optional[bool] = None,
        progress_callback: Optional[AnyProgressCallback] = None,
    ) -> ProcessingResult:
        """Async version of process(); accepts sync or async progress callbacks."""
        job_id = str(uuid.uuid4())[:8]
        start_time = datetime.now()
        logger.info(f"[{job_id}] Starting async pipeline for: {audio_path}")

        result = ProcessingResult(id=job_id, audio_file_path=str(audio_path))

        try:
            await self._anotify_progress(progress_callback, ProcessingStatus.TRANSCRIBING,
                                         "Starting transcription...", _ProgressHelper.transcription_progress(0))
            result.status = ProcessingStatus.TRANSCRIBING
            result.transcription = await self.atranscribe_only(audio_path, primary_provider, fallback_providers)
            await self._anotify_progress(progress_callback, ProcessingStatus.TRANSCRIBING,
                                         f"Transcribed with {result.transcription.model}",
                                         _ProgressHelper.transcription_progress(100))

            result.status = ProcessingStatus.ANALYZING
            await self._anotify_progress(progress_callback, ProcessingStatus.ANALYZING,
                                         "Analyzing transcript...", _ProgressHelper.analysis_progress(0))
            documentation = await self.aanalyze_only(
                result.transcription.text, patient_info, encounter_type_hint, include_enhancement=False
            )
            await self._anotify_progress(progress_callback, ProcessingStatus.ANALYZING,
                                         "Structured note generated", _ProgressHelper.analysis_progress(100))

            if self._should_enhance(include_enhancement) and not documentation.fallback:
                result.status = ProcessingStatus.ENHANCING
                await self._anotify_progress(progress_callback, ProcessingStatus.ENHANCING,
                                             "Requesting AI enhancement...",
                                             _ProgressHelper.enhancement_progress(0))
                documentation = await self.aenhance(result.transcription.text, documentation)

            result.documentation = documentation
            self._complete(result, start_time)
            await self._anotify_progress(progress_callback, ProcessingStatus.COMPLETED,
                                         f"Processing complete in {result.processing_time_seconds:.1f}s", 100)

        except NeuroScribeError as e:
            self._fail(result, e)
            await self._anotify_progress(progress_callback, ProcessingStatus.FAILED, result.error_message, 0)
            logger.error(f"[{job_id}] Async pipeline failed: {e.message}")

        except Exception as e:
            self._fail(result, e)
            await self._anotify_progress(progress_callback, ProcessingStatus.FAILED, result.error_message, 0)
            logger.exception(f"[{job_id}] Unexpected error in async pipeline")

        return result

    async def _anotify_progress(
        self,
        callback: Optional[AnyProgressCallback],
        status: ProcessingStatus,
        message: str,
        progress: int = 0,
    ) -> None:
        if callback:
            try:
                if asyncio.iscoroutinefunction(callback):
                    await callback(status, message, progress)
                else:
                    callback(status, message, progress)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")


def save_result_to_file(
    result: ProcessingResult,
    output_dir: str = "./output",
) -> dict[str, str]:
    """
    Save processing result to files.

    Saves:
    1. Full result as JSON (for API/database)
    2. Structured note as formatted text (for reading)
    3. Transcription as plain text (for reference)

    Returns:
        Dict of saved file paths
    """
    output_path = Path(output_dir)
    output_path.mkdir(parents=True, exist_ok=True)

    base_name = f"NeuroScribe_{result.id}"
    saved_files = {}

    json_path = output_path / f"{base_name}_result.json"
    with open(json_path, "w") as f:
        json.dump(result.model_dump(mode="json"), f, indent=2, default=str)
    saved_files["json"] = str(json_path)

    if result.documentation:
        note_path = output_path / f"{base_name}_note.txt"
        with open(note_path, "w") as f:
            f.write(result.documentation.clinical_documentation.structured_note.to_formatted_string())
        saved_files["note"] = str(note_path)

    if result.transcription:
        trans_path = output_path / f"{base_name}_transcription.txt"
        with open(trans_path, "w") as f:
            f.write(result.transcription.text)
        saved_files["transcription"] = str(trans_path)

    logger.info(f"Saved results to {output_dir}: {list(saved_files.keys())}")
    return saved_files


# =============================================================================
# Factory Function
# =============================================================================

def create_pipeline(
    settings: Optional[Settings] = None,
    use_mock: bool = False,
) -> ClinicalDocumentationPipeline:
    """
    Factory function to create a configured pipeline instance.

    Args:
        settings: Optional custom settings. Uses default if not provided.
        use_mock: Use mock transcription and enhancement (no network)

    Example:
        pipeline = create_pipeline()
        result = await pipeline.aprocess("audio.webm")
    """
    settings = settings or get_settings()
    if not use_mock:
        return ClinicalDocumentationPipeline(settings=settings)

    transcribers = {
        provider.value: create_transcriber(provider, settings, use_mock=True)
        for provider in TranscriptionProvider
    }
    return ClinicalDocumentationPipeline(
        settings=settings,
        orchestrator=create_orchestrator(settings, transcribers=transcribers),
        enhancer=create_note_enhancer(settings, use_mock=True),
    )
