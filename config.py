"""
Configuration Management for NeuroScribe
========================================

All runtime configuration lives in one pydantic-settings model:

1. **Providers**: which speech-to-text service is tried first, the fallback
   order, and the credentials and endpoints of each one
2. **Polling**: attempt budget and interval for asynchronous transcription jobs
3. **Analysis**: minimum transcript length and fallback note truncation
4. **Enhancement**: the optional local Ollama model
5. **Surfaces**: upload limits, API, job store and logging

Values come from NEUROSCRIBE_* environment variables or a .env file and are
validated once at startup. get_settings() caches the instance;
get_settings_for_testing() builds an uncached one with overrides.

The classifier's keyword tables and confidence weights are not settings. They
live in core.classifier as immutable values injected at construction time.
"""

import logging
from functools import lru_cache
from typing import Optional
from pydantic_settings import BaseSettings
from pydantic import Field

from models import TranscriptionConfig, TranscriptionProvider


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Environment variables are prefixed with NEUROSCRIBE_ to avoid conflicts.
    Example: NEUROSCRIBE_GROQ_API_KEY=gsk_...

    Priority order (highest to lowest):
    1. Environment variables
    2. .env file
    3. Default values defined here
    """

    # =================================================================
    # Provider Selection
    # =================================================================
    primary_provider: TranscriptionProvider = Field(
        default=TranscriptionProvider.GROQ,
        description="Provider tried first for every transcription request"
    )

    fallback_providers: list[TranscriptionProvider] = Field(
        default=[TranscriptionProvider.ASSEMBLYAI],
        description="""
        Providers tried, in order, when the primary fails.

        Duplicates of the primary are ignored. Set as JSON in the environment:
        NEUROSCRIBE_FALLBACK_PROVIDERS='["assemblyai", "litellm"]'
        """
    )

    # =================================================================
    # Groq Configuration
    # =================================================================
    groq_api_key: Optional[str] = Field(
        default=None,
        description="Groq API key. Groq is unavailable when unset."
    )

    groq_base_url: str = Field(
        default="https://api.groq.com/openai/v1",
        description="Groq OpenAI-compatible API root"
    )

    groq_model: str = Field(
        default="whisper-large-v3",
        description="Groq speech model"
    )

    # =================================================================
    # LiteLLM Proxy Configuration
    # =================================================================
    litellm_api_key: Optional[str] = Field(
        default=None,
        description="LiteLLM proxy key. Requires litellm_base_url as well."
    )

    litellm_base_url: Optional[str] = Field(
        default=None,
        description="LiteLLM proxy root, e.g. http://localhost:4000"
    )

    litellm_model: str = Field(
        default="groq/whisper-large-v3",
        description="Model route requested from the LiteLLM proxy"
    )

    # =================================================================
    # AssemblyAI Configuration
    # =================================================================
    assemblyai_api_key: Optional[str] = Field(
        default=None,
        description="AssemblyAI API key. AssemblyAI is unavailable when unset."
    )

    assemblyai_base_url: str = Field(
        default="https://api.assemblyai.com/v2",
        description="AssemblyAI API root"
    )

    assemblyai_speech_model: str = Field(
        default="universal",
        description="AssemblyAI speech model"
    )

    assemblyai_speakers_expected: int = Field(
        default=2,
        ge=1,
        description="Speaker count hint sent with diarization requests"
    )

    # =================================================================
    # Polling Configuration
    # =================================================================
    poll_max_attempts: int = Field(
        default=60,
        ge=1,
        description="""
        Maximum status checks for asynchronous transcription jobs.

        With the default interval this caps a job at roughly 180 seconds.
        """
    )

    poll_interval_seconds: float = Field(
        default=3.0,
        ge=0.0,
        description="Delay between status checks for asynchronous jobs"
    )

    request_timeout_seconds: float = Field(
        default=120.0,
        gt=0.0,
        description="Timeout for a single HTTP request to a provider"
    )

    # =================================================================
    # Transcription Request Defaults
    # =================================================================
    transcription_temperature: float = Field(
        default=0.0,
        ge=0.0,
        le=1.0,
        description="Sampling temperature for speech models (0 is deterministic)"
    )

    transcription_response_format: str = Field(
        default="json",
        description="Response format requested from OpenAI-compatible endpoints"
    )

    transcription_prompt: Optional[str] = Field(
        default=(
            "Neurosurgical clinical encounter. Terms may include GCS, ICP, EVD, "
            "craniotomy, hydrocephalus, subdural hematoma, MRI, CT."
        ),
        description="Vocabulary hint sent to the speech model"
    )

    # =================================================================
    # Local Whisper Configuration
    # =================================================================
    whisper_model: str = Field(
        default="base",
        description="""
        Whisper model size for the local provider. Options: tiny, base, small, medium, large

        For medical transcription, recommend 'small' or higher in production.
        """
    )

    whisper_device: str = Field(
        default="cpu",
        description="Device for Whisper: 'cpu', 'cuda', or 'auto'"
    )

    whisper_language: Optional[str] = Field(
        default=None,
        description="Force language detection. None = auto-detect"
    )

    # =================================================================
    # Analysis Configuration
    # =================================================================
    min_transcript_length: int = Field(
        default=10,
        ge=1,
        description="Transcripts shorter than this (after trimming) are rejected"
    )

    fallback_subjective_max_chars: int = Field(
        default=200,
        ge=4,
        description="Maximum length of the transcript excerpt in a fallback note"
    )

    # =================================================================
    # AI Enhancement (Ollama) Configuration
    # =================================================================
    enable_ai_enhancement: bool = Field(
        default=False,
        description="""
        Ask a local LLM for insights on top of the rule-based note.

        Enhancement is best-effort: failures leave ai_enhancement empty.
        """
    )

    ollama_base_url: str = Field(
        default="http://localhost:11434",
        description="Ollama server URL. Default is local installation."
    )

    ollama_model: str = Field(
        default="llama3.2",
        description="Ollama model used for note enhancement"
    )

    ollama_temperature: float = Field(
        default=0.2,
        ge=0.0,
        le=2.0,
        description="Temperature for enhancement (lower is more consistent)"
    )

    ollama_timeout: int = Field(
        default=120,
        description="Timeout in seconds for Ollama requests"
    )

    ollama_context_window: int = Field(
        default=4096,
        description="Context window size for Ollama model (tokens)"
    )

    # =================================================================
    # Upload / Audio Configuration
    # =================================================================
    max_upload_size_mb: int = Field(
        default=25,
        ge=1,
        description="Maximum audio upload size (Whisper-compatible APIs cap at 25 MB)"
    )

    supported_audio_formats: list[str] = Field(
        default=["mp3", "wav", "m4a", "ogg", "flac", "webm", "mp4"],
        description="List of supported audio file extensions"
    )

    temp_file_dir: str = Field(
        default="./tmp/uploads",
        description="Where uploaded audio waits for background processing"
    )

    # =================================================================
    # Output Configuration
    # =================================================================
    output_dir: str = Field(
        default="./output",
        description="Directory for output files"
    )

    save_transcriptions: bool = Field(
        default=True,
        description="Whether to save intermediate transcriptions"
    )

    # =================================================================
    # API Configuration
    # =================================================================
    api_host: str = Field(default="0.0.0.0", description="API bind address")

    api_port: int = Field(default=8000, description="API port")

    api_debug: bool = Field(
        default=False,
        description="Expose exception details in error responses"
    )

    cors_origins: list[str] = Field(
        default=["http://localhost:3000"],
        description="Origins allowed to call the API from a browser"
    )

    rate_limit: str = Field(
        default="30/minute",
        description="Default per-client rate limit (slowapi syntax)"
    )

    # =================================================================
    # Background Jobs (Redis / Celery)
    # =================================================================
    redis_host: str = Field(default="localhost", description="Redis host")

    redis_port: int = Field(default=6379, description="Redis port")

    redis_db: int = Field(default=0, description="Redis database index for job state")

    redis_password: Optional[str] = Field(default=None, description="Redis password")

    job_ttl_seconds: int = Field(
        default=86400,
        description="How long job records are kept in Redis"
    )

    celery_broker_url: str = Field(
        default="redis://localhost:6379/1",
        description="Celery broker URL"
    )

    celery_result_backend: str = Field(
        default="redis://localhost:6379/2",
        description="Celery result backend URL"
    )

    # =================================================================
    # Logging Configuration
    # =================================================================
    log_level: str = Field(
        default="INFO",
        description="Logging level: DEBUG, INFO, WARNING, ERROR, CRITICAL"
    )

    log_format: str = Field(
        default="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        description="Python logging format string"
    )

    def transcription_config(self) -> TranscriptionConfig:
        """Default per-request options handed to every adapter."""
        return TranscriptionConfig(
            temperature=self.transcription_temperature,
            prompt=self.transcription_prompt,
            response_format=self.transcription_response_format,
        )

    def configure_logging(self) -> None:
        """Apply log_level and log_format to the root logger."""
        logging.basicConfig(
            level=getattr(logging, self.log_level.upper(), logging.INFO),
            format=self.log_format,
        )

    class Config:
        """Pydantic configuration for Settings."""
        env_prefix = "NEUROSCRIBE_"  # All env vars start with NEUROSCRIBE_
        env_file = ".env"  # Load from .env file if present
        env_file_encoding = "utf-8"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached singleton).

    Using lru_cache ensures we only parse environment variables once.

    For testing, you can clear the cache:
        get_settings.cache_clear()

    Returns:
        Settings: Application settings instance
    """
    return Settings()


def get_settings_for_testing(**overrides) -> Settings:
    """
    Create a Settings instance with custom values for testing.

    Example:
        settings = get_settings_for_testing(
            groq_api_key="test-key",
            poll_interval_seconds=0,
        )

    Args:
        **overrides: Setting values to override

    Returns:
        Settings: New Settings instance with overrides applied
    """
    return Settings(**overrides)
