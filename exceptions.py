"""
Custom Exceptions for NeuroScribe
=================================

This module defines a hierarchy of custom exceptions that:

1. **Categorize Errors**: Different exception types for different problems
2. **Carry Context**: Include relevant information for debugging
3. **Enable Recovery**: The orchestrator falls back on any ProviderError
4. **Support APIs**: Provider errors carry the HTTP status they map to

Exception Hierarchy:
    NeuroScribeError (base)
    ├── AudioError
    │   ├── AudioFileNotFoundError
    │   ├── UnsupportedAudioFormatError
    │   └── AudioTooLargeError
    ├── ProviderError (status_code, provider)
    │   ├── ProviderAuthError
    │   ├── ProviderNetworkError
    │   ├── ProviderRateLimitError
    │   ├── ProviderResponseError
    │   ├── InvalidResponseFormatError
    │   ├── ProviderUnavailableError
    │   └── TranscriptionError
    │       ├── PollingTimeoutError
    │       ├── TranscriptionJobError
    │       ├── TranscriptionFailedError
    │       └── AllProvidersFailedError
    ├── AnalysisError
    │   ├── TranscriptValidationError
    │   └── TemplateNotFoundError
    ├── EnhancementError
    │   ├── OllamaConnectionError
    │   └── ModelNotFoundError
    └── ConfigurationError
"""

from typing import Optional, Sequence


class NeuroScribeError(Exception):
    """
    Base exception for all NeuroScribe errors.

    All custom exceptions inherit from this, allowing code to catch
    all NeuroScribe-related errors with a single except clause:

        try:
            pipeline.process(audio_file)
        except NeuroScribeError as e:
            logger.error(f"NeuroScribe error: {e}")

    Attributes:
        message: Human-readable error description
        details: Additional context (dict for API responses)
    """

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None
    ):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """
        Convert to dictionary for API responses.

        Returns a structured error that can be easily serialized to JSON.
        """
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details
        }


# =============================================================================
# Audio-Related Errors
# =============================================================================

class AudioError(NeuroScribeError):
    """Base class for audio-related errors."""
    pass


class AudioFileNotFoundError(AudioError):
    """Raised when the specified audio file doesn't exist."""

    def __init__(self, file_path: str):
        super().__init__(
            message=f"Audio file not found: {file_path}",
            details={"file_path": file_path}
        )


class UnsupportedAudioFormatError(AudioError):
    """Raised when the audio file format is not supported."""

    def __init__(self, file_path: str, format: str, supported_formats: list[str]):
        super().__init__(
            message=f"Unsupported audio format: {format}. Supported: {', '.join(supported_formats)}",
            details={
                "file_path": file_path,
                "format": format,
                "supported_formats": supported_formats
            }
        )


class AudioTooLargeError(AudioError):
    """Raised when audio exceeds the maximum upload size."""

    def __init__(self, file_path: str, size_bytes: int, max_size_bytes: int):
        super().__init__(
            message=(
                f"Audio too large: {size_bytes / 1024 / 1024:.1f} MB "
                f"(max: {max_size_bytes / 1024 / 1024:.0f} MB)"
            ),
            details={
                "file_path": file_path,
                "size_bytes": size_bytes,
                "max_size_bytes": max_size_bytes
            }
        )


# =============================================================================
# Provider / Transcription Errors
# =============================================================================

class ProviderError(NeuroScribeError):
    """
    Base class for failures talking to an external provider.

    Every provider error names the provider and the HTTP status it maps to,
    so the orchestrator can record the attempt and the API can answer with
    the right status code.
    """

    default_status_code = 500

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        provider: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.status_code = status_code if status_code is not None else self.default_status_code
        self.provider = provider
        merged = {"status_code": self.status_code, "provider": provider}
        merged.update(details or {})
        super().__init__(message=message, details=merged)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["status_code"] = self.status_code
        data["provider"] = self.provider
        return data


class ProviderAuthError(ProviderError):
    """Missing or rejected credentials. The provider is skipped, never retried."""

    default_status_code = 401

    def __init__(self, provider: str, reason: str = "API key not configured"):
        super().__init__(
            message=f"{provider} authentication failed: {reason}",
            provider=provider,
            details={"reason": reason}
        )


class ProviderNetworkError(ProviderError):
    """Connection failure or timeout reaching the provider."""

    default_status_code = 503

    def __init__(self, provider: str, reason: str):
        super().__init__(
            message=f"Network error contacting {provider}: {reason}",
            provider=provider,
            details={"reason": reason}
        )


class ProviderRateLimitError(ProviderError):
    """The provider answered 429."""

    default_status_code = 429

    def __init__(self, provider: str, retry_after: Optional[str] = None):
        super().__init__(
            message=f"{provider} rate limit exceeded",
            provider=provider,
            details={"retry_after": retry_after}
        )


class ProviderResponseError(ProviderError):
    """Any other non-2xx answer. Keeps the vendor status code."""

    def __init__(self, provider: str, status_code: int, body: str = ""):
        preview = body[:200]
        super().__init__(
            message=f"{provider} API error: {status_code} - {preview}",
            status_code=status_code,
            provider=provider,
            details={"response_preview": preview}
        )


class InvalidResponseFormatError(ProviderError):
    """The provider answered, but the payload could not be understood."""

    default_status_code = 502

    def __init__(self, provider: str, reason: str):
        super().__init__(
            message=f"Invalid response format from {provider}: {reason}",
            provider=provider,
            details={"reason": reason}
        )


class ProviderUnavailableError(ProviderError):
    """The provider was requested but is not configured in this deployment."""

    default_status_code = 503

    def __init__(self, provider: str):
        super().__init__(
            message=f"Transcription provider '{provider}' is not available",
            provider=provider
        )


class TranscriptionError(ProviderError):
    """Base class for failures of the transcription job itself."""
    pass


class PollingTimeoutError(TranscriptionError):
    """An asynchronous transcription job did not finish within its attempt budget."""

    default_status_code = 408

    def __init__(self, provider: str, attempts: int, interval_seconds: float):
        super().__init__(
            message="Transcription polling timeout",
            provider=provider,
            details={
                "attempts": attempts,
                "interval_seconds": interval_seconds
            }
        )


class TranscriptionJobError(TranscriptionError):
    """The provider reported that the transcription job itself failed."""

    def __init__(self, provider: str, reason: str):
        super().__init__(
            message=f"Transcription failed: {reason}",
            provider=provider,
            details={"reason": reason}
        )


class TranscriptionFailedError(TranscriptionError):
    """Raised when local transcription fails for any reason."""

    def __init__(self, file_path: str, reason: str, provider: str = "whisper"):
        super().__init__(
            message=f"Transcription failed for {file_path}: {reason}",
            provider=provider,
            details={
                "file_path": file_path,
                "reason": reason
            }
        )


class AllProvidersFailedError(TranscriptionError):
    """
    Every candidate provider failed.

    Carries one entry per attempt and names the last provider tried, so the
    caller never sees a vendor payload without knowing which vendor sent it.
    """

    default_status_code = 503

    def __init__(self, attempts: Sequence):
        self.attempts = list(attempts)
        last = self.attempts[-1] if self.attempts else None
        last_provider = last.provider if last else "All providers"
        if last is not None and last.error is not None:
            message = (
                f"All transcription services failed "
                f"(last: {last.provider}: {last.error.message})"
            )
        else:
            message = "All transcription services failed"
        super().__init__(
            message=message,
            provider=last_provider,
            details={
                "attempts": [
                    {
                        "provider": attempt.provider,
                        "error_type": type(attempt.error).__name__,
                        "message": attempt.error.message,
                        "status_code": attempt.error.status_code,
                    }
                    for attempt in self.attempts
                    if attempt.error is not None
                ]
            }
        )


# =============================================================================
# Analysis Errors
# =============================================================================

class AnalysisError(NeuroScribeError):
    """Base class for transcript analysis errors."""
    pass


class TranscriptValidationError(AnalysisError):
    """Raised at the caller boundary for missing or too-short transcripts."""

    def __init__(self, reason: str, length: int = 0, min_length: int = 0):
        super().__init__(
            message=reason,
            details={
                "transcript_length": length,
                "min_length": min_length
            }
        )


class TemplateNotFoundError(AnalysisError):
    """Raised when a template id is not in the registry."""

    def __init__(self, template_id: str, available: Sequence[str] = ()):
        super().__init__(
            message=f"Unknown note template: {template_id}",
            details={
                "template_id": template_id,
                "available_templates": list(available)
            }
        )


# =============================================================================
# Enhancement Errors
# =============================================================================

class EnhancementError(NeuroScribeError):
    """Base class for AI enhancement errors."""
    pass


class OllamaConnectionError(EnhancementError):
    """Raised when we can't connect to Ollama."""

    def __init__(self, url: str, original_error: str):
        super().__init__(
            message=f"Cannot connect to Ollama at {url}: {original_error}",
            details={
                "ollama_url": url,
                "original_error": original_error,
                "hint": "Make sure Ollama is running: 'ollama serve'"
            }
        )


class ModelNotFoundError(EnhancementError):
    """Raised when the requested Ollama model is not available."""

    def __init__(self, model_name: str):
        super().__init__(
            message=f"Model '{model_name}' not found in Ollama",
            details={
                "model_name": model_name,
                "hint": f"Pull the model first: 'ollama pull {model_name}'"
            }
        )


# =============================================================================
# Configuration Errors
# =============================================================================

class ConfigurationError(NeuroScribeError):
    """Raised when there's a configuration problem."""

    def __init__(self, setting_name: str, issue: str):
        super().__init__(
            message=f"Configuration error for '{setting_name}': {issue}",
            details={
                "setting_name": setting_name,
                "issue": issue
            }
        )


# =============================================================================
# Clinician-Facing Messages
# =============================================================================

_CLINICIAN_MESSAGES = [
    (ProviderAuthError, "Transcription service credentials are missing or invalid. Contact your administrator."),
    (ProviderRateLimitError, "The transcription service is busy. Please try again in a minute."),
    (PollingTimeoutError, "Transcription is taking longer than expected. Please try a shorter recording."),
    (ProviderNetworkError, "The transcription service could not be reached. Check the network connection."),
    (AllProvidersFailedError, "No transcription service could process this recording. Please try again later."),
    (ProviderUnavailableError, "The selected transcription service is not configured."),
    (ProviderError, "The transcription service returned an error. Please try again."),
    (AudioTooLargeError, "The recording exceeds the upload size limit. Please upload a shorter file."),
    (UnsupportedAudioFormatError, "This audio format is not supported."),
    (AudioError, "The recording could not be read."),
    (TranscriptValidationError, "The transcript is too short to document. Please record more of the encounter."),
    (EnhancementError, "AI suggestions are unavailable right now. The note was generated without them."),
]


def clinician_message(error: Exception) -> str:
    """
    Translate an error into a short sentence a clinician can act on.

    The most specific matching class wins; unknown errors get a generic message.
    """
    for error_type, text in _CLINICIAN_MESSAGES:
        if isinstance(error, error_type):
            return text
    return "Something went wrong while generating documentation. Please try again."
