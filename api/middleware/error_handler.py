"""
Global Error Handler
====================

Maps NeuroScribe exceptions to HTTP status codes and formats error responses.

Bodies carry a clinician-readable `error` sentence and the exception type.
Provider failures also name the provider and use the provider's own status
code. Raw messages and details (which may quote vendor payloads) are only
included when api_debug is on.
"""

import logging

from fastapi import Request, status
from fastapi.responses import JSONResponse

from config import get_settings
from exceptions import (
    AnalysisError,
    AudioError,
    AudioFileNotFoundError,
    AudioTooLargeError,
    ConfigurationError,
    EnhancementError,
    ModelNotFoundError,
    NeuroScribeError,
    OllamaConnectionError,
    ProviderError,
    TemplateNotFoundError,
    TranscriptValidationError,
    UnsupportedAudioFormatError,
    clinician_message,
)

logger = logging.getLogger(__name__)


# Map exceptions to HTTP status codes; the closest class in the MRO wins
EXCEPTION_STATUS_MAP = {
    AudioFileNotFoundError: status.HTTP_404_NOT_FOUND,
    UnsupportedAudioFormatError: status.HTTP_415_UNSUPPORTED_MEDIA_TYPE,
    AudioTooLargeError: status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
    AudioError: status.HTTP_400_BAD_REQUEST,
    TranscriptValidationError: status.HTTP_400_BAD_REQUEST,
    TemplateNotFoundError: status.HTTP_404_NOT_FOUND,
    AnalysisError: status.HTTP_500_INTERNAL_SERVER_ERROR,
    OllamaConnectionError: status.HTTP_503_SERVICE_UNAVAILABLE,
    ModelNotFoundError: status.HTTP_503_SERVICE_UNAVAILABLE,
    EnhancementError: status.HTTP_502_BAD_GATEWAY,
    ConfigurationError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def status_code_for(error: NeuroScribeError) -> int:
    if isinstance(error, ProviderError):
        return error.status_code or status.HTTP_502_BAD_GATEWAY
    for cls in type(error).__mro__:
        if cls in EXCEPTION_STATUS_MAP:
            return EXCEPTION_STATUS_MAP[cls]
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def error_body(error: NeuroScribeError, debug: bool = False) -> dict:
    body = {
        "error": clinician_message(error),
        "error_type": type(error).__name__,
    }
    if isinstance(error, ProviderError):
        body["provider"] = error.provider
    if debug:
        body["message"] = error.message
        body["details"] = error.details
    return body


async def neuroscribe_exception_handler(request: Request, exc: NeuroScribeError) -> JSONResponse:
    """Exception handler registered for NeuroScribeError and subclasses."""
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {type(exc).__name__}: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {type(exc).__name__}")
    return JSONResponse(
        status_code=status_code,
        content=error_body(exc, get_settings().api_debug),
    )


async def error_handler_middleware(request: Request, call_next):
    """
    Last-resort middleware for errors no handler claimed.

    Unexpected errors become a 500 without internals unless api_debug is on.
    """
    try:
        return await call_next(request)
    except NeuroScribeError as e:
        return await neuroscribe_exception_handler(request, e)
    except Exception as e:
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        settings = get_settings()
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "error": clinician_message(e),
                "error_type": "InternalServerError",
                "details": {"error": str(e)} if settings.api_debug else {},
            }
        )
