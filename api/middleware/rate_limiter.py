"""
Rate Limiting
=============

Per-client rate limiting using slowapi.
"""

from fastapi import FastAPI
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from config import get_settings


def configured_rate_limit() -> str:
    """Rate limit string from settings, read per request."""
    return get_settings().rate_limit


# Create limiter instance with IP-based rate limiting
limiter = Limiter(key_func=get_remote_address)


def setup_rate_limiting(app: FastAPI) -> None:
    """
    Attach the limiter to the app and register the 429 handler.

    Usage in routes:
        from api.middleware.rate_limiter import limiter, configured_rate_limit

        @router.post("/transcribe")
        @limiter.limit(configured_rate_limit)
        async def transcribe(request: Request, ...):
            ...
    """
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
