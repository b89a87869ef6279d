"""
Rate limiting configuration and utilities
"""

from slowapi import Limiter
from slowapi.util import get_remote_address
from slowapi.errors import RateLimitExceeded
from fastapi import Request, status
from fastapi.responses import JSONResponse
import logging

from app.core.config import Settings, settings

logger = logging.getLogger(__name__)

# Create rate limiter instance
limiter = Limiter(key_func=get_remote_address)

_submit_limit = settings.SUBMIT_RATE_LIMIT


def configure_limiter(config: Settings) -> None:
    """Apply an application's rate limit settings to the shared limiter"""
    global _submit_limit
    limiter.enabled = config.RATE_LIMIT_ENABLED
    _submit_limit = config.SUBMIT_RATE_LIMIT


def submit_rate_limit() -> str:
    """Limit for job submissions, read on every request"""
    return _submit_limit


def custom_rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded):
    """Custom handler for rate limit exceeded"""
    logger.warning(f"Rate limit exceeded for {get_remote_address(request)}: {exc.detail}")

    return JSONResponse(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        content={
            "error": "Rate limit exceeded",
            "detail": f"Too many requests. Limit: {exc.detail}"
        }
    )
