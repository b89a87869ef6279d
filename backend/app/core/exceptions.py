from typing import Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
import logging

logger = logging.getLogger(__name__)


class AudioServiceException(Exception):
    """Base exception for the audio extraction service"""
    error = "Internal server error"

    def __init__(self, message: str, status_code: int = 500):
        self.message = message
        self.status_code = status_code
        super().__init__(self.message)


class ValidationError(AudioServiceException):
    """Raised when input validation fails"""
    error = "Validation error"

    def __init__(self, message: str = "Validation error"):
        super().__init__(message, status.HTTP_400_BAD_REQUEST)


class JobNotFoundError(AudioServiceException):
    """Raised when a job is not found"""
    error = "Job not found"

    def __init__(self, message: str = "Job not found"):
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class JobNotReadyError(AudioServiceException):
    """Raised when a result is requested before the job completed"""
    error = "Job not ready"

    def __init__(self, message: str = "Job not ready", job_status: str = "", progress: int = 0):
        self.job_status = job_status
        self.progress = progress
        super().__init__(message, status.HTTP_409_CONFLICT)


class ConfigurationError(AudioServiceException):
    """Raised when strict remote processing is required but not configured"""
    error = "Service misconfigured"

    def __init__(self, message: str = "Remote processing service is not configured"):
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)


class DelegationUnavailable(AudioServiceException):
    """Raised when the remote worker could not accept a job after all retries"""
    error = "Service unavailable"

    def __init__(
        self,
        message: str = "Processing service is temporarily unavailable",
        last_error: Optional[BaseException] = None,
        retry_after: int = 60
    ):
        self.last_error = last_error
        self.retry_after = retry_after
        super().__init__(message, status.HTTP_503_SERVICE_UNAVAILABLE)


class AuthError(AudioServiceException):
    """Raised when the remote worker rejects our credential"""
    error = "Authentication failed"

    def __init__(self, message: str = "Processing service rejected credentials"):
        super().__init__(message, status.HTTP_502_BAD_GATEWAY)


class UnauthorizedError(AudioServiceException):
    """Raised when an inbound webhook signature does not verify"""
    error = "Unauthorized"

    def __init__(self, message: str = "Invalid webhook signature"):
        super().__init__(message, status.HTTP_401_UNAUTHORIZED)


class RequestTimeoutError(AudioServiceException):
    """Raised when a fetch or delegation exceeds its time bound"""
    error = "Gateway timeout"

    def __init__(self, message: str = "Upstream service did not respond in time", retry_after: int = 30):
        self.retry_after = retry_after
        super().__init__(message, status.HTTP_504_GATEWAY_TIMEOUT)


class FetchError(AudioServiceException):
    """Raised when the source video cannot be downloaded"""
    error = "Download failed"

    def __init__(self, message: str = "Download failed"):
        super().__init__(message, status.HTTP_502_BAD_GATEWAY)


class InvalidMediaError(AudioServiceException):
    """Raised when a fetched file carries no usable audio"""
    error = "Invalid media"

    def __init__(self, message: str = "File contains no audio stream"):
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY)


class ConversionError(AudioServiceException):
    """Raised when the transcoding engine fails"""
    error = "Conversion failed"

    def __init__(self, message: str = "Audio extraction failed"):
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


class ArtifactUnavailableError(AudioServiceException):
    """Raised when a stored artifact cannot be retrieved"""
    error = "Audio file not available"

    def __init__(self, message: str = "Failed to retrieve audio file from storage", status_code: int = 502):
        super().__init__(message, status_code)


class InternalError(AudioServiceException):
    """Raised on data inconsistencies that should never happen"""

    def __init__(self, message: str = "Internal server error"):
        super().__init__(message, status.HTTP_500_INTERNAL_SERVER_ERROR)


async def audio_service_exception_handler(request: Request, exc: AudioServiceException):
    """Handle custom service exceptions"""
    if exc.status_code >= 500:
        logger.error(f"{exc.__class__.__name__} on {request.url.path}: {exc.message}")
    else:
        logger.warning(f"{exc.__class__.__name__} on {request.url.path}: {exc.message}")

    content = {"error": exc.error, "detail": exc.message}
    headers = {}

    retry_after = getattr(exc, "retry_after", None)
    if retry_after:
        content["retryAfter"] = retry_after
        headers["Retry-After"] = str(retry_after)

    if isinstance(exc, JobNotReadyError):
        content["status"] = exc.job_status
        content["progress"] = exc.progress

    return JSONResponse(status_code=exc.status_code, content=content, headers=headers or None)


async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions"""
    logger.exception(f"Unexpected error on {request.url.path}: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error", "detail": "An unexpected error occurred"}
    )
