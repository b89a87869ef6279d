import logging
from typing import Optional, Union

from app.core.exceptions import (
    AuthError,
    ConfigurationError,
    DelegationUnavailable,
    RequestTimeoutError,
    ValidationError
)
from app.models.job import BackendType

logger = logging.getLogger(__name__)

# Delegation failures that may be recovered by processing locally
FALLBACK_ERRORS = (DelegationUnavailable, AuthError, RequestTimeoutError)


class BackendSelector:
    """Chooses where a new job runs"""

    def __init__(self, remote_available: bool, strict_remote: bool = False):
        self.remote_available = remote_available
        self.strict_remote = strict_remote

    def is_strict(self, strict_remote: Optional[bool] = None) -> bool:
        return self.strict_remote if strict_remote is None else bool(strict_remote)

    def choose(
        self,
        requested: Optional[Union[str, BackendType]] = None,
        strict_remote: Optional[bool] = None
    ) -> BackendType:
        if requested is not None:
            try:
                requested = BackendType(requested)
            except ValueError:
                raise ValidationError(f"Unknown backend '{requested}'. Use 'local' or 'remote'")

        if requested == BackendType.LOCAL:
            return BackendType.LOCAL

        if self.remote_available:
            return BackendType.REMOTE

        if self.is_strict(strict_remote):
            raise ConfigurationError("Remote processing is required but no processing service is configured")

        if requested == BackendType.REMOTE:
            logger.warning("Remote backend requested but not configured, processing locally")
        return BackendType.LOCAL

    def should_fall_back(self, error: Exception, strict_remote: Optional[bool] = None) -> bool:
        return isinstance(error, FALLBACK_ERRORS) and not self.is_strict(strict_remote)
