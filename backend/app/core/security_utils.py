"""
Security utilities for input validation and webhook signing
"""

import hashlib
import hmac
import logging
import re
from typing import Optional, Union
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


class InputValidator:
    """Input validation utilities"""

    # Job ids are UUIDs, but remote workers may echo other opaque tokens
    SAFE_ID_PATTERN = re.compile(r'^[A-Za-z0-9._-]{1,128}$')

    ALLOWED_SCHEMES = ("http", "https")

    @classmethod
    def validate_url(cls, url: str) -> bool:
        """Validate URL format: http(s) scheme and a host"""
        if not url or not isinstance(url, str) or len(url) > 2048:
            return False

        try:
            parsed = urlparse(url.strip())
        except ValueError:
            return False

        return parsed.scheme.lower() in cls.ALLOWED_SCHEMES and bool(parsed.hostname)

    @classmethod
    def validate_job_id(cls, job_id: str) -> bool:
        if not job_id or not isinstance(job_id, str):
            return False
        return bool(cls.SAFE_ID_PATTERN.match(job_id.strip()))

    @classmethod
    def sanitize_string(cls, value: str, max_length: int = 1000) -> str:
        """Sanitize string input"""
        if not isinstance(value, str):
            value = str(value)

        # Remove null bytes and control characters
        value = ''.join(char for char in value if ord(char) >= 32 or char in '\n\r\t')

        return value[:max_length].strip()


class WebhookSigner:
    """HMAC-SHA256 signatures over raw webhook bodies, formatted as sha256=<hex>"""

    def __init__(self, secret: str):
        self._secret = secret.encode() if secret else b""

    @property
    def configured(self) -> bool:
        return bool(self._secret)

    def sign(self, payload: Union[str, bytes]) -> str:
        if isinstance(payload, str):
            payload = payload.encode()
        digest = hmac.new(self._secret, payload, hashlib.sha256).hexdigest()
        return f"{SIGNATURE_PREFIX}{digest}"

    def verify(self, payload: Union[str, bytes], signature: Optional[str]) -> bool:
        """Constant-time comparison of the header value against the expected signature"""
        if not signature:
            return False
        return hmac.compare_digest(signature.strip(), self.sign(payload))
