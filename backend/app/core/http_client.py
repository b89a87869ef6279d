"""
Unified HTTP client for outbound requests

httpx serves API calls and source downloads (its transport can be swapped for
tests); aiohttp serves long-lived artifact relays streamed back to clients.
"""

import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, Optional

import aiohttp
import httpx

from app.core.config import settings
from app.core.security_utils import InputValidator

logger = logging.getLogger(__name__)


class HTTPClientConfig:
    """Configuration for HTTP client"""

    def __init__(
        self,
        timeout: float = 30,
        user_agent: str = None,
        headers: Dict[str, str] = None,
        verify_ssl: bool = True,
        follow_redirects: bool = True,
        max_redirects: int = 5
    ):
        self.timeout = timeout
        self.user_agent = user_agent or settings.USER_AGENT
        self.headers = headers or {}
        self.verify_ssl = verify_ssl
        self.follow_redirects = follow_redirects
        self.max_redirects = max_redirects


@dataclass
class StreamedBody:
    """An open upstream response whose body is consumed by iterating chunks"""
    status_code: int
    headers: Dict[str, str]
    chunks: AsyncIterator[bytes]
    url: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


class UnifiedHTTPClient:
    """Shared HTTP client with standardized configuration and cleanup"""

    def __init__(
        self,
        config: HTTPClientConfig = None,
        transport: Optional[httpx.AsyncBaseTransport] = None
    ):
        self.config = config or HTTPClientConfig()
        self._transport = transport
        self._httpx_client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        self._get_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _default_headers(self) -> Dict[str, str]:
        return {
            "User-Agent": self.config.user_agent,
            **self.config.headers
        }

    def _get_client(self) -> httpx.AsyncClient:
        if self._httpx_client is None or self._httpx_client.is_closed:
            kwargs = {
                "timeout": self.config.timeout,
                "headers": self._default_headers(),
                "follow_redirects": self.config.follow_redirects,
                "max_redirects": self.config.max_redirects,
            }
            if self._transport is not None:
                kwargs["transport"] = self._transport
            else:
                kwargs["verify"] = self.config.verify_ssl
            self._httpx_client = httpx.AsyncClient(**kwargs)
        return self._httpx_client

    async def close(self):
        """Close HTTP sessions"""
        if self._httpx_client is not None:
            await self._httpx_client.aclose()
            self._httpx_client = None

    def _validate_url(self, url: str) -> str:
        if not InputValidator.validate_url(url):
            raise ValueError(f"Invalid URL: {url}")
        return url

    async def get(
        self,
        url: str,
        params: Dict[str, Any] = None,
        headers: Dict[str, str] = None,
        timeout: Optional[float] = None
    ) -> httpx.Response:
        """Make GET request. Status codes are left for the caller to interpret."""
        validated_url = self._validate_url(url)
        kwargs: Dict[str, Any] = {"params": params, "headers": headers}
        if timeout is not None:
            kwargs["timeout"] = timeout
        return await self._get_client().get(validated_url, **kwargs)

    async def post_json(
        self,
        url: str,
        json: Dict[str, Any],
        headers: Dict[str, str] = None,
        timeout: Optional[float] = None
    ) -> httpx.Response:
        """Make JSON POST request. Status codes are left for the caller to interpret."""
        validated_url = self._validate_url(url)
        kwargs: Dict[str, Any] = {"json": json, "headers": headers}
        if timeout is not None:
            kwargs["timeout"] = timeout
        return await self._get_client().post(validated_url, **kwargs)

    @asynccontextmanager
    async def stream(
        self,
        method: str,
        url: str,
        headers: Dict[str, str] = None,
        timeout: Optional[float] = None
    ) -> AsyncIterator[httpx.Response]:
        """Open a streamed response; the body is read inside the context"""
        validated_url = self._validate_url(url)
        kwargs: Dict[str, Any] = {"headers": headers}
        if timeout is not None:
            kwargs["timeout"] = timeout
        async with self._get_client().stream(method, validated_url, **kwargs) as response:
            yield response

    async def open_stream(
        self,
        url: str,
        chunk_size: int = 64 * 1024,
        headers: Dict[str, str] = None,
        timeout: Optional[float] = None
    ) -> StreamedBody:
        """
        Open a GET with aiohttp and hand back its body as an async iterator.

        The session stays open until the iterator is exhausted or closed.
        Raises aiohttp.ClientResponseError for HTTP error statuses.
        """
        validated_url = self._validate_url(url)

        session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=timeout or self.config.timeout),
            headers={**self._default_headers(), **(headers or {})},
            auto_decompress=True
        )

        try:
            response = await session.get(validated_url)
        except Exception:
            await session.close()
            raise

        if response.status >= 400:
            response.release()
            await session.close()
            raise aiohttp.ClientResponseError(
                request_info=response.request_info,
                history=response.history,
                status=response.status,
                message=response.reason or ""
            )

        async def body() -> AsyncIterator[bytes]:
            try:
                async for chunk in response.content.iter_chunked(chunk_size):
                    yield chunk
            finally:
                response.release()
                await session.close()

        return StreamedBody(
            status_code=response.status,
            headers=dict(response.headers),
            chunks=body(),
            url=str(response.url)
        )
