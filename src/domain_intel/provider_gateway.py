"""
Provider Gateway for the domain intelligence system.

This module provides a bounded-timeout async HTTP wrapper shared by every
provider client. Transport problems are reported as error responses rather
than raised, so callers can isolate one failing source from its siblings.
"""

import asyncio
import json
import time
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from .enums import ProviderErrorCode
from .exceptions import ParseError, ProviderTimeoutError, UpstreamError


@dataclass
class ProviderError:
    """Error information from a provider call."""

    code: ProviderErrorCode
    message: str
    http_status_code: Optional[int] = None


@dataclass
class ProviderResponse:
    """Complete provider call response."""

    url: str
    status_code: int
    text: str
    error: Optional[ProviderError] = None
    response_time_ms: float = 0.0

    @property
    def ok(self) -> bool:
        """True for a 2xx answer that arrived without transport errors."""
        return self.error is None and 200 <= self.status_code < 300

    @property
    def is_timeout(self) -> bool:
        return self.error is not None and self.error.code == ProviderErrorCode.TIMEOUT

    def json(self) -> Any:
        """
        Decode the body as JSON.

        Raises:
            ParseError: If the body is not valid JSON
        """
        try:
            return json.loads(self.text)
        except (TypeError, ValueError) as e:
            raise ParseError(
                code=ProviderErrorCode.PARSE_ERROR.value,
                message=f"Invalid JSON from {self.url}: {e}",
                details={"url": self.url},
            )

    def raise_for_status(self) -> None:
        """
        Convert an error response into the matching exception.

        Raises:
            ProviderTimeoutError: If the call timed out
            UpstreamError: For non-2xx answers and network failures
        """
        if self.ok:
            return
        if self.error is None:
            raise UpstreamError(
                code=ProviderErrorCode.HTTP_ERROR.value,
                message=f"HTTP {self.status_code} from {self.url}",
                status_code=self.status_code,
            )
        if self.error.code == ProviderErrorCode.TIMEOUT:
            raise ProviderTimeoutError(
                code=self.error.code.value,
                message=self.error.message,
                details={"url": self.url},
            )
        raise UpstreamError(
            code=self.error.code.value,
            message=self.error.message,
            status_code=self.error.http_status_code,
            details={"url": self.url},
        )


class ProviderGateway:
    """
    Async HTTP gateway with a per-call time bound.

    Every call is bounded twice: by the httpx timeout and by an
    asyncio.wait_for ceiling, so an attempt is cancelled at its bound no
    matter which transport is installed.
    """

    DEFAULT_HEADERS = {
        "User-Agent": "DomainIntel/0.1 (+threat intelligence lookup)",
        "Accept": "application/json, text/html;q=0.9, */*;q=0.8",
    }

    def __init__(
        self,
        timeout: float = 8.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> None:
        """
        Initialize the gateway.

        Args:
            timeout: Default per-call timeout in seconds
            transport: Optional httpx transport (e.g. httpx.MockTransport)
            headers: Extra default headers for every call
        """
        self._timeout = timeout
        self._transport = transport
        self._headers = dict(self.DEFAULT_HEADERS)
        if headers:
            self._headers.update(headers)
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self) -> "ProviderGateway":
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()

    @property
    def timeout(self) -> float:
        return self._timeout

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
                headers=self._headers,
                transport=self._transport,
            )
        return self._client

    async def get(
        self,
        url: str,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        timeout: Optional[float] = None,
    ) -> ProviderResponse:
        """
        Issue a GET request bounded by `timeout`.

        Args:
            url: Absolute URL to request
            params: Optional query parameters
            headers: Optional per-call headers
            timeout: Optional per-call timeout overriding the default

        Returns:
            ProviderResponse; non-2xx answers keep their body and status
        """
        bound = timeout if timeout is not None else self._timeout
        client = self._ensure_client()
        start_time = time.perf_counter()

        try:
            response = await asyncio.wait_for(
                client.get(
                    url,
                    params=params,
                    headers=headers,
                    timeout=httpx.Timeout(bound),
                ),
                timeout=bound,
            )
        except (httpx.TimeoutException, asyncio.TimeoutError):
            return ProviderResponse(
                url=url,
                status_code=0,
                text="",
                error=ProviderError(
                    code=ProviderErrorCode.TIMEOUT,
                    message=f"Request timed out after {bound}s",
                ),
                response_time_ms=self._elapsed_ms(start_time),
            )
        except httpx.HTTPError as e:
            return ProviderResponse(
                url=url,
                status_code=0,
                text="",
                error=ProviderError(
                    code=ProviderErrorCode.NETWORK_ERROR,
                    message=f"Connection error: {e}",
                ),
                response_time_ms=self._elapsed_ms(start_time),
            )

        response_time_ms = self._elapsed_ms(start_time)
        requested_url = str(response.request.url)

        if 200 <= response.status_code < 300:
            return ProviderResponse(
                url=requested_url,
                status_code=response.status_code,
                text=response.text,
                error=None,
                response_time_ms=response_time_ms,
            )

        return ProviderResponse(
            url=requested_url,
            status_code=response.status_code,
            text=response.text,
            error=ProviderError(
                code=ProviderErrorCode.HTTP_ERROR,
                message=f"Unexpected HTTP status: {response.status_code}",
                http_status_code=response.status_code,
            ),
            response_time_ms=response_time_ms,
        )

    def _elapsed_ms(self, start_time: float) -> float:
        """Calculate elapsed time in milliseconds."""
        return (time.perf_counter() - start_time) * 1000

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client:
            await self._client.aclose()
            self._client = None
