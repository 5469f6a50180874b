"""HTTP transport for the control-plane API.

A generic request/response primitive with no protocol knowledge:
- One exchange per call, on a fresh client (no pooling)
- The response body is read fully before returning
- No timeout and no retry; the poll is a long-poll by design of the platform
- Connection failures surface as ProtocolTransportError
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field

import httpx

from .errors import ProtocolTransportError

logger = logging.getLogger(__name__)

JSON_CONTENT_TYPE = "application/json"


@dataclass
class TransportResponse:
    """A fully-read HTTP response."""

    status_code: int
    headers: httpx.Headers = field(default_factory=httpx.Headers)
    body: bytes = b""

    @property
    def ok(self) -> bool:
        """True for 2xx status codes."""
        return 200 <= self.status_code < 300


class HttpTransport:
    """Blocking-style request/response over httpx.

    Each call awaits a single exchange to completion; callers never have
    more than one request in flight.

    Args:
        transport: Optional httpx transport (e.g. httpx.ASGITransport or
            httpx.MockTransport) used instead of the network
    """

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    async def request(
        self,
        url: str,
        method: str,
        headers: Mapping[str, str] | None = None,
        body: str | bytes | None = None,
    ) -> TransportResponse:
        """Perform one HTTP exchange.

        Args:
            url: Absolute URL
            method: HTTP method
            headers: Request headers
            body: Optional request body, written as-is

        Returns:
            TransportResponse with the complete body

        Raises:
            ProtocolTransportError: On any connection or protocol failure
        """
        if isinstance(body, str):
            body = body.encode("utf-8")

        try:
            async with httpx.AsyncClient(transport=self._transport, timeout=None) as client:
                response = await client.request(method, url, headers=headers, content=body)
        except httpx.HTTPError as e:
            logger.error(f"{method} {url} failed: {e}")
            raise ProtocolTransportError(f"{method} {url} failed: {e}") from e

        logger.debug(f"{method} {url} -> {response.status_code}")
        return TransportResponse(
            status_code=response.status_code,
            headers=response.headers,
            body=response.content,
        )

    async def load(self, url: str, headers: Mapping[str, str] | None = None) -> TransportResponse:
        """GET without a body."""
        return await self.request(url, "GET", headers=headers)

    async def send(
        self,
        url: str,
        payload: str | bytes,
        headers: Mapping[str, str] | None = None,
    ) -> TransportResponse:
        """POST a payload as JSON."""
        merged = {"Content-Type": JSON_CONTENT_TYPE}
        if headers:
            merged.update(headers)
        return await self.request(url, "POST", headers=merged, body=payload)
