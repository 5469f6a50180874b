"""Control-plane protocol client.

Speaks the runtime API under ``{base}/2018-06-01/runtime/invocation``:
- GET  /next                  - wait for the next event
- POST /{request_id}/response - report a handler result
- POST /{request_id}/error    - report a handler failure
- POST /init/error            - report a failure to load the handler

Every operation is a thin composition of the transport, URL building and
JSON encoding. Non-2xx answers are treated as a broken contract.
"""

from __future__ import annotations

import json
import logging
import traceback
from typing import Any

import httpx
from pydantic import BaseModel, ConfigDict, Field

from .config import API_VERSION
from .errors import ProtocolTransportError
from .transport import HttpTransport, TransportResponse

logger = logging.getLogger(__name__)

ERROR_TYPE_HEADER = "Lambda-Runtime-Function-Error-Type"
TRACE_HEADER = "X-Amzn-Trace-Id"


class InvocationError(BaseModel):
    """Normalized failure record sent to the error endpoints.

    Example:
        {
            "errorType": "TypeError",
            "errorMessage": "bad",
            "stackTrace": ["TypeError: bad", "at foo", "at bar"]
        }
    """

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    error_type: str = Field(alias="errorType")
    error_message: str = Field(alias="errorMessage")
    stack_trace: list[str] = Field(default_factory=list, alias="stackTrace")

    @classmethod
    def from_stack_text(cls, error_type: str, error_message: str, stack_text: str) -> InvocationError:
        """Build an error record, one stack element per ``\\n``-separated line."""
        lines = stack_text.split("\n")
        if len(lines) > 1 and lines[-1] == "":
            lines.pop()
        return cls(error_type=error_type, error_message=error_message, stack_trace=lines)

    @classmethod
    def from_exception(cls, exc: BaseException) -> InvocationError:
        """Normalize any exception.

        The stack text starts with the descriptive ``"<Type>: <message>"``
        line, followed by the formatted traceback frames. An exception whose
        ``__str__`` raises is described as ``<unprintable Type>``.
        """
        error_type = type(exc).__name__
        try:
            error_message = str(exc)
        except Exception:
            error_message = f"<unprintable {error_type}>"
        header = f"{error_type}: {error_message}" if error_message else error_type
        frames = "".join(traceback.format_tb(exc.__traceback__))
        stack_text = f"{header}\n{frames}" if frames else header
        return cls.from_stack_text(error_type, error_message, stack_text)

    def to_json(self) -> str:
        """Serialize with the wire field names."""
        return self.model_dump_json(by_alias=True)


class RuntimeAPIClient:
    """Client for the four control-plane operations.

    Args:
        base_url: Control-plane base URL including scheme
        transport: HTTP transport (defaults to a network transport)
    """

    def __init__(self, base_url: str, transport: HttpTransport | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self._transport = transport or HttpTransport()

    # =========================================================================
    # Endpoint URLs
    # =========================================================================

    @property
    def invocation_url(self) -> str:
        return f"{self.base_url}/{API_VERSION}/runtime/invocation"

    def next_invocation_url(self) -> str:
        return f"{self.invocation_url}/next"

    def invocation_response_url(self, request_id: str) -> str:
        return f"{self.invocation_url}/{request_id}/response"

    def invocation_error_url(self, request_id: str) -> str:
        return f"{self.invocation_url}/{request_id}/error"

    def init_error_url(self) -> str:
        return f"{self.invocation_url}/init/error"

    # =========================================================================
    # Operations
    # =========================================================================

    async def fetch_next(self) -> tuple[Any, httpx.Headers]:
        """Wait for the next event.

        Returns:
            Tuple of (decoded event, response headers)

        Raises:
            ProtocolTransportError: On transport failure, a non-2xx status
                or a body that is not valid JSON
        """
        url = self.next_invocation_url()
        response = await self._transport.load(url)
        self._check(response, url)

        try:
            event = json.loads(response.body)
        except ValueError as e:
            raise ProtocolTransportError(f"Invalid event payload from {url}: {e}") from e

        return event, response.headers

    async def post_response(
        self,
        request_id: str,
        payload: str | bytes,
        trace_id: str | None = None,
    ) -> None:
        """Report a handler result.

        Args:
            request_id: Request id of the invocation, echoed unchanged
            payload: Already-serialized result
            trace_id: Optional trace id forwarded with the report
        """
        url = self.invocation_response_url(request_id)
        response = await self._transport.send(url, payload, headers=self._trace_headers(trace_id))
        self._check(response, url)

    async def post_error(
        self,
        request_id: str,
        error: InvocationError,
        trace_id: str | None = None,
    ) -> None:
        """Report a handler failure for one invocation."""
        url = self.invocation_error_url(request_id)
        headers = {ERROR_TYPE_HEADER: error.error_type, **self._trace_headers(trace_id)}
        response = await self._transport.send(url, error.to_json(), headers=headers)
        self._check(response, url)

    async def post_init_error(self, error: InvocationError) -> None:
        """Report that the handler could not be loaded."""
        url = self.init_error_url()
        response = await self._transport.send(
            url, error.to_json(), headers={ERROR_TYPE_HEADER: error.error_type}
        )
        self._check(response, url)

    # =========================================================================
    # Helpers
    # =========================================================================

    @staticmethod
    def _trace_headers(trace_id: str | None) -> dict[str, str]:
        return {TRACE_HEADER: trace_id} if trace_id else {}

    @staticmethod
    def _check(response: TransportResponse, url: str) -> None:
        if not response.ok:
            raise ProtocolTransportError(
                f"Unexpected status {response.status_code} from {url}: {response.body[:200]!r}",
                status_code=response.status_code,
            )
