"""Invocation context construction.

Turns the headers of a poll response plus the static configuration into an
immutable per-invocation context. Required headers are validated once, up
front; a poll response without them means the control plane broke the
contract.
"""

from __future__ import annotations

import json
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import RuntimeConfig
from .errors import ProtocolTransportError

REQUEST_ID_HEADER = "lambda-runtime-aws-request-id"
FUNCTION_ARN_HEADER = "lambda-runtime-invoked-function-arn"
DEADLINE_HEADER = "lambda-runtime-deadline-ms"
CLIENT_CONTEXT_HEADER = "lambda-runtime-client-context"
COGNITO_IDENTITY_HEADER = "lambda-runtime-cognito-identity"
TRACE_ID_HEADER = "lambda-runtime-trace-id"

Clock = Callable[[], float]


def epoch_millis() -> float:
    """Current wall-clock time in milliseconds since the epoch."""
    return time.time() * 1000


class InvocationHeaders(BaseModel):
    """Typed view of the invocation headers of a poll response."""

    model_config = ConfigDict(populate_by_name=True, frozen=True, extra="ignore")

    request_id: str = Field(alias=REQUEST_ID_HEADER, min_length=1)
    invoked_function_arn: str = Field(alias=FUNCTION_ARN_HEADER, min_length=1)
    deadline_ms: int = Field(alias=DEADLINE_HEADER)
    client_context: Any = Field(default=None, alias=CLIENT_CONTEXT_HEADER)
    identity: Any = Field(default=None, alias=COGNITO_IDENTITY_HEADER)
    trace_id: str | None = Field(default=None, alias=TRACE_ID_HEADER)

    @field_validator("client_context", "identity", mode="before")
    @classmethod
    def _decode_json(cls, value: Any) -> Any:
        if isinstance(value, str):
            return json.loads(value) if value else None
        return value

    @classmethod
    def from_headers(cls, headers: Mapping[str, str]) -> InvocationHeaders:
        """Validate raw response headers (names are case-insensitive).

        Raises:
            ProtocolTransportError: If a required header is missing or invalid,
                or an optional JSON header cannot be decoded
        """
        normalized = {key.lower(): value for key, value in headers.items()}
        try:
            return cls.model_validate(normalized)
        except ValidationError as e:
            raise ProtocolTransportError(f"Invalid invocation headers: {e}") from e


@dataclass(frozen=True)
class LambdaContext:
    """Per-invocation context passed to the handler.

    The remaining time is computed on every call against the deadline
    captured at poll time and is not clamped: it goes negative once the
    deadline has passed.
    """

    aws_request_id: str
    invoked_function_arn: str
    log_group_name: str
    log_stream_name: str
    function_name: str
    function_version: str
    memory_limit_in_mb: str
    deadline_ms: int
    client_context: Any = None
    identity: Any = None
    trace_id: str | None = None
    _clock: Clock = field(default=epoch_millis, repr=False, compare=False)

    def get_remaining_time_in_millis(self) -> int:
        """Milliseconds left until the deadline (negative once it has passed)."""
        return self.deadline_ms - int(self._clock())


def build_context(
    headers: Mapping[str, str],
    config: RuntimeConfig,
    clock: Clock | None = None,
) -> LambdaContext:
    """Build the invocation context for one cycle.

    Args:
        headers: Headers of the poll response
        config: Static process configuration
        clock: Source of the current time in epoch milliseconds

    Returns:
        LambdaContext for this invocation

    Raises:
        ProtocolTransportError: If the headers are invalid
    """
    parsed = InvocationHeaders.from_headers(headers)
    return LambdaContext(
        aws_request_id=parsed.request_id,
        invoked_function_arn=parsed.invoked_function_arn,
        log_group_name=config.log_group_name,
        log_stream_name=config.log_stream_name,
        function_name=config.function_name,
        function_version=config.function_version,
        memory_limit_in_mb=config.memory_limit_in_mb,
        deadline_ms=parsed.deadline_ms,
        client_context=parsed.client_context,
        identity=parsed.identity,
        trace_id=parsed.trace_id,
        _clock=clock or epoch_millis,
    )
