"""Exception hierarchy for the runtime.

Two severities matter to the runtime loop:
- HandlerInvocationError: one event failed; reported and the loop continues
- Everything else: the runtime cannot make progress and terminates
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .protocol import InvocationError


class RuntimeInterfaceError(Exception):
    """Base class for all runtime errors."""

    pass


class ConfigurationError(RuntimeInterfaceError):
    """Required process configuration is missing or invalid."""

    pass


class HandlerResolutionError(RuntimeInterfaceError):
    """The handler specifier could not be resolved into a callable.

    Raised for a malformed specifier, a module that is missing or fails to
    import, or an export that is missing or not callable. Only occurs while
    initializing.
    """

    pass


class ProtocolTransportError(RuntimeInterfaceError):
    """The exchange with the control plane failed.

    Covers connection failures, unexpected status codes, undecodable bodies
    and invalid invocation headers.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class HandlerInvocationError(RuntimeInterfaceError):
    """User code failed while handling a single event."""

    def __init__(self, request_id: str, error: InvocationError) -> None:
        super().__init__(f"{error.error_type}: {error.error_message}")
        self.request_id = request_id
        self.error = error


class ResultSerializationError(RuntimeInterfaceError):
    """The handler returned a value that cannot be encoded as JSON."""

    pass
