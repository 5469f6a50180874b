"""Custom runtime for a serverless compute platform.

Polls the control-plane runtime API for events, invokes a user handler with
(event, context), and reports results and failures back.

Layers:
- transport: HTTP request/response primitive
- protocol: the four runtime API operations and the error wire model
- context: invocation context built from poll response headers
- handler: handler registry and loader
- runtime: the invocation loop
"""

from .config import RuntimeConfig
from .context import LambdaContext, build_context
from .errors import (
    ConfigurationError,
    HandlerInvocationError,
    HandlerResolutionError,
    ProtocolTransportError,
    ResultSerializationError,
    RuntimeInterfaceError,
)
from .handler import Handler, HandlerRegistry, handler_registry
from .protocol import InvocationError, RuntimeAPIClient
from .runtime import LambdaRuntime, RuntimeState, TerminalStatus
from .transport import HttpTransport, TransportResponse

__version__ = "0.1.0"

__all__ = [
    # Runtime
    "LambdaRuntime",
    "RuntimeState",
    "TerminalStatus",
    # Configuration & context
    "RuntimeConfig",
    "LambdaContext",
    "build_context",
    # Handlers
    "Handler",
    "HandlerRegistry",
    "handler_registry",
    # Protocol & transport
    "RuntimeAPIClient",
    "InvocationError",
    "HttpTransport",
    "TransportResponse",
    # Errors
    "RuntimeInterfaceError",
    "ConfigurationError",
    "HandlerResolutionError",
    "HandlerInvocationError",
    "ProtocolTransportError",
    "ResultSerializationError",
]
