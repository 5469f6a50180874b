"""Runtime loop.

Drives the poll -> build context -> invoke -> report cycle:

    Initializing -> {Polling -> Invoking -> Reporting}* -> Terminated

Failure isolation:
- A handler failure is reported through the error endpoint and the loop
  moves on to the next event
- A handler that cannot be resolved is reported through the init error
  endpoint and the runtime never polls
- Anything else (poll, report or decode failures) ends the loop

The loop never exits the process itself; run() returns a TerminalStatus
and the caller decides what to do with it.
"""

from __future__ import annotations

import inspect
import json
import logging
from enum import Enum
from typing import Any

from .config import RuntimeConfig
from .context import Clock, LambdaContext, build_context
from .errors import (
    HandlerInvocationError,
    HandlerResolutionError,
    ProtocolTransportError,
    ResultSerializationError,
    RuntimeInterfaceError,
)
from .handler import Handler, HandlerRegistry, handler_registry
from .protocol import InvocationError, RuntimeAPIClient

logger = logging.getLogger(__name__)


class RuntimeState(str, Enum):
    """Runtime state machine."""

    INITIALIZING = "initializing"
    IDLE = "idle"
    POLLING = "polling"
    INVOKING = "invoking"
    REPORTING = "reporting"
    TERMINATED = "terminated"


class TerminalStatus(str, Enum):
    """How a run ended."""

    SUCCESS = "success"  # Bounded run completed all its cycles
    INIT_FAILED = "init_failed"
    TRANSPORT_FAILED = "transport_failed"

    @property
    def exit_code(self) -> int:
        return 0 if self is TerminalStatus.SUCCESS else 1


class LambdaRuntime:
    """Hosts one handler for the lifetime of the process.

    Args:
        config: Static process configuration
        client: Control-plane client (defaults to one for config.base_url)
        registry: Handler table (defaults to the process-wide registry)
        clock: Epoch-millisecond clock for remaining-time computation
    """

    def __init__(
        self,
        config: RuntimeConfig,
        client: RuntimeAPIClient | None = None,
        registry: HandlerRegistry | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config
        self.client = client or RuntimeAPIClient(config.base_url)
        self.registry = registry if registry is not None else handler_registry
        self._clock = clock
        self._handler: Handler | None = None
        self._state = RuntimeState.INITIALIZING
        self.cycles = 0

    @property
    def state(self) -> RuntimeState:
        return self._state

    @property
    def handler(self) -> Handler | None:
        return self._handler

    async def initialize(self) -> bool:
        """Resolve the handler; report an init error on failure.

        Returns:
            True if the handler was resolved
        """
        self._state = RuntimeState.INITIALIZING
        try:
            self._handler = self.registry.resolve(self.config.handler, task_root=self.config.task_root)
        except HandlerResolutionError as e:
            logger.error(f"Init failed for handler {self.config.handler!r}: {e}")
            try:
                await self.client.post_init_error(InvocationError.from_exception(e))
            except ProtocolTransportError as post_error:
                logger.error(f"Failed to report init error: {post_error}")
            self._state = RuntimeState.TERMINATED
            return False

        self._state = RuntimeState.IDLE
        return True

    async def run(self, max_invocations: int | None = None) -> TerminalStatus:
        """Initialize, then process events until a fatal failure.

        Args:
            max_invocations: Stop after this many cycles (None runs forever)

        Returns:
            TerminalStatus describing why the run ended
        """
        if not await self.initialize():
            return TerminalStatus.INIT_FAILED

        logger.info(
            f"Runtime started: function={self.config.function_name or '-'} "
            f"handler={self.config.handler}"
        )

        try:
            while max_invocations is None or self.cycles < max_invocations:
                await self.run_once()
        except Exception as e:
            logger.exception(f"Runtime loop terminated: {e}")
            self._state = RuntimeState.TERMINATED
            return TerminalStatus.TRANSPORT_FAILED

        self._state = RuntimeState.TERMINATED
        return TerminalStatus.SUCCESS

    async def run_once(self) -> None:
        """Run one full cycle: poll, build context, invoke, report.

        Raises:
            ProtocolTransportError: If polling or reporting fails
        """
        if self._handler is None:
            raise RuntimeInterfaceError("Runtime is not initialized")

        self._state = RuntimeState.POLLING
        event, headers = await self.client.fetch_next()
        context = build_context(headers, self.config, clock=self._clock)
        self.cycles += 1
        request_id = context.aws_request_id
        logger.debug(f"Received invocation {request_id} (trace={context.trace_id})")

        self._state = RuntimeState.INVOKING
        try:
            payload = await self._invoke(event, context)
        except HandlerInvocationError as e:
            logger.error(f"Invocation {request_id} failed: {e}")
            self._state = RuntimeState.REPORTING
            await self.client.post_error(request_id, e.error, trace_id=context.trace_id)
            self._state = RuntimeState.IDLE
            return

        self._state = RuntimeState.REPORTING
        await self.client.post_response(request_id, payload, trace_id=context.trace_id)
        logger.debug(f"Invocation {request_id} completed")
        self._state = RuntimeState.IDLE

    async def _invoke(self, event: Any, context: LambdaContext) -> str:
        """Call the handler and JSON-encode its result.

        Raises:
            HandlerInvocationError: If the handler raises or its result
                cannot be encoded as strict JSON
        """
        assert self._handler is not None
        request_id = context.aws_request_id

        try:
            result = self._handler(event, context)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            raise HandlerInvocationError(request_id, InvocationError.from_exception(e)) from e

        # NaN and Infinity are not JSON; deep nesting raises RecursionError
        try:
            return json.dumps(result, allow_nan=False)
        except Exception as e:
            marshal_error = ResultSerializationError(f"Unable to marshal response: {e}")
            raise HandlerInvocationError(
                request_id, InvocationError.from_exception(marshal_error)
            ) from e
