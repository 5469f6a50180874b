"""Handler resolution.

A handler is named by a specifier ``"<module-path>.<exported-name>"``.
Handlers can be registered explicitly in a HandlerRegistry at startup;
a specifier that was not registered is imported from the task root once
and then kept in the table.

Usage:
    from serverless_runtime.handler import handler_registry

    @handler_registry.register("app.handler")
    def handler(event, context):
        return {"ok": True}
"""

from __future__ import annotations

import importlib
import logging
import sys
from collections.abc import Callable
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from .errors import HandlerResolutionError

if TYPE_CHECKING:
    from .context import LambdaContext

logger = logging.getLogger(__name__)


@runtime_checkable
class Handler(Protocol):
    """User function invoked once per event. May return an awaitable."""

    def __call__(self, event: Any, context: LambdaContext) -> Any: ...


def parse_handler_specifier(specifier: str) -> tuple[str, str]:
    """Split a specifier into (module name, exported name).

    The split happens on the last dot; ``/`` in the module path is read as a
    package separator, so ``"src/app.handler"`` names ``handler`` in
    ``src.app``.

    Raises:
        HandlerResolutionError: If either part is empty
    """
    module_path, sep, export = specifier.rpartition(".")
    module_name = module_path.replace("/", ".").strip(".")
    if not sep or not module_name or not export:
        raise HandlerResolutionError(f"Invalid handler: {specifier!r}")
    return module_name, export


class HandlerRegistry:
    """Table of handler specifier -> callable."""

    def __init__(self) -> None:
        self._handlers: dict[str, Handler] = {}

    def __contains__(self, specifier: object) -> bool:
        return specifier in self._handlers

    def __len__(self) -> int:
        return len(self._handlers)

    def register(self, specifier: str, handler: Handler | None = None) -> Any:
        """Register a handler under a specifier.

        Can be called directly or used as a decorator.

        Raises:
            HandlerResolutionError: If the specifier is malformed or the
                handler is not callable
        """
        parse_handler_specifier(specifier)

        def _register(fn: Handler) -> Handler:
            if not callable(fn):
                raise HandlerResolutionError(f"Handler for {specifier!r} is not callable")
            self._handlers[specifier] = fn
            logger.debug(f"Registered handler: {specifier}")
            return fn

        if handler is not None:
            return _register(handler)
        return _register

    def unregister(self, specifier: str) -> None:
        self._handlers.pop(specifier, None)

    def clear(self) -> None:
        self._handlers.clear()

    def resolve(self, specifier: str, task_root: str | Path | None = None) -> Handler:
        """Resolve a specifier into a callable.

        Args:
            specifier: ``"<module-path>.<exported-name>"``
            task_root: Directory the user's code lives in

        Returns:
            The handler callable

        Raises:
            HandlerResolutionError: For a malformed specifier, a module that
                is missing or fails to import, or a missing export
        """
        module_name, export = parse_handler_specifier(specifier)

        if specifier in self._handlers:
            return self._handlers[specifier]

        handler = _load_handler(module_name, export, task_root)
        self._handlers[specifier] = handler
        logger.info(f"Loaded handler {export} from module {module_name}")
        return handler


def _load_handler(module_name: str, export: str, task_root: str | Path | None) -> Handler:
    if task_root is not None:
        root = str(Path(task_root).resolve())
        if root not in sys.path:
            sys.path.insert(0, root)
        importlib.invalidate_caches()

    try:
        module = importlib.import_module(module_name)
    except ModuleNotFoundError as e:
        raise HandlerResolutionError(f"Unable to import module {module_name!r}: {e}") from e
    except Exception as e:
        raise HandlerResolutionError(
            f"Failed to load module {module_name!r}: {type(e).__name__}: {e}"
        ) from e

    handler: Callable[..., Any] | None = getattr(module, export, None)
    if handler is None:
        raise HandlerResolutionError(f"Handler {export!r} missing on module {module_name!r}")
    if not callable(handler):
        raise HandlerResolutionError(f"Handler {export!r} on module {module_name!r} is not callable")
    return handler


# Process-wide registry, populated at startup
handler_registry = HandlerRegistry()
