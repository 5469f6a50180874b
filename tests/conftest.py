"""Pytest configuration and shared fixtures.

FakeControlPlane is a starlette app implementing the runtime API. It is
reached through httpx.ASGITransport, so the real transport and client code
paths run without a network.
"""

from __future__ import annotations

import json
import sys
import textwrap
import uuid
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx
import pytest
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from serverless_runtime.config import RuntimeConfig
from serverless_runtime.handler import HandlerRegistry
from serverless_runtime.protocol import RuntimeAPIClient
from serverless_runtime.transport import HttpTransport

BASE_URL = "http://runtime.test"
INVOCATION_PREFIX = "/2018-06-01/runtime/invocation"
FAR_DEADLINE_MS = 4_102_444_800_000  # 2100-01-01


@dataclass
class RecordedCall:
    """One request received by the fake control plane."""

    method: str
    path: str
    headers: dict[str, str]
    body: bytes

    @property
    def kind(self) -> str:
        if self.path.endswith("/next"):
            return "next"
        if self.path.endswith("/init/error"):
            return "init_error"
        if self.path.endswith("/response"):
            return "response"
        if self.path.endswith("/error"):
            return "error"
        return "unknown"

    def json(self) -> Any:
        return json.loads(self.body)


@dataclass
class QueuedInvocation:
    status_code: int = 200
    body: bytes = b"{}"
    headers: dict[str, str] = field(default_factory=dict)


class FakeControlPlane:
    """In-memory runtime API that records every call."""

    def __init__(self) -> None:
        self.calls: list[RecordedCall] = []
        self._queue: list[QueuedInvocation] = []
        self._post_statuses: list[int] = []
        self.app = Starlette(
            routes=[
                Route(f"{INVOCATION_PREFIX}/next", self._next, methods=["GET"]),
                Route(f"{INVOCATION_PREFIX}/{{request_id}}/response", self._accept, methods=["POST"]),
                Route(f"{INVOCATION_PREFIX}/{{request_id}}/error", self._accept, methods=["POST"]),
            ]
        )

    @property
    def transport(self) -> httpx.ASGITransport:
        return httpx.ASGITransport(app=self.app)

    @property
    def kinds(self) -> list[str]:
        return [call.kind for call in self.calls]

    def calls_of(self, kind: str) -> list[RecordedCall]:
        return [call for call in self.calls if call.kind == kind]

    def add_invocation(
        self,
        event: Any,
        request_id: str,
        deadline_ms: int = FAR_DEADLINE_MS,
        function_arn: str = "arn:aws:lambda:us-east-1:123456789012:function:test",
        extra_headers: dict[str, str] | None = None,
    ) -> None:
        headers = {
            "Lambda-Runtime-Aws-Request-Id": request_id,
            "Lambda-Runtime-Invoked-Function-Arn": function_arn,
            "Lambda-Runtime-Deadline-Ms": str(deadline_ms),
        }
        headers.update(extra_headers or {})
        self._queue.append(QueuedInvocation(body=json.dumps(event).encode(), headers=headers))

    def add_raw(self, status_code: int, body: bytes, headers: dict[str, str] | None = None) -> None:
        self._queue.append(QueuedInvocation(status_code=status_code, body=body, headers=headers or {}))

    def fail_next_post(self, status_code: int = 500) -> None:
        """Answer the next response or error post with status_code."""
        self._post_statuses.append(status_code)

    async def _record(self, request: Request) -> None:
        self.calls.append(
            RecordedCall(
                method=request.method,
                path=request.url.path,
                headers=dict(request.headers),
                body=await request.body(),
            )
        )

    async def _next(self, request: Request) -> Response:
        await self._record(request)
        if not self._queue:
            return JSONResponse({"errorMessage": "no more events"}, status_code=500)
        queued = self._queue.pop(0)
        return Response(
            content=queued.body,
            status_code=queued.status_code,
            headers=queued.headers,
            media_type="application/json",
        )

    async def _accept(self, request: Request) -> Response:
        await self._record(request)
        if self._post_statuses:
            status_code = self._post_statuses.pop(0)
            return JSONResponse({"errorMessage": "rejected"}, status_code=status_code)
        return JSONResponse({"status": "OK"}, status_code=202)


@pytest.fixture
def control_plane() -> FakeControlPlane:
    return FakeControlPlane()


@pytest.fixture
def api_client(control_plane: FakeControlPlane) -> RuntimeAPIClient:
    return RuntimeAPIClient(BASE_URL, HttpTransport(control_plane.transport))


@pytest.fixture
def registry() -> HandlerRegistry:
    return HandlerRegistry()


@pytest.fixture
def runtime_config(tmp_path: Path) -> RuntimeConfig:
    return RuntimeConfig(
        handler="app.handler",
        runtime_api="runtime.test",
        function_name="test-function",
        function_version="$LATEST",
        memory_limit_in_mb="128",
        log_group_name="/aws/lambda/test-function",
        log_stream_name="2024/01/01/[$LATEST]abc",
        task_root=tmp_path,
    )


@pytest.fixture
def write_handler_module(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Iterator[Callable[[str], str]]:
    """Write a uniquely named module into tmp_path and return its name.

    sys.path and sys.modules are restored after the test.
    """
    monkeypatch.setattr(sys, "path", list(sys.path))
    written: list[str] = []

    def _write(source: str) -> str:
        module_name = f"fn_{uuid.uuid4().hex[:10]}"
        (tmp_path / f"{module_name}.py").write_text(textwrap.dedent(source))
        written.append(module_name)
        return module_name

    yield _write

    for module_name in written:
        sys.modules.pop(module_name, None)
