"""
HTTP listener for the mock engine.

A FastAPI app with a single catch-all route hands every request to the
engine. It is served by uvicorn inside the caller's event loop, on an
ephemeral port unless one is given.
"""

from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional

import structlog
import uvicorn
from fastapi import FastAPI, Request, Response, WebSocket, WebSocketDisconnect

from accord.core.errors import ConfigurationError
from accord.mock.engine import MockResponseEngine
from accord.mock.operations import MockResult
from accord.models import HTTPRequest, SpecType

logger = structlog.get_logger()

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"]
HOP_BY_HOP_HEADERS = {"content-length", "transfer-encoding", "connection"}
STARTUP_TIMEOUT = 10.0

CloseHook = Callable[[], Awaitable[Any]]


async def to_http_request(request: Request) -> HTTPRequest:
    """Normalize an inbound request: lower-cased headers, decoded body."""
    raw = await request.body()
    content_type = request.headers.get("content-type", "")

    body: Any = None
    if raw:
        text = raw.decode("utf-8", errors="replace")
        if "json" in content_type:
            try:
                body = json.loads(text)
            except ValueError:
                body = text
        else:
            body = text

    query: dict[str, Any] = {}
    for key in request.query_params.keys():
        values = request.query_params.getlist(key)
        query[key] = values[0] if len(values) == 1 else values

    return HTTPRequest(
        method=request.method.upper(),
        path=request.url.path,
        headers={k.lower(): v for k, v in request.headers.items()},
        query=query,
        body=body,
    )


def to_response(result: MockResult, spec_type: SpecType) -> Response:
    headers = {k: v for k, v in result.headers.items() if k.lower() not in HOP_BY_HOP_HEADERS}
    headers["x-spec-type"] = spec_type.value

    if result.status == 101:
        # Upgrades are taken over by the websocket route when the server supports them
        return Response(
            content=json.dumps({"error": "Upgrade Required", "message": "WebSocket upgrade not supported"}),
            status_code=426,
            headers={"x-spec-type": spec_type.value, "content-type": "application/json"},
        )

    if result.body is None or result.status in (204, 304):
        return Response(status_code=result.status, headers=headers)

    content_type = next((v for k, v in headers.items() if k.lower() == "content-type"), "")
    if isinstance(result.body, str) and "json" not in content_type:
        return Response(content=result.body, status_code=result.status, headers=headers)

    if not content_type:
        headers["content-type"] = "application/json"
    return Response(content=json.dumps(result.body), status_code=result.status, headers=headers)


def create_app(engine: MockResponseEngine) -> FastAPI:
    app = FastAPI(title="Accord Mock Server", docs_url=None, redoc_url=None, openapi_url=None)

    @app.api_route("/{path:path}", methods=ALL_METHODS)
    async def handle(request: Request) -> Response:
        http_request = await to_http_request(request)
        result = await engine.handle(http_request)
        logger.debug(
            "mock_request",
            method=http_request.method,
            path=http_request.path,
            status=result.status,
            operation=result.operation,
            source=result.source.value,
        )
        return to_response(result, engine.spec_type)

    @app.websocket("/{path:path}")
    async def websocket(socket: WebSocket) -> None:
        await socket.accept()
        await socket.send_json({"message": "WebSocket endpoint active"})
        try:
            while True:
                await socket.receive_text()
        except WebSocketDisconnect:
            return

    return app


class MockServer:
    """Runs the mock app on a local listener inside the current event loop."""

    def __init__(
        self,
        engine: MockResponseEngine,
        *,
        host: str = "127.0.0.1",
        port: int = 0,
        log_level: str = "warning",
    ) -> None:
        self._engine = engine
        self._host = host
        self._port = port
        self._log_level = log_level
        self.app = create_app(engine)
        self._server: Optional[uvicorn.Server] = None
        self._task: Optional[asyncio.Task[None]] = None
        self._close_hooks: list[CloseHook] = []

    @property
    def engine(self) -> MockResponseEngine:
        return self._engine

    @property
    def port(self) -> int:
        return self._port

    @property
    def url(self) -> str:
        return f"http://{self._host}:{self._port}"

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def add_close_hook(self, hook: CloseHook) -> None:
        """Register a coroutine function awaited by ``close`` before the listener stops."""
        self._close_hooks.append(hook)

    async def start(self) -> MockServer:
        config = uvicorn.Config(
            self.app,
            host=self._host,
            port=self._port,
            log_level=self._log_level,
            access_log=False,
            lifespan="off",
        )
        self._server = uvicorn.Server(config)
        self._task = asyncio.create_task(self._server.serve())

        loop = asyncio.get_running_loop()
        deadline = loop.time() + STARTUP_TIMEOUT
        while not self._server.started:
            if self._task.done():
                error = self._task.exception() if not self._task.cancelled() else None
                raise ConfigurationError(
                    f"Mock server failed to start on {self._host}:{self._port}: {error}",
                    details={"host": self._host, "port": self._port},
                )
            if loop.time() > deadline:
                await self.stop()
                raise ConfigurationError(
                    f"Mock server did not start within {STARTUP_TIMEOUT}s",
                    details={"host": self._host, "port": self._port},
                )
            await asyncio.sleep(0.01)

        sockets = self._server.servers[0].sockets if self._server.servers else []
        if sockets:
            self._port = sockets[0].getsockname()[1]

        logger.info("mock_server_started", url=self.url, spec_type=self._engine.spec_type.value)
        return self

    async def stop(self) -> None:
        if self._server is None or self._task is None:
            return
        self._server.should_exit = True
        try:
            await self._task
        finally:
            self._server = None
            self._task = None
        logger.info("mock_server_stopped", url=self.url)

    async def close(self) -> None:
        """Await every close hook (uploads, flushes), then stop the listener."""
        for hook in self._close_hooks:
            try:
                await hook()
            except Exception as exc:
                logger.warning("mock_close_hook_failed", error=str(exc), error_type=type(exc).__name__)
        self._close_hooks.clear()
        await self.stop()

    async def __aenter__(self) -> MockServer:
        return await self.start()

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
