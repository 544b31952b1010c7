"""Host server: a FastAPI app with named extension points and events.

Extension points (``ext``) run in order and must hand control back by
returning ``CONTINUE``; anything else is a ``HookError``:
- onRequest(request): before routing, for every request
- onPostStart(server) / onPostStop(server): from the app lifespan

Events (``on`` / ``emit``) are plain synchronous notifications:
- log(event): server-level tagged event, raised by ``Server.log``
- request(request, event): request-level tagged event, raised by ``Server.request_log``
- request-error(request, err): the handler raised; the client got a 500
  unless the response had already started
- response(request): the response for ``request`` has been sent

Per request, ``request.state`` carries ``id``, ``info`` (RequestInfo timing)
and ``response`` (ResponseInfo, once the status line went out).
"""

from __future__ import annotations

import inspect
import os
import socket
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Dict, List

import structlog
from fastapi import FastAPI
from fastapi.responses import JSONResponse
from starlette.datastructures import MutableHeaders
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from serverlog.infrastructure.logging.logging import get_logger
from serverlog.infrastructure.utils.timeutils import epoch_ms, monotonic_ms
from serverlog.models.log_models import LogEvent, RequestInfo, ResponseInfo, ServerInfo, TagsInput

EXTENSION_POINTS = ("onRequest", "onPostStart", "onPostStop")
EVENTS = ("log", "request", "request-error", "response")

Hook = Callable[[Any], Any]
Listener = Callable[..., Any]


class HookError(RuntimeError):
    pass


class _Continue:
    __slots__ = ()

    def __repr__(self) -> str:
        return "CONTINUE"


CONTINUE = _Continue()


def _hook_name(fn: Callable[..., Any]) -> str:
    return getattr(fn, "__qualname__", None) or repr(fn)


class Server:
    def __init__(self, *, host: str = "127.0.0.1", port: int = 8000, title: str = "serverlog", **fastapi_kwargs: Any) -> None:
        self._logger = get_logger("server")
        self._extensions: Dict[str, List[Hook]] = {point: [] for point in EXTENSION_POINTS}
        self._listeners: Dict[str, List[Listener]] = {event: [] for event in EVENTS}
        self._decorations: Dict[str, Any] = {}

        created = epoch_ms()
        self.info = ServerInfo(
            id=f"{socket.gethostname()}:{os.getpid()}:{created}",
            created=created,
            host=host,
            port=port,
        )

        self.fastapi = FastAPI(title=title, lifespan=self._lifespan, **fastapi_kwargs)
        self.fastapi.add_middleware(RequestLifecycleMiddleware, server=self)

        # server-wide state bag, shared with every request through request.app.state
        self.app = self.fastapi.state

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        await self.fastapi(scope, receive, send)

    # --------- Registration ---------
    def ext(self, point: str, hook: Hook) -> None:
        if point not in self._extensions:
            raise HookError(f"Unknown extension point: {point}. Must be one of {EXTENSION_POINTS}")
        self._extensions[point].append(hook)
        self._logger.debug("hook_registered", point=point, hook=_hook_name(hook))

    def on(self, event: str, listener: Listener) -> None:
        if event not in self._listeners:
            raise HookError(f"Unknown event: {event}. Must be one of {EVENTS}")
        self._listeners[event].append(listener)
        self._logger.debug("listener_registered", server_event=event, listener=_hook_name(listener))

    def decorate(self, target: str, name: str, value: Any) -> None:
        if target != "server":
            raise HookError(f"Unsupported decoration target: {target}")
        if name in self._decorations or hasattr(self, name):
            raise HookError(f"Server decoration already defined: {name}")
        self._decorations[name] = value
        setattr(self, name, value)

    def register(self, plugin: Callable[..., Any], options: Any = None) -> Any:
        return plugin(self, options)

    def extensions(self, point: str) -> List[Hook]:
        return list(self._extensions[point])

    def listeners(self, event: str) -> List[Listener]:
        return list(self._listeners[event])

    # --------- Running hooks / events ---------
    async def run_extensions(self, point: str, arg: Any) -> None:
        for hook in self._extensions[point]:
            result = hook(arg)
            if inspect.isawaitable(result):
                result = await result
            if result is not CONTINUE:
                raise HookError(f"{point} extension {_hook_name(hook)} did not return CONTINUE")

    def emit(self, event: str, *args: Any) -> None:
        if event not in self._listeners:
            raise HookError(f"Unknown event: {event}. Must be one of {EVENTS}")
        for listener in self._listeners[event]:
            listener(*args)

    def log(self, tags: TagsInput, data: Any = None) -> None:
        self.emit("log", LogEvent.of(tags, data))

    def request_log(self, request: Request, tags: TagsInput, data: Any = None) -> None:
        self.emit("request", request, LogEvent.of(tags, data))

    # --------- Lifecycle ---------
    async def start(self) -> None:
        self.info.started = epoch_ms()
        await self.run_extensions("onPostStart", self)

    async def stop(self) -> None:
        await self.run_extensions("onPostStop", self)
        self.info.started = 0

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI) -> AsyncIterator[None]:
        await self.start()
        try:
            yield
        finally:
            await self.stop()


class RequestLifecycleMiddleware:
    """Per-request instrumentation: id, timing, onRequest hooks, error and response events."""

    def __init__(self, app: ASGIApp, server: Server) -> None:
        self.app = app
        self._server = server

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        server = self._server
        request = Request(scope, receive)
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex
        request.state.id = request_id
        request.state.info = RequestInfo(id=request_id, received=monotonic_ms())
        request.state.response = None

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start":
                headers = MutableHeaders(scope=message)
                headers.append("x-request-id", request_id)
                request.state.response = ResponseInfo(
                    status_code=message["status"],
                    headers={k.decode("latin-1"): v.decode("latin-1") for k, v in message["headers"]},
                )
            elif message["type"] == "http.response.body" and not message.get("more_body", False):
                request.state.info.responded = monotonic_ms()
            await send(message)

        structlog.contextvars.bind_contextvars(request_id=request_id)
        try:
            await server.run_extensions("onRequest", request)
            try:
                await self.app(scope, receive, send_wrapper)
            except Exception as err:
                if request.state.response is not None:
                    # headers already went out, nothing left to send to the client
                    if request.state.info.responded is None:
                        request.state.info.responded = monotonic_ms()
                    server.emit("request-error", request, err)
                    server.emit("response", request)
                    raise
                await _internal_error()(scope, receive, send_wrapper)
                server.emit("request-error", request, err)
            server.emit("response", request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")


def _internal_error() -> Response:
    return JSONResponse(
        {"statusCode": 500, "error": "Internal Server Error", "message": "An internal server error occurred"},
        status_code=500,
    )
