from __future__ import annotations

from typing import Any, Dict, Optional, TextIO

from fastapi import Depends, Request
from pydantic import BaseModel

from serverlog.api.server import Server
from serverlog.api.state import get_request_logger
from serverlog.infrastructure.logging.request_logger import RequestLogger
from serverlog.infrastructure.utils.config import AdapterSettings, LoggerOptions, get_config
from serverlog.services.binder.logger_plugin import register


JsonDict = Dict[str, Any]


# --------- Schemas ---------
class EventPayload(BaseModel):
    tags: list[str] = []
    data: Any = None


def build_server(settings: Optional[AdapterSettings] = None, stream: Optional[TextIO] = None) -> Server:
    """Demo server with the logger plugin registered from settings."""
    settings = settings or get_config()
    server = Server(host=settings.api.host, port=settings.api.port, title="serverlog demo")
    server.register(register, LoggerOptions.from_settings(settings.logger, stream=stream))

    app = server.fastapi

    # --------- Routes ---------
    @app.get("/health")
    def health() -> JsonDict:
        return {"ok": True, "started": server.info.started}

    @app.get("/hello")
    def hello(log: RequestLogger = Depends(get_request_logger)) -> JsonDict:
        log.info("hello world")
        return {"ok": True, "message": "hello world"}

    @app.post("/events")
    def request_event(payload: EventPayload, request: Request) -> JsonDict:
        """Raise a request-tagged event; its level comes from the tag configuration."""
        server.request_log(request, payload.tags, payload.data)
        return {"ok": True, "tags": payload.tags}

    @app.post("/server-events")
    def server_event(payload: EventPayload) -> JsonDict:
        server.log(payload.tags, payload.data)
        return {"ok": True, "tags": payload.tags}

    @app.get("/boom")
    def boom() -> JsonDict:
        raise RuntimeError("boom")

    return server


def create_app() -> Server:
    """uvicorn factory entrypoint."""
    return build_server()
