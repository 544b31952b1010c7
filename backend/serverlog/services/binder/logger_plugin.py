"""Logger plugin: binds a RequestLogger to a Server and to each request.

After ``register(server, options)``:
- ``server.app.logger`` and ``server.logger()`` are the same server logger
- every request gets ``request.state.logger``, a child bound with ``req=request``
- tagged server/request events are logged at the level their tags resolve to
- request errors are logged at warn, completed requests at info
- server start/stop are logged at info with the server info fields
"""

from __future__ import annotations

from typing import Any, Mapping, Optional

from starlette.requests import Request

from serverlog.api.server import CONTINUE, Server
from serverlog.api.state import get_request_logger
from serverlog.infrastructure.logging.logging import get_logger
from serverlog.infrastructure.logging.request_logger import RequestLogger, create_request_logger
from serverlog.infrastructure.logging.serializers import Serializer, standard_serializers
from serverlog.infrastructure.utils.config import ConfigError, LoggerOptions
from serverlog.models.levels import Level
from serverlog.models.log_models import LogEvent, RequestInfo
from serverlog.services.tagging.tag_resolver import TagLevelResolver


class InstrumentationError(RuntimeError):
    """Response timing needed for responseTime is missing or inconsistent."""


def response_time(info: Optional[RequestInfo]) -> float:
    if info is None or info.received is None or info.responded is None:
        raise InstrumentationError("request timing unavailable: received/responded timestamps are required")
    elapsed = info.responded - info.received
    if elapsed < 0:
        raise InstrumentationError(f"responded before received ({elapsed:.3f} ms)")
    return round(elapsed, 3)


def _bind_serializers(instance: RequestLogger, serializers: Mapping[str, Serializer]) -> RequestLogger:
    # fields the instance already knows how to serialize are kept; ours win on collision
    instance.use_serializers({**instance.serializers, **serializers})
    return instance


def register(server: Server, options: Any = None) -> RequestLogger:
    opts = LoggerOptions.coerce(options)

    # Everything is validated before the first hook is registered
    resolver = TagLevelResolver.build(opts.tags, opts.all_tags)
    try:
        level = Level.parse(opts.level)
    except ValueError as e:
        raise ConfigError(f"invalid logger level: {e}") from e
    if hasattr(server, "logger"):
        raise ConfigError("a logger is already registered on this server")

    serializers = {**standard_serializers(), **opts.serializers}
    if opts.instance is not None:
        logger = _bind_serializers(opts.instance, serializers)
    else:
        logger = create_request_logger(
            opts.stream,
            level=level,
            serializers=serializers,
            pretty_print=opts.pretty_print,
            name=opts.name,
        )

    server.decorate("server", "logger", lambda: logger)
    server.app.logger = logger

    def on_request(request: Request) -> Any:
        request.state.logger = logger.bind(req=request)
        return CONTINUE

    def on_log(event: LogEvent) -> None:
        resolver.log(logger, event)

    def on_request_log(request: Request, event: LogEvent) -> None:
        resolver.log(get_request_logger(request), event)

    def on_request_error(request: Request, err: BaseException) -> None:
        get_request_logger(request).warn("request error", res=request.state.response, err=err)

    def on_response(request: Request) -> None:
        info = getattr(request.state, "info", None)
        get_request_logger(request).info(
            "request completed",
            res=getattr(request.state, "response", None),
            responseTime=response_time(info),
        )

    def on_post_start(s: Server) -> Any:
        logger.info("server started", **server.info.as_dict())
        return CONTINUE

    def on_post_stop(s: Server) -> Any:
        logger.info("server stopped", **server.info.as_dict())
        return CONTINUE

    server.ext("onRequest", on_request)
    server.on("log", on_log)
    server.on("request", on_request_log)
    server.on("request-error", on_request_error)
    server.on("response", on_response)
    server.ext("onPostStart", on_post_start)
    server.ext("onPostStop", on_post_stop)

    get_logger("logger_plugin").debug(
        "logger_plugin_registered",
        tags=sorted(resolver.tag_levels),
        fallback=str(resolver.fallback) if resolver.fallback else None,
        reused_instance=opts.instance is not None,
    )
    return logger
