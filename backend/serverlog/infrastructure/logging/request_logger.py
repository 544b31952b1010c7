"""Structured request logger built on structlog.

``RequestLogger`` is a structlog wrapper class with one method per severity
level (trace, debug, info, warn, error). Child loggers come from ``bind`` and
are new values sharing the parent's sink and processor chain, so binding
request fields never leaks into the server-wide logger.
"""

from __future__ import annotations

import sys
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, TextIO

import structlog
from structlog.types import EventDict, WrappedLogger

from serverlog.infrastructure.logging.serializers import Serializer
from serverlog.models.levels import Level


class LevelFilter:
    """Drop records below a minimum level."""

    def __init__(self, min_level: Level) -> None:
        self.min_level = min_level

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        if Level.parse(method_name) < self.min_level:
            raise structlog.DropEvent
        return event_dict


class SerializeFields:
    """Replace field values by the output of the serializer registered for that key."""

    def __init__(self, serializers: Optional[Mapping[str, Serializer]] = None) -> None:
        self._serializers: Dict[str, Serializer] = dict(serializers or {})

    @property
    def serializers(self) -> Mapping[str, Serializer]:
        return MappingProxyType(self._serializers)

    def replace(self, serializers: Mapping[str, Serializer]) -> None:
        self._serializers = dict(serializers)

    def __call__(self, logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
        for key, serialize in self._serializers.items():
            if key in event_dict:
                event_dict[key] = serialize(event_dict[key])
        return event_dict


def add_level(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["level"] = method_name
    return event_dict


def event_to_msg(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    # records without a message (tagged events) simply carry no "msg"
    if "event" in event_dict:
        event_dict["msg"] = event_dict.pop("event")
    return event_dict


class RequestLogger(structlog.BoundLoggerBase):
    def trace(self, event: Optional[str] = None, **kw: Any) -> Any:
        return self.log(Level.TRACE, event, **kw)

    def debug(self, event: Optional[str] = None, **kw: Any) -> Any:
        return self.log(Level.DEBUG, event, **kw)

    def info(self, event: Optional[str] = None, **kw: Any) -> Any:
        return self.log(Level.INFO, event, **kw)

    def warn(self, event: Optional[str] = None, **kw: Any) -> Any:
        return self.log(Level.WARN, event, **kw)

    warning = warn

    def error(self, event: Optional[str] = None, **kw: Any) -> Any:
        return self.log(Level.ERROR, event, **kw)

    def log(self, level: Level, event: Optional[str] = None, **kw: Any) -> Any:
        if not isinstance(level, Level):
            raise TypeError(f"level must be a Level, got {level!r}")
        try:
            args, kwargs = self._process_event(level.method, event, kw)
        except structlog.DropEvent:
            return None
        return self._logger.msg(*args, **kwargs)

    @property
    def serializers(self) -> Mapping[str, Serializer]:
        stage = self._serializer_stage()
        return stage.serializers if stage else MappingProxyType({})

    def use_serializers(self, serializers: Mapping[str, Serializer]) -> None:
        """Install ``serializers`` as this logger's full serializer map."""
        stage = self._serializer_stage()
        if stage is not None:
            stage.replace(serializers)
            return
        self._processors = [SerializeFields(serializers), *self._processors]

    def _serializer_stage(self) -> Optional[SerializeFields]:
        for proc in self._processors:
            if isinstance(proc, SerializeFields):
                return proc
        return None


def create_request_logger(
    stream: Optional[TextIO] = None,
    *,
    level: Level = Level.INFO,
    serializers: Optional[Mapping[str, Serializer]] = None,
    pretty_print: bool = False,
    name: Optional[str] = None,
) -> RequestLogger:
    processors = [
        LevelFilter(level),
        SerializeFields(serializers),
        add_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]
    if pretty_print:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    else:
        processors += [event_to_msg, structlog.processors.JSONRenderer()]
    context: Dict[str, Any] = {"name": name} if name else {}
    return RequestLogger(structlog.PrintLogger(file=stream or sys.stdout), processors, context)
