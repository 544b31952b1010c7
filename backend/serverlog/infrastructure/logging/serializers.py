"""Standard field serializers for requests, responses and errors.

A serializer turns the raw object stored under a field into plain,
JSON-friendly data. They run at emission time, so a child logger bound with
``req=request`` carries the request itself, not a snapshot.
"""

from __future__ import annotations

import traceback
from typing import Any, Callable, Dict

Serializer = Callable[[Any], Any]
JsonDict = Dict[str, Any]


def as_request_value(request: Any) -> JsonDict:
    client = getattr(request, "client", None)
    state = getattr(request, "state", None)
    return {
        "id": getattr(state, "id", None),
        "method": request.method,
        "url": str(request.url),
        "headers": dict(request.headers),
        "remoteAddress": client.host if client else None,
        "remotePort": client.port if client else None,
    }


def as_response_value(response: Any) -> JsonDict:
    if response is None:
        return {"statusCode": None, "headers": {}}
    return {
        "statusCode": response.status_code,
        "headers": dict(response.headers),
    }


def as_error_value(err: Any) -> Any:
    if not isinstance(err, BaseException):
        return err
    return {
        "type": type(err).__name__,
        "message": str(err),
        "stack": "".join(traceback.format_exception(type(err), err, err.__traceback__)),
    }


def standard_serializers() -> Dict[str, Serializer]:
    return {
        "req": as_request_value,
        "res": as_response_value,
        "err": as_error_value,
    }
