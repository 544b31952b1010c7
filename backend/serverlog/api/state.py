# serverlog/api/state.py
from __future__ import annotations

from starlette.requests import Request

from serverlog.infrastructure.logging.request_logger import RequestLogger


def get_request_logger(request: Request) -> RequestLogger:
    """Request-scoped logger bound by the onRequest hook. Works as a FastAPI dependency."""
    logger = getattr(request.state, "logger", None)
    if logger is None:
        raise RuntimeError("Request logger not initialized. Register the logger plugin on the server first.")
    return logger
