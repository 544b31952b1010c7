import io
import json
from typing import Any, Dict, List

import pytest

from serverlog.api.server import Server
from serverlog.services.binder.logger_plugin import register


def read_records(stream: io.StringIO) -> List[Dict[str, Any]]:
    """Parse every JSON line written to the sink so far."""
    return [json.loads(line) for line in stream.getvalue().splitlines() if line.strip()]


@pytest.fixture
def sink() -> io.StringIO:
    return io.StringIO()


@pytest.fixture
def server() -> Server:
    return Server(host="127.0.0.1", port=3000)


@pytest.fixture
def bound_server(server, sink):
    """Server with the logger plugin registered at trace level, writing to ``sink``."""

    def _bind(**options: Any) -> Server:
        options.setdefault("stream", sink)
        options.setdefault("level", "trace")
        register(server, options)
        return server

    return _bind
