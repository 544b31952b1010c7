"""Event and instrumentation models."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, Iterable, Optional, Tuple, Union

TagsInput = Union[str, Iterable[str], None]


def normalize_tags(tags: TagsInput) -> Tuple[str, ...]:
    if tags is None:
        return ()
    if isinstance(tags, str):
        return (tags,)
    return tuple(tags)


@dataclass(frozen=True)
class LogEvent:
    tags: Tuple[str, ...]
    data: Any = None

    @classmethod
    def of(cls, tags: TagsInput, data: Any = None) -> "LogEvent":
        return cls(tags=normalize_tags(tags), data=data)


@dataclass
class RequestInfo:
    id: str
    received: Optional[float] = None   # ms, monotonic clock
    responded: Optional[float] = None  # ms, monotonic clock


@dataclass(frozen=True)
class ResponseInfo:
    """The response as it went out on the wire (status line and headers)."""

    status_code: int
    headers: Dict[str, str] = field(default_factory=dict)


@dataclass
class ServerInfo:
    id: str
    created: int                       # epoch ms
    host: str
    port: int
    protocol: str = "http"
    started: int = 0                   # epoch ms, 0 until started
    uri: str = field(default="")

    def __post_init__(self) -> None:
        if not self.uri:
            self.uri = f"{self.protocol}://{self.host}:{self.port}"

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)
