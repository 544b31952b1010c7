"""Severity levels.

Five levels with a fixed total order: trace < debug < info < warn < error.
The lowercase name of each level is also the name of the logger method that
emits at that level.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, Optional


class Level(IntEnum):
    TRACE = 10
    DEBUG = 20
    INFO = 30
    WARN = 40
    ERROR = 50

    @property
    def method(self) -> str:
        return self.name.lower()

    def __str__(self) -> str:
        return self.method

    @classmethod
    def parse(cls, value: Any) -> "Level":
        """Parse a level from a Level or a level name (case-insensitive)."""
        if isinstance(value, Level):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Invalid level: {value!r}. Must be one of {LEVEL_NAMES}")
        name = value.strip().lower()
        name = _ALIASES.get(name, name)
        try:
            return cls[name.upper()]
        except KeyError:
            raise ValueError(f"Invalid level: {value!r}. Must be one of {LEVEL_NAMES}") from None


LEVEL_NAMES = tuple(level.method for level in Level)

_ALIASES = {"warning": "warn"}


def parse_optional_level(value: Any) -> Optional[Level]:
    """Like Level.parse, but None and "none" mean no level at all."""
    if value is None:
        return None
    if isinstance(value, str) and value.strip().lower() == "none":
        return None
    return Level.parse(value)
