"""Tag -> level resolution.

Events carry free-form tags. The level of an event is the level mapped to the
FIRST of its tags that has a mapping, in the order the tags were given. Later
tags are never consulted, even when they map to a higher severity. When no tag
matches, the fallback level is used; a fallback of None suppresses the event.
"""

from __future__ import annotations

from dataclasses import dataclass
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Optional

from serverlog.infrastructure.utils.config import ConfigError
from serverlog.models.levels import Level, parse_optional_level
from serverlog.models.log_models import LogEvent

DEFAULT_TAG_LEVELS: Mapping[str, Level] = MappingProxyType({level.method: level for level in Level})


def build_tag_levels(overrides: Optional[Mapping[str, Any]] = None) -> Mapping[str, Level]:
    """Defaults first, then overrides (override wins per key). Validated as a whole."""
    merged = dict(DEFAULT_TAG_LEVELS)
    merged.update(overrides or {})

    resolved = {}
    invalid = []
    for tag, value in merged.items():
        try:
            resolved[tag] = Level.parse(value)
        except ValueError:
            invalid.append(tag)
    if invalid:
        raise ConfigError(f"invalid tag levels: {', '.join(sorted(map(str, invalid)))}")
    return MappingProxyType(resolved)


def build_fallback(value: Any) -> Optional[Level]:
    try:
        return parse_optional_level(value)
    except ValueError as e:
        raise ConfigError(f"invalid fallback level: {e}") from e


def resolve_level(tag_levels: Mapping[str, Level], fallback: Optional[Level], tags: Iterable[str]) -> Optional[Level]:
    for tag in tags:
        if tag not in tag_levels:
            continue
        level = tag_levels[tag]
        if not isinstance(level, Level):
            raise ConfigError(f"tag {tag!r} maps to invalid level {level!r}")
        return level
    return fallback


def dispatch(logger: Any, level: Optional[Level], tags: Iterable[str], data: Any) -> None:
    if level is None:
        return
    logger.log(level, tags=list(tags), data=data)


@dataclass(frozen=True)
class TagLevelResolver:
    tag_levels: Mapping[str, Level]
    fallback: Optional[Level]

    @classmethod
    def build(cls, overrides: Optional[Mapping[str, Any]] = None, fallback: Any = Level.INFO) -> "TagLevelResolver":
        return cls(tag_levels=build_tag_levels(overrides), fallback=build_fallback(fallback))

    def resolve(self, tags: Iterable[str]) -> Optional[Level]:
        return resolve_level(self.tag_levels, self.fallback, tags)

    def log(self, logger: Any, event: LogEvent) -> Optional[Level]:
        level = self.resolve(event.tags)
        dispatch(logger, level, event.tags, event.data)
        return level
