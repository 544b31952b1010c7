"""Entrypoint.

Usage:
  python -m serverlog.app.main api               # run the demo server with uvicorn
  python -m serverlog.app.main check             # validate config, print the tag -> level map
  python -m serverlog.app.main check -c my.yaml
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Optional, Sequence

import uvicorn

from serverlog.infrastructure.logging.logging import configure_logging, get_logger
from serverlog.infrastructure.utils.config import ConfigError, reload_config
from serverlog.services.tagging.tag_resolver import TagLevelResolver


def check(config_path: Optional[Path]) -> int:
    try:
        settings = reload_config(config_path)
        resolver = TagLevelResolver.build(settings.logger.tags, settings.logger.all_tags)
    except (ConfigError, FileNotFoundError) as e:
        print(f"invalid configuration: {e}", file=sys.stderr)
        return 1

    report = {
        "level": settings.logger.level,
        "tags": {tag: str(level) for tag, level in resolver.tag_levels.items()},
        "fallback": str(resolver.fallback) if resolver.fallback else None,
    }
    print(json.dumps(report, indent=2, sort_keys=True))
    return 0


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = argparse.ArgumentParser("serverlog")
    parser.add_argument("command", choices=["api", "check"], help="What to run")
    parser.add_argument("-c", "--config", type=Path, default=None, help="YAML config file")
    args = parser.parse_args(argv)

    if args.command == "check":
        return check(args.config)

    try:
        settings = reload_config(args.config)
    except (ConfigError, FileNotFoundError) as e:
        print(f"invalid configuration: {e}", file=sys.stderr)
        return 1

    configure_logging(settings.log_level, pretty=settings.logger.pretty_print)
    get_logger("main").info("starting_api", host=settings.api.host, port=settings.api.port)
    uvicorn.run(
        "serverlog.controllers.api_controller:create_app",
        factory=True,
        host=settings.api.host,
        port=settings.api.port,
        reload=False,
        log_level=settings.log_level.lower(),
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
