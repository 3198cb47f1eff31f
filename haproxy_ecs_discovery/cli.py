"""Command-line entry point: load config, build watchers, then validate, poll once or run."""

from __future__ import annotations

import argparse
import json
import logging
import sys

from .config import AppConfig, load_config
from .daemon import Daemon
from .exceptions import ConfigError, DiscoveryError
from .logging_config import configure_logging

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_ERROR = 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="haproxy-ecs-discovery",
        description="Publish the host/port endpoints of running Amazon ECS tasks as HAProxy backends",
    )
    parser.add_argument("-c", "--config", required=True, help="Path to the YAML configuration file")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "--validate",
        action="store_true",
        help="Check the configuration and every service's discovery block, then exit",
    )
    mode.add_argument(
        "--once",
        action="store_true",
        help="Poll every service once on this thread and exit",
    )
    parser.add_argument(
        "--print-backends",
        action="store_true",
        help="With --once, write the resulting backend table to stdout as JSON",
    )
    parser.add_argument(
        "--log-level",
        choices=("DEBUG", "INFO", "WARNING", "ERROR"),
        help="Override logging.level from the configuration file",
    )
    return parser


def _load(path: str) -> AppConfig | None:
    # Logging is not configured yet, so config problems go straight to stderr
    try:
        return load_config(path)
    except ConfigError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return None


def _poll_once(daemon: Daemon, print_backends: bool) -> None:
    logger.info("Polling %d services once (--once)", len(daemon.watchers))
    daemon.run_once()
    if print_backends:
        json.dump(daemon.backends().as_dict(), sys.stdout, indent=2, sort_keys=True)
        sys.stdout.write("\n")


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    config = _load(args.config)
    if config is None:
        return EXIT_ERROR
    configure_logging(config.logging, level=args.log_level)

    try:
        daemon = Daemon(config)
        if args.validate:
            logger.info("Configuration is valid (%s)", ", ".join(w.name for w in daemon.watchers))
        elif args.once:
            _poll_once(daemon, args.print_backends)
        else:
            daemon.run()
    except ConfigError as exc:
        logger.error("Configuration error: %s", exc)
        return EXIT_ERROR
    except DiscoveryError as exc:
        logger.error("Discovery failed: %s", exc, extra={"operation": getattr(exc, "operation", None)})
        return EXIT_ERROR
    except KeyboardInterrupt:
        logger.info("Interrupted")
    return EXIT_OK
