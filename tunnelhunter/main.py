#!/usr/bin/env python3
"""
TunnelHunter - enumerate short tunnel hostnames and snapshot the live ones.

Usage:
    python -m tunnelhunter [--start N] [--step N] [--random] [--threads N]
    tunnelhunter --help
"""

import argparse
import logging
import signal
import sys
import threading
from typing import List, Optional

from . import __version__
from .core.config import ScannerConfig
from .core.errors import ConfigError, EgressDiscoveryError
from .core.utils import setup_logging
from .orchestrator import ScanOrchestrator

EXIT_OK = 0
EXIT_CONFIG = 1
EXIT_ENVIRONMENT = 2


def _uint(value: str) -> int:
    number = int(value, 0)
    if number < 0:
        raise argparse.ArgumentTypeError(f"expected a non-negative integer, got {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tunnelhunter",
        description="Probe <hex>.<domain> tunnel hostnames and render the live ones.",
    )
    parser.add_argument("--start", type=_uint, default=None,
                        help="Begin scanning from this candidate (default 0)")
    parser.add_argument("--step", type=_uint, default=None,
                        help="Advance this much each time; used for distributed execution (default 1)")
    parser.add_argument("--random", dest="randomize", action="store_true", default=None,
                        help="Randomize the start candidate")
    parser.add_argument("--threads", type=_uint, default=None,
                        help="Probe threads per egress address (default 1)")
    parser.add_argument("--limit", type=_uint, default=None,
                        help="Stop after this many candidates")
    parser.add_argument("--no-egress", dest="egress_enabled", action="store_false", default=None,
                        help="Use the default route instead of binding to each public address")
    parser.add_argument("--no-render", dest="render_enabled", action="store_false", default=None,
                        help="Only probe; do not run the renderer on live hosts")
    parser.add_argument("--signatures", dest="signatures_file", default=None,
                        help="YAML file with the response classification table")
    parser.add_argument("--env-file", default=None, help="KEY=VALUE settings file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log per-probe errors")
    parser.add_argument("--version", action="version", version=f"TunnelHunter {__version__}")
    return parser


def load_config(args: argparse.Namespace) -> ScannerConfig:
    config = ScannerConfig(env_file=args.env_file)
    config.update({
        "start": args.start,
        "step": args.step,
        "randomize": args.randomize,
        "threads": args.threads,
        "limit": args.limit,
        "egress_enabled": args.egress_enabled,
        "render_enabled": args.render_enabled,
        "signatures_file": args.signatures_file,
    })
    return config


def install_signal_handlers(stop_event: threading.Event):
    """Turn SIGINT/SIGTERM into a graceful stop request."""
    logger = logging.getLogger(__name__)

    def _handler(signum, frame):
        if stop_event.is_set():
            logger.warning("Second interrupt, exiting immediately")
            sys.exit(130)
        logger.info(f"Received signal {signum}, finishing in-flight work...")
        stop_event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point; returns the process exit status."""
    args = build_parser().parse_args(argv)
    config = load_config(args)
    setup_logging(config.get("log_file"), verbose=args.verbose)
    logger = logging.getLogger(__name__)

    errors = config.validate()
    if errors:
        logger.error("Configuration errors found:")
        for error in errors:
            logger.error(f"  - {error}")
        return EXIT_CONFIG

    stop_event = threading.Event()
    install_signal_handlers(stop_event)

    try:
        orchestrator = ScanOrchestrator(config, stop_event=stop_event, status_stream=sys.stderr)
        summary = orchestrator.run()
    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_CONFIG
    except EgressDiscoveryError as e:
        logger.critical(str(e))
        return EXIT_ENVIRONMENT

    if summary.interrupted:
        logger.info(f"Interrupted; resume with --start {summary.start} after "
                    f"{summary.produced} candidates at step {summary.step}")
    return EXIT_OK


def run():
    sys.exit(main())


if __name__ == "__main__":
    run()
