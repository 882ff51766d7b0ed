#!/usr/bin/env python3
"""Main entrypoint — wires all components and runs the reconciliation loop.

Usage::

    # Periodic loop until SIGINT/SIGTERM
    python scripts/run.py

    # One cycle, exit 0 (healthy / fixed) or 1 (problems remain); for cron
    python scripts/run.py --once

    # Custom config file, log level override
    python scripts/run.py --config config/settings.yaml --log-level DEBUG

Exit code 2 means the configuration was rejected and nothing ran.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
import sys

import structlog

from fleetwatch.core.config import load_settings
from fleetwatch.core.exceptions import ConfigurationError
from fleetwatch.core.logging import setup_logging
from fleetwatch.engine.factory import build_engine

logger = structlog.get_logger(__name__)


async def run(args: argparse.Namespace) -> int:
    """Build the engine, then run one cycle or loop until interrupted."""
    try:
        settings = load_settings(args.config)
        setup_logging(level=args.log_level, fmt=args.log_format)
        engine = build_engine(settings, persist_timers=args.once)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    if not len(engine.registry):
        logger.warning("no_targets_configured")

    try:
        if args.once:
            report = await engine.loop.run_cycle()
            return report.exit_code

        logger.info("fleetwatch_running", targets=len(engine.registry), interval_secs=settings.loop.interval_secs)

        # ── Wait for shutdown signal ─────────────────────────────────
        stop_event = asyncio.Event()

        def _signal_handler() -> None:
            logger.info("shutdown_signal_received")
            stop_event.set()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, _signal_handler)
            except NotImplementedError:
                # Windows: signal handlers not supported on ProactorEventLoop
                pass

        try:
            await engine.loop.run_forever(stop_event)
        except KeyboardInterrupt:
            logger.info("keyboard_interrupt")
        return 0
    finally:
        # ── Graceful shutdown ────────────────────────────────────────
        await engine.close()
        logger.info("fleetwatch_stopped", cycles=engine.loop.cycles)


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Monitor the configured fleet and remediate sustained failures.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single cycle and exit with its result code (cron mode)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    parser.add_argument(
        "--log-format",
        default=None,
        choices=["json", "console"],
        help="Log renderer override",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
