#!/usr/bin/env python3
"""Operator remediation — preview, confirm, then run one strategy now.

Usage::

    # Use each target's configured strategy, with a y/N prompt
    python scripts/remediate.py worker-1 worker-2

    # Force a strategy, skip the prompt
    python scripts/remediate.py worker-1 worker-2 --strategy parallel_force --yes

Exit code is 0 when the remediation succeeded (or had nothing to do), 1 when
it failed or was declined, 2 on a configuration or usage error.
"""

from __future__ import annotations

import argparse
import asyncio
import sys

from fleetwatch.core.config import load_settings
from fleetwatch.core.exceptions import ConfigurationError
from fleetwatch.core.logging import setup_logging
from fleetwatch.core.types import RemediationOutcome, RemediationPreview, RemediationStrategy
from fleetwatch.engine.factory import build_engine
from fleetwatch.remediation.exceptions import RemediationError
from fleetwatch.targets.exceptions import TargetNotFoundError


async def _ask(preview: RemediationPreview) -> bool:
    print(f"Strategy: {preview.strategy.value}")
    print(f"Targets:  {', '.join(preview.target_ids)}")
    if preview.service:
        print(f"Service:  {preview.service}")
    print(f"Action:   {preview.description}")
    answer = await asyncio.to_thread(input, "Proceed? [y/N] ")
    return answer.strip().lower() in ("y", "yes")


async def run(args: argparse.Namespace) -> int:
    try:
        settings = load_settings(args.config)
        setup_logging(level=args.log_level or "INFO", fmt="console")
        engine = build_engine(settings)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    strategy = RemediationStrategy(args.strategy) if args.strategy else None
    try:
        result = await engine.loop.remediate(
            args.targets,
            strategy=strategy,
            confirm=None if args.yes else _ask,
        )
    except (TargetNotFoundError, RemediationError) as exc:
        print(f"Cannot remediate: {exc}", file=sys.stderr)
        return 2
    finally:
        await engine.close()

    if result.cancelled:
        print("Cancelled.")
        return 1
    if result.noop:
        print(result.detail or "Nothing to do.")
        return 0
    for o in result.outcomes:
        mark = "OK" if o.outcome == RemediationOutcome.SUCCESS else o.outcome.value.upper()
        print(f"  {o.target_id:<30} {mark:<10} {o.elapsed_secs:6.1f}s  {o.detail}")
    return 0 if result.succeeded else 1


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Remediate one or more targets now, after confirmation.",
    )
    parser.add_argument("targets", nargs="+", help="Target ids to remediate, in order")
    parser.add_argument(
        "--strategy",
        default=None,
        choices=[s.value for s in RemediationStrategy],
        help="Override the configured strategy",
    )
    parser.add_argument(
        "--yes",
        action="store_true",
        help="Skip the confirmation prompt",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level override: DEBUG, INFO, WARNING, ERROR",
    )
    args = parser.parse_args()

    code = asyncio.run(run(args))
    sys.exit(code)


if __name__ == "__main__":
    main()
