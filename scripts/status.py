#!/usr/bin/env python3
"""Fleet status — probe every target once and print a status table.

No remediation is attempted and no alert is sent.

Usage::

    python scripts/status.py
    python scripts/status.py --json
    python scripts/status.py --target elasticsearch --target worker-1

Exit code is 0 when every target is healthy (or degraded), 1 otherwise,
2 on a configuration error.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from fleetwatch.core.config import load_settings
from fleetwatch.core.exceptions import ConfigurationError
from fleetwatch.core.logging import setup_logging
from fleetwatch.engine.factory import build_engine
from fleetwatch.monitor.report import StatusReport
from fleetwatch.targets.exceptions import TargetNotFoundError


class C:
    """ANSI color/style codes."""
    RESET  = "\033[0m"
    BOLD   = "\033[1m"
    GREEN  = "\033[92m"
    RED    = "\033[91m"
    YELLOW = "\033[93m"
    GREY   = "\033[90m"


_HEALTH_COLOR = {
    "healthy": C.GREEN,
    "degraded": C.YELLOW,
    "critical": C.RED,
    "unknown": C.GREY,
}


def _colorize(report: StatusReport, text: str) -> str:
    lines = text.splitlines()
    out = [f"{C.BOLD}{lines[0]}{C.RESET}", *lines[1:2]]
    rows = iter(report.rows)
    for line in lines[2:]:
        if line.startswith("    ") or not line:
            out.append(line)
            continue
        row = next(rows, None)
        if row is None:
            out.append(line)
            continue
        out.append(f"{_HEALTH_COLOR.get(row.health, '')}{line}{C.RESET}")
    return "\n".join(out)


async def run(args: argparse.Namespace) -> int:
    try:
        settings = load_settings(args.config)
        setup_logging(level=args.log_level or "WARNING", fmt="console")
        engine = build_engine(settings)
    except ConfigurationError as exc:
        print(f"Configuration error: {exc}", file=sys.stderr)
        return 2

    try:
        try:
            targets = [engine.registry.get(t) for t in args.target] if args.target else engine.registry.list()
        except TargetNotFoundError as exc:
            print(f"Unknown target: {exc}", file=sys.stderr)
            return 2
        samples = await engine.probe_engine.probe_all(targets)
        report = StatusReport.build(targets, samples)
    finally:
        await engine.close()

    if args.json:
        print(json.dumps({"generated_at": report.generated_at, "rows": report.to_dicts()}, indent=2))
    else:
        text = report.render_text()
        print(_colorize(report, text) if sys.stdout.isatty() else text)
    return 0 if report.all_healthy else 1


def main() -> None:
    parser = argparse.ArgumentParser(
        description="Probe every configured target once and print its status.",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings YAML (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--target",
        action="append",
        default=[],
        help="Only probe this target id (repeatable)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print rows as JSON instead of a table",
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
