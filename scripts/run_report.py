#!/usr/bin/env python3
"""CLI entry point for property CVR reports.

Usage:
    # Monthly report over the last 12 months
    PYTHONPATH=. python scripts/run_report.py monthly

    # Quarterly report over the last 24 months
    PYTHONPATH=. python scripts/run_report.py quarterly --months 24

    # Full historical window written to SQLite
    PYTHONPATH=. python scripts/run_report.py all --sink sqlite
"""
import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Optional

sys.path.insert(0, str(Path(__file__).parent.parent))

from src.propmetrics_core.config import load_run_config
from src.propmetrics_core.exceptions import PropMetricsError
from src.propmetrics_core.reporting.service import PERIOD_SELECTORS, run_report


logger = logging.getLogger("run_report")


def setup_logging(verbose: bool = False) -> None:
    """Configure logging."""
    level = logging.DEBUG if verbose else logging.INFO

    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


async def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(description="PropMetrics property CVR report")
    parser.add_argument(
        "command",
        nargs="?",
        default="monthly",
        choices=sorted(PERIOD_SELECTORS),
        help="Period selector (default: monthly)",
    )
    parser.add_argument(
        "--months",
        type=int,
        help="Lookback length in months. Defaults to REPORT_MONTHS (12).",
    )
    parser.add_argument(
        "--sink",
        choices=["sheets", "sqlite"],
        help="Override REPORT_SINK",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)

    setup_logging(args.verbose)

    try:
        env = dict(os.environ)
        if args.sink:
            env["REPORT_SINK"] = args.sink
        config = load_run_config(env)
        result = await run_report(config, args.command, args.months)
    except PropMetricsError as exc:
        logger.error("Report process failed: %s", exc)
        return 1

    logger.info("%s (%s)", result.message, result.timestamp)
    for skipped in result.skipped_sources:
        logger.warning(
            "Skipped %s for %s: %s", skipped.dimension, skipped.source_name, skipped.error
        )
    return 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
