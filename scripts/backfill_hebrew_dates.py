#!/usr/bin/env python
"""
Compute Hebrew dates for every active birthday that is missing them
(never synced, or cleared after a failed recompute).
"""

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from hebrew_birthdays.tasks.backfill import backfill_hebrew_dates


logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s %(message)s")
logger = logging.getLogger("backfill_hebrew_dates")

console = Console()


def main() -> None:
    parser = argparse.ArgumentParser(description="Backfill missing Hebrew birthday data")
    parser.add_argument("--limit", type=int, default=None, help="Process at most this many birthdays")
    parser.add_argument(
        "--throttle",
        type=float,
        default=0.35,
        help="Seconds to sleep between birthdays (each costs up to 12 Hebcal calls)",
    )
    parser.add_argument("--dry-run", action="store_true", help="List candidates without writing")
    args = parser.parse_args()

    stats = backfill_hebrew_dates(
        limit=args.limit,
        throttle=max(0.0, args.throttle),
        dry_run=args.dry_run,
        logger=logger,
    )

    table = Table(title="Hebrew date backfill", header_style="bold green")
    table.add_column("metric")
    table.add_column("count", justify="right")
    for key, value in stats.items():
        table.add_row(key, str(value))
    console.print(table)

    if stats["errors"]:
        sys.exit(1)


if __name__ == "__main__":
    main()
