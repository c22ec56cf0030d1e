#!/usr/bin/env python
"""Run the Hebrew birthday sweep once.

Usage:
    python scripts/run_sweep.py [--date YYYY-MM-DD] [--dry-run]

Advances every lapsed `next_upcoming_hebrew_birthday` exactly as the daily
scheduled job does, then prints a summary.
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from rich.console import Console
from rich.table import Table

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from hebrew_birthdays.core.calendar_dates import local_today, to_date  # noqa: E402
from hebrew_birthdays.tasks.sweep import HebrewBirthdaySweep  # noqa: E402

logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("run_sweep")

console = Console()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    parser.add_argument("--date", help="Reference date (YYYY-MM-DD); defaults to today in the calendar timezone")
    parser.add_argument("--dry-run", action="store_true", help="Collect updates without committing them")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    try:
        reference_date = to_date(args.date) or local_today()
    except ValueError:
        console.print(f"[red]Invalid --date value: {args.date}[/red]")
        return 2

    sweep = HebrewBirthdaySweep(logger=logger)
    try:
        updated = sweep.sweep(reference_date=reference_date, dry_run=args.dry_run)
    except Exception:  # noqa: BLE001
        logger.exception("Sweep failed")
        return 1

    table = Table(title=f"Hebrew birthday sweep {reference_date}", header_style="bold magenta")
    table.add_column("metric")
    table.add_column("value", justify="right")
    for key, value in sweep.stats.items():
        table.add_row(key, str(value))
    table.add_row("dry run" if args.dry_run else "committed", str(updated))
    console.print(table)
    return 0


if __name__ == "__main__":
    sys.exit(main())
