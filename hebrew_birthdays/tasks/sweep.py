"""Daily advance of `next_upcoming_hebrew_birthday` pointers."""

from __future__ import annotations

import logging
import time
from datetime import date
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from ..core.calendar_dates import local_today, to_date
from ..core.hebcal_client import HebcalClient
from ..core.models import BirthRecord, HebrewOccurrence
from ..core.projector import HebrewBirthdayProjector
from ..database.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)


def _pointer_update(record: BirthRecord, occurrences: List[HebrewOccurrence]) -> Dict[str, Any]:
    ordered = sorted(occurrences, key=lambda occurrence: occurrence.gregorian)
    return {
        "id": record.id,
        # An edit to either input between read and commit voids this update
        "expected": record.trigger_values(),
        "next_upcoming_hebrew_birthday": ordered[0].gregorian.isoformat(),
        "next_upcoming_hebrew_year": ordered[0].hebrew_year,
        "future_hebrew_birthdays": [occurrence.to_row() for occurrence in ordered],
    }


class HebrewBirthdaySweep:
    """Move lapsed pointers forward, re-projecting only when the cached list ran out."""

    def __init__(
        self,
        db_client: Optional[SupabaseClient] = None,
        projector: Optional[HebrewBirthdayProjector] = None,
        hebcal_client: Optional[HebcalClient] = None,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.db = db_client or SupabaseClient()
        self.projector = projector or HebrewBirthdayProjector(hebcal_client or HebcalClient())
        self.logger = logger or logging.getLogger(f"{__name__}.hebrew_sweep")
        self.stats: Dict[str, int] = {}

    def sweep(self, reference_date: Optional[Union[date, str]] = None, dry_run: bool = False) -> int:
        """
        Advance every active birthday whose next Hebrew birthday is unset or past.

        Updates are collected and committed in one atomic batch at the end. A
        record that cannot be advanced is logged and left as it is.

        Args:
            reference_date: Sweep day; defaults to today in the calendar timezone
            dry_run: Collect updates without committing them

        Returns:
            Number of records updated (or that would be, for a dry run)
        """
        today = to_date(reference_date) or local_today()
        started_at = time.time()
        self.stats = {"scanned": 0, "advanced": 0, "reprojected": 0, "skipped": 0, "errors": 0}

        rows = self.db.list_birthdays_due_for_advance(today)
        self.logger.info("Starting Hebrew birthday sweep | date=%s | due=%d | dry_run=%s", today, len(rows), dry_run)

        updates: List[Dict[str, Any]] = []
        for row in rows:
            self.stats["scanned"] += 1
            try:
                record = BirthRecord.coerce(row)
            except ValidationError as exc:
                self.stats["errors"] += 1
                self.logger.warning("Skipping unreadable birthday row %s: %s", row.get("id"), exc)
                continue

            try:
                update = self._advance(record, today)
            except Exception as exc:  # noqa: BLE001
                self.stats["errors"] += 1
                self.logger.warning("Could not advance birthday %s: %s", record.id, exc)
                continue

            if update is None:
                self.stats["skipped"] += 1
            else:
                updates.append(update)

        if dry_run:
            committed = len(updates)
            self.logger.info("Dry run: %d updates collected, nothing committed", committed)
        else:
            committed = self.db.commit_birthday_batch(updates) if updates else 0

        self.logger.info(
            "Finished | scanned=%s | advanced=%s | reprojected=%s | skipped=%s | errors=%s | committed=%s | runtime=%.1fs",
            self.stats["scanned"],
            self.stats["advanced"],
            self.stats["reprojected"],
            self.stats["skipped"],
            self.stats["errors"],
            committed,
            time.time() - started_at,
        )
        return committed

    def _advance(self, record: BirthRecord, today: date) -> Optional[Dict[str, Any]]:
        upcoming = [occurrence for occurrence in record.future_hebrew_birthdays if occurrence.gregorian >= today]
        if upcoming:
            self.stats["advanced"] += 1
            return _pointer_update(record, upcoming)

        if not record.has_hebrew_components:
            self.logger.debug("Birthday %s has no Hebrew date yet; nothing to advance", record.id)
            return None

        anchor_year = self._anchor_year(record)
        occurrences = self.projector.project_future_occurrences(
            anchor_year,
            record.birth_date_hebrew_month,
            record.birth_date_hebrew_day,
            reference_date=today,
        )
        if not occurrences:
            self.logger.warning(
                "Re-projection from %s yielded nothing for birthday %s; leaving it unchanged",
                anchor_year,
                record.id,
            )
            return None

        self.stats["reprojected"] += 1
        return _pointer_update(record, occurrences)

    @staticmethod
    def _anchor_year(record: BirthRecord) -> int:
        """Latest Hebrew year the record already knows about, else its birth year."""
        known = [occurrence.hebrew_year for occurrence in record.future_hebrew_birthdays if occurrence.hebrew_year]
        if record.next_upcoming_hebrew_year:
            known.append(record.next_upcoming_hebrew_year)
        return max(known) if known else record.birth_date_hebrew_year


def run_hebrew_sweep(
    *,
    reference_date: Optional[Union[date, str]] = None,
    dry_run: bool = False,
    logger: Optional[logging.Logger] = None,
) -> int:
    """Run one sweep with default clients (scheduler and CLI entry point)."""
    return HebrewBirthdaySweep(logger=logger).sweep(reference_date=reference_date, dry_run=dry_run)
