"""Fill in Hebrew dates for birthdays that never got them."""

from __future__ import annotations

import logging
import time
from typing import Dict, Optional

from ..core.exceptions import HebrewBirthdayError
from ..core.models import BirthRecord
from ..database.supabase_client import SupabaseClient
from ..services.sync_service import BirthdaySyncService


def backfill_hebrew_dates(
    *,
    limit: Optional[int] = None,
    throttle: float = 0.35,
    dry_run: bool = False,
    db_client: Optional[SupabaseClient] = None,
    sync_service: Optional[BirthdaySyncService] = None,
    logger: Optional[logging.Logger] = None,
) -> Dict[str, int]:
    """Recompute every active birthday missing its Hebrew string or next upcoming date."""

    log = logger or logging.getLogger(f"{__name__}.backfill_hebrew_dates")
    db = db_client or SupabaseClient()
    service = sync_service or BirthdaySyncService(db_client=db)

    stats = {"total": 0, "updated": 0, "vanished": 0, "superseded": 0, "dry_run": 0, "errors": 0}
    rows = db.list_birthdays_missing_hebrew_data()
    if limit is not None:
        rows = rows[: max(0, limit)]

    log.info("Starting Hebrew date backfill | candidates=%s | throttle=%.2fs | dry_run=%s", len(rows), throttle, dry_run)
    started_at = time.time()

    for index, row in enumerate(rows):
        stats["total"] += 1
        record_id = row.get("id")
        if dry_run:
            stats["dry_run"] += 1
            log.info("[dry-run] Would refresh birthday %s (%s)", record_id, row.get("birth_date_gregorian"))
            continue

        try:
            result = service.refresh(BirthRecord.coerce(row))
        except HebrewBirthdayError as exc:
            stats["errors"] += 1
            log.warning("Backfill failed for birthday %s: %s", record_id, exc)
        except Exception:  # noqa: BLE001
            stats["errors"] += 1
            log.exception("Unexpected error backfilling birthday %s", record_id)
        else:
            stats[result.status] += 1

        if throttle > 0 and index < len(rows) - 1:
            time.sleep(throttle)

    log.info(
        "Finished | total=%s | updated=%s | vanished=%s | superseded=%s | errors=%s | runtime=%.1fs",
        stats["total"],
        stats["updated"],
        stats["vanished"],
        stats["superseded"],
        stats["errors"],
        time.time() - started_at,
    )
    return stats
