import logging
from datetime import date
from typing import Any, Dict, Optional, Union

from ..config import TRIGGER_COLUMNS
from ..core.calendar_dates import local_today, to_date
from ..core.exceptions import ConversionError, MissingBirthDate, RecordSuperseded, RecordVanished
from ..core.hebcal_client import HebcalClient
from ..core.models import (
    SYNC_SKIPPED,
    SYNC_SUPERSEDED,
    SYNC_UPDATED,
    SYNC_VANISHED,
    BirthRecord,
    DerivedHebrewFields,
    SyncResult,
)
from ..core.projector import HebrewBirthdayProjector
from ..database.supabase_client import SupabaseClient

logger = logging.getLogger(__name__)

RecordLike = Union[BirthRecord, Dict[str, Any]]


def triggering_fields_changed(previous: BirthRecord, current: BirthRecord) -> bool:
    """Only the birth date and the sunset flag feed the derived fields."""
    return any(getattr(previous, column) != getattr(current, column) for column in TRIGGER_COLUMNS)


class BirthdaySyncService:
    """Keeps the derived Hebrew columns of a birthday in step with its birth date."""

    def __init__(
        self,
        db_client: Optional[SupabaseClient] = None,
        hebcal_client: Optional[HebcalClient] = None,
        projector: Optional[HebrewBirthdayProjector] = None,
    ):
        self.db = db_client or SupabaseClient()
        self.hebcal = hebcal_client or HebcalClient()
        self.projector = projector or HebrewBirthdayProjector(self.hebcal)

    def needs_recompute(self, record: BirthRecord, previous: Optional[BirthRecord] = None) -> bool:
        if record.birth_date_gregorian is None:
            return False
        if previous is None:
            return not record.has_hebrew_data
        if not previous.birth_date_hebrew_string and not record.birth_date_hebrew_string:
            # Never converted, or cleared after a failure: any write retries
            return True
        # Writes that leave both inputs untouched, our own included, never recompute
        return triggering_fields_changed(previous, record)

    def compute_hebrew_fields(
        self,
        record: BirthRecord,
        reference_date: Optional[Union[date, str]] = None,
    ) -> DerivedHebrewFields:
        """
        Resolve the Hebrew birth date and project its upcoming anniversaries.

        The projection starts at the Hebrew year of `reference_date`, so the
        anniversary already behind us this year is filtered out and the next
        one leads the list. Nothing is written here.

        Raises:
            MissingBirthDate: record has no Gregorian birth date
            ConversionError: the converter failed for the birth date or today
        """
        birth_date = record.birth_date_gregorian
        if birth_date is None:
            raise MissingBirthDate(f"Birthday {record.id} has no Gregorian birth date")

        today = to_date(reference_date) or local_today()
        hebrew = self.hebcal.gregorian_to_hebrew(birth_date, after_sunset=record.after_sunset)
        anchor_year = self.hebcal.current_hebrew_year(today)

        occurrences = self.projector.project_future_occurrences(
            anchor_year,
            hebrew.hebrew_month,
            hebrew.hebrew_day,
            reference_date=today,
        )
        return DerivedHebrewFields(birth_date=birth_date, hebrew=hebrew, occurrences=occurrences)

    def synchronize(
        self,
        record: RecordLike,
        previous: Optional[RecordLike] = None,
        reference_date: Optional[Union[date, str]] = None,
    ) -> SyncResult:
        """
        Recompute and store the derived fields when the record is stale.

        Args:
            record: Row as it is now
            previous: Row before the write that triggered us; None for an insert
            reference_date: "Today" for the projection; defaults to the calendar timezone

        Returns:
            SyncResult with status skipped, updated, vanished or superseded
        """
        record = BirthRecord.coerce(record)
        previous_record = BirthRecord.coerce(previous) if previous is not None else None

        if not self.needs_recompute(record, previous_record):
            logger.debug("Birthday %s is up to date, skipping", record.id)
            return SyncResult(status=SYNC_SKIPPED, record_id=record.id)

        logger.info(
            "Recomputing Hebrew dates for birthday %s (%s, after_sunset=%s)",
            record.id,
            record.birth_date_gregorian,
            record.after_sunset,
        )
        try:
            fields = self.compute_hebrew_fields(record, reference_date)
        except ConversionError:
            if previous_record is not None:
                self._invalidate(record)
            raise

        return self._persist(record, fields)

    def refresh(
        self,
        record: RecordLike,
        reference_date: Optional[Union[date, str]] = None,
    ) -> SyncResult:
        """Recompute unconditionally (on-demand refresh and backfill)."""
        record = BirthRecord.coerce(record)
        fields = self.compute_hebrew_fields(record, reference_date)
        return self._persist(record, fields)

    def _persist(self, record: BirthRecord, fields: DerivedHebrewFields) -> SyncResult:
        record_id = record.id
        try:
            self.db.update_birthday_fields(record_id, fields.to_row(), expected=record.trigger_values())
        except RecordSuperseded:
            logger.info("Birthday %s was edited while its Hebrew dates were computed; newer sync wins", record_id)
            return SyncResult(status=SYNC_SUPERSEDED, record_id=record_id)
        except RecordVanished:
            logger.info("Birthday %s was deleted before its Hebrew dates were saved", record_id)
            return SyncResult(status=SYNC_VANISHED, record_id=record_id)

        upcoming = fields.next_occurrence
        logger.info(
            "Saved Hebrew dates for birthday %s: %s, next %s (%d upcoming)",
            record_id,
            fields.hebrew.hebrew_date_string,
            upcoming.gregorian if upcoming else None,
            len(fields.occurrences),
        )
        return SyncResult(status=SYNC_UPDATED, record_id=record_id, fields=fields)

    def _invalidate(self, record: BirthRecord) -> None:
        # Derived values computed from the old birth date must not outlive it
        has_derived = bool(
            record.birth_date_hebrew_string
            or record.has_hebrew_components
            or record.next_upcoming_hebrew_birthday
            or record.future_hebrew_birthdays
        )
        if not has_derived:
            return
        try:
            self.db.clear_birthday_hebrew_fields(record.id, expected=record.trigger_values())
            logger.warning("Cleared stale Hebrew dates for birthday %s after a failed recompute", record.id)
        except RecordSuperseded:
            logger.info("Birthday %s was edited again; leaving its Hebrew dates to the newer sync", record.id)
        except RecordVanished:
            logger.info("Birthday %s vanished while clearing stale Hebrew dates", record.id)
        except Exception:  # noqa: BLE001
            logger.exception("Failed to clear stale Hebrew dates for birthday %s", record.id)
