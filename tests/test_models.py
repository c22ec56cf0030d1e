from datetime import date
from pathlib import Path
import re
import sys

import pytest
from pydantic import ValidationError

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from hebrew_birthdays.config import HEBREW_COLUMNS
from hebrew_birthdays.core.calendar_dates import to_date
from hebrew_birthdays.core.models import BirthRecord, DerivedHebrewFields, HebrewOccurrence

from birthday_stubs import ADAR_19_5780, birthday_row

SCHEMA_SQL = Path(__file__).resolve().parent.parent / "sql" / "hebrew_birthday_sync.sql"


def test_birth_record_reads_supabase_row_shapes():
    record = BirthRecord.coerce(
        birthday_row(
            id=42,
            birth_date_gregorian="2020-03-15T00:00:00+00:00",
            after_sunset=None,
            archived=None,
            future_hebrew_birthdays=["2025-03-19", {"gregorian": "2026-03-08", "hebrewYear": 5786}],
        )
    )

    assert record.id == "42"
    assert record.birth_date_gregorian == date(2020, 3, 15)
    assert record.after_sunset is False
    assert record.archived is False
    assert record.future_hebrew_birthdays == [
        HebrewOccurrence(gregorian=date(2025, 3, 19)),
        HebrewOccurrence(gregorian=date(2026, 3, 8), hebrew_year=5786),
    ]


def test_has_hebrew_data_needs_every_derived_field():
    complete = birthday_row(
        birth_date_hebrew_string="19th of Adar, 5780",
        birth_date_hebrew_year=5780,
        birth_date_hebrew_month="Adar",
        birth_date_hebrew_day=19,
        next_upcoming_hebrew_birthday="2025-03-19",
        future_hebrew_birthdays=[{"gregorian": "2025-03-19", "hebrewYear": 5785}],
    )

    assert BirthRecord.coerce(complete).has_hebrew_data
    assert not BirthRecord.coerce(dict(complete, future_hebrew_birthdays=[])).has_hebrew_data
    assert not BirthRecord.coerce(dict(complete, next_upcoming_hebrew_birthday=None)).has_hebrew_data
    assert not BirthRecord.coerce(dict(complete, birth_date_hebrew_day=None)).has_hebrew_data


def test_unparseable_date_is_a_validation_error():
    with pytest.raises(ValidationError):
        BirthRecord.coerce(birthday_row(birth_date_gregorian="not-a-date"))


def test_derived_row_covers_every_hebrew_column():
    fields = DerivedHebrewFields(
        birth_date=date(2020, 3, 15),
        hebrew=ADAR_19_5780,
        occurrences=[HebrewOccurrence(gregorian=date(2025, 3, 19), hebrew_year=5785)],
    )

    row = fields.to_row()

    assert set(row) == set(HEBREW_COLUMNS)
    assert row["next_upcoming_hebrew_birthday"] == "2025-03-19"
    assert row["future_hebrew_birthdays"] == [{"gregorian": "2025-03-19", "hebrewYear": 5785}]


def test_empty_projection_writes_null_pointer_and_empty_list():
    row = DerivedHebrewFields(birth_date=date(2020, 3, 15), hebrew=ADAR_19_5780).to_row()

    assert row["next_upcoming_hebrew_birthday"] is None
    assert row["next_upcoming_hebrew_year"] is None
    assert row["future_hebrew_birthdays"] == []


def test_to_date_accepts_datetimes_and_rejects_garbage():
    assert to_date("2025-03-19") == date(2025, 3, 19)
    assert to_date("") is None
    with pytest.raises(ValueError):
        to_date(20250319)


def test_cleared_row_fits_the_shipped_schema():
    schema = SCHEMA_SQL.read_text()
    not_null = {
        column
        for column in HEBREW_COLUMNS
        if re.search(rf"add column if not exists {column} [^,\n]*not null", schema)
    }

    row = DerivedHebrewFields.cleared_row()

    assert set(row) == set(HEBREW_COLUMNS)
    assert not_null == {"future_hebrew_birthdays"}
    assert row["future_hebrew_birthdays"] == []
    assert all(row[column] is None for column in set(HEBREW_COLUMNS) - not_null)


def test_trigger_values_match_stored_column_shapes():
    record = BirthRecord.coerce(birthday_row(birth_date_gregorian="2020-03-15T00:00:00+00:00", after_sunset=None))

    assert record.trigger_values() == {"birth_date_gregorian": "2020-03-15", "after_sunset": False}
