"""
Pydantic models for birthday rows, converter results and derived Hebrew fields.
"""

from dataclasses import dataclass
from datetime import date
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..config import HEBREW_COLUMNS
from .calendar_dates import to_date, to_iso

SYNC_SKIPPED = "skipped"
SYNC_UPDATED = "updated"
SYNC_VANISHED = "vanished"
SYNC_SUPERSEDED = "superseded"


class HebrewDateResult(BaseModel):
    """Gregorian -> Hebrew conversion as returned by the converter"""
    hebrew_date_string: str
    hebrew_year: int
    hebrew_month: str
    hebrew_day: int = Field(ge=1, le=30)


class HebrewOccurrence(BaseModel):
    """One Gregorian date on which a Hebrew anniversary falls.

    Stored in `future_hebrew_birthdays` as {"gregorian": "YYYY-MM-DD", "hebrewYear": 5785}.
    """
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    gregorian: date
    hebrew_year: Optional[int] = Field(default=None, alias="hebrewYear")

    @field_validator("gregorian", mode="before")
    @classmethod
    def parse_gregorian(cls, value: Any) -> Optional[date]:
        return to_date(value)

    @classmethod
    def from_value(cls, value: Any) -> "HebrewOccurrence":
        """Accept a stored jsonb entry, a legacy plain date string, or a date."""
        if isinstance(value, HebrewOccurrence):
            return value
        if isinstance(value, dict):
            return cls.model_validate(value)
        return cls(gregorian=to_date(value))

    def to_row(self) -> Dict[str, Any]:
        return {"gregorian": self.gregorian.isoformat(), "hebrewYear": self.hebrew_year}


class BirthRecord(BaseModel):
    """A row of the `birthdays` table, reduced to the columns this service reads."""
    model_config = ConfigDict(extra="ignore")

    id: str
    tenant_id: Optional[str] = None
    birth_date_gregorian: Optional[date] = None
    after_sunset: bool = False

    birth_date_hebrew_string: Optional[str] = None
    birth_date_hebrew_year: Optional[int] = None
    birth_date_hebrew_month: Optional[str] = None
    birth_date_hebrew_day: Optional[int] = None

    next_upcoming_hebrew_birthday: Optional[date] = None
    next_upcoming_hebrew_year: Optional[int] = None
    future_hebrew_birthdays: List[HebrewOccurrence] = Field(default_factory=list)

    archived: bool = False
    notes: Optional[str] = None

    @field_validator("id", "tenant_id", mode="before")
    @classmethod
    def coerce_identifier(cls, value: Any) -> Any:
        return str(value) if value is not None else None

    @field_validator("birth_date_gregorian", "next_upcoming_hebrew_birthday", mode="before")
    @classmethod
    def parse_dates(cls, value: Any) -> Optional[date]:
        return to_date(value)

    @field_validator("after_sunset", "archived", mode="before")
    @classmethod
    def null_is_false(cls, value: Any) -> Any:
        return False if value is None else value

    @field_validator("future_hebrew_birthdays", mode="before")
    @classmethod
    def parse_occurrences(cls, value: Any) -> List[HebrewOccurrence]:
        if not value:
            return []
        return [HebrewOccurrence.from_value(item) for item in value]

    @classmethod
    def coerce(cls, value: Any) -> "BirthRecord":
        return value if isinstance(value, cls) else cls.model_validate(value)

    def trigger_values(self) -> Dict[str, Any]:
        """The inputs derived fields are computed from, as stored column values."""
        return {
            "birth_date_gregorian": to_iso(self.birth_date_gregorian),
            "after_sunset": self.after_sunset,
        }

    @property
    def has_hebrew_components(self) -> bool:
        return bool(
            self.birth_date_hebrew_year
            and self.birth_date_hebrew_month
            and self.birth_date_hebrew_day
        )

    @property
    def has_hebrew_data(self) -> bool:
        """True when every derived field is populated; such a record only goes stale on input change."""
        return bool(
            self.birth_date_hebrew_string
            and self.has_hebrew_components
            and self.next_upcoming_hebrew_birthday
            and self.future_hebrew_birthdays
        )


class DerivedHebrewFields(BaseModel):
    """Everything the synchronizer writes for one record, in one update."""
    birth_date: date
    hebrew: HebrewDateResult
    occurrences: List[HebrewOccurrence] = Field(default_factory=list)

    @property
    def next_occurrence(self) -> Optional[HebrewOccurrence]:
        return self.occurrences[0] if self.occurrences else None

    def to_row(self) -> Dict[str, Any]:
        upcoming = self.next_occurrence
        return {
            "birth_date_hebrew_string": self.hebrew.hebrew_date_string,
            "birth_date_hebrew_year": self.hebrew.hebrew_year,
            "birth_date_hebrew_month": self.hebrew.hebrew_month,
            "birth_date_hebrew_day": self.hebrew.hebrew_day,
            "gregorian_year": self.birth_date.year,
            "gregorian_month": self.birth_date.month,
            "gregorian_day": self.birth_date.day,
            "next_upcoming_hebrew_birthday": to_iso(upcoming.gregorian) if upcoming else None,
            "next_upcoming_hebrew_year": upcoming.hebrew_year if upcoming else None,
            "future_hebrew_birthdays": [occurrence.to_row() for occurrence in self.occurrences],
        }

    @staticmethod
    def cleared_row() -> Dict[str, Any]:
        row: Dict[str, Any] = {column: None for column in HEBREW_COLUMNS}
        # jsonb not null in the table
        row["future_hebrew_birthdays"] = []
        return row


@dataclass
class SyncResult:
    status: str
    record_id: str
    fields: Optional[DerivedHebrewFields] = None

    @property
    def updated(self) -> bool:
        return self.status == SYNC_UPDATED


class BirthdayCalculations(BaseModel):
    """Ages and next-birthday figures shown next to a birthday"""
    current_gregorian_age: int = 0
    current_hebrew_age: int = 0
    next_gregorian_birthday: Optional[date] = None
    age_at_next_gregorian_birthday: int = 0
    days_until_gregorian_birthday: Optional[int] = None
    next_hebrew_birthday: Optional[date] = None
    age_at_next_hebrew_birthday: int = 0
    days_until_hebrew_birthday: Optional[int] = None
    next_birthday_type: str = "gregorian"
