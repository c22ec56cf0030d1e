"""Age and next-birthday figures derived from a birthday row."""

from datetime import date
from typing import Optional, Tuple

from .models import BirthdayCalculations, BirthRecord


def _birthday_in_year(year: int, month: int, day: int) -> date:
    # 29 February rolls over to 1 March in common years
    try:
        return date(year, month, day)
    except ValueError:
        return date(year, 3, 1)


def approximate_hebrew_year(on: date) -> int:
    """Hebrew year for a Gregorian date without asking the converter (Tishrei ~ September)."""
    year = on.year + 3761
    if on.month <= 8:
        year -= 1
    return year


def current_gregorian_age(birth_date: Optional[date], today: date) -> Tuple[int, bool]:
    """Return (age, has_birthday_passed_this_year)."""
    if birth_date is None:
        return 0, False

    has_passed = (today.month, today.day) >= (birth_date.month, birth_date.day)
    age = today.year - birth_date.year
    if not has_passed:
        age -= 1
    return age, has_passed


def current_hebrew_age(
    hebrew_birth_year: Optional[int],
    next_hebrew_birthday: Optional[date],
    today: date,
    current_hebrew_year: Optional[int] = None,
    next_hebrew_year: Optional[int] = None,
) -> Tuple[int, bool]:
    if not hebrew_birth_year or next_hebrew_birthday is None:
        return 0, False

    has_passed = next_hebrew_birthday <= today
    if next_hebrew_year:
        # Exact when the pointer's Hebrew year is stored
        age = next_hebrew_year - hebrew_birth_year
        return max(0, age if has_passed else age - 1), has_passed

    year_now = current_hebrew_year or approximate_hebrew_year(today)

    age = year_now - hebrew_birth_year
    if not has_passed:
        age -= 1
    return max(0, age), has_passed


def next_gregorian_birthday(birth_date: Optional[date], today: date) -> Tuple[date, int]:
    """Return (next birthday, days until it); today counts as already passed."""
    if birth_date is None:
        fallback = _birthday_in_year(today.year + 1, today.month, today.day)
        return fallback, 365

    has_passed = (today.month, today.day) >= (birth_date.month, birth_date.day)
    year = today.year + 1 if has_passed else today.year
    upcoming = _birthday_in_year(year, birth_date.month, birth_date.day)
    return upcoming, max(0, (upcoming - today).days)


def next_birthday_type(next_gregorian: date, next_hebrew: Optional[date]) -> str:
    if next_hebrew is None:
        return "gregorian"
    if next_gregorian == next_hebrew:
        return "same"
    return "gregorian" if next_gregorian < next_hebrew else "hebrew"


def hebrew_age_at_date(
    hebrew_birth_year: Optional[int],
    target: date,
    today: date,
    current_hebrew_year: Optional[int] = None,
) -> int:
    if not hebrew_birth_year:
        return 0

    if current_hebrew_year:
        year_at_target = current_hebrew_year + (target.year - today.year)
    else:
        year_at_target = approximate_hebrew_year(target)
    return year_at_target - hebrew_birth_year


def calculate_all(
    record: BirthRecord,
    reference_date: date,
    current_hebrew_year: Optional[int] = None,
) -> BirthdayCalculations:
    """Compute every figure shown next to a birthday as of `reference_date`."""
    gregorian_age, _ = current_gregorian_age(record.birth_date_gregorian, reference_date)
    hebrew_age, _ = current_hebrew_age(
        record.birth_date_hebrew_year,
        record.next_upcoming_hebrew_birthday,
        reference_date,
        current_hebrew_year,
        next_hebrew_year=record.next_upcoming_hebrew_year,
    )
    next_gregorian, days_until_gregorian = next_gregorian_birthday(
        record.birth_date_gregorian, reference_date
    )

    next_hebrew = record.next_upcoming_hebrew_birthday
    if next_hebrew and record.birth_date_hebrew_year and record.next_upcoming_hebrew_year:
        age_at_next_hebrew = record.next_upcoming_hebrew_year - record.birth_date_hebrew_year
    elif next_hebrew and record.birth_date_hebrew_year:
        age_at_next_hebrew = hebrew_age_at_date(
            record.birth_date_hebrew_year, next_hebrew, reference_date, current_hebrew_year
        )
    else:
        age_at_next_hebrew = hebrew_age + 1

    return BirthdayCalculations(
        current_gregorian_age=gregorian_age,
        current_hebrew_age=hebrew_age,
        next_gregorian_birthday=next_gregorian,
        age_at_next_gregorian_birthday=gregorian_age + 1,
        days_until_gregorian_birthday=days_until_gregorian,
        next_hebrew_birthday=next_hebrew,
        age_at_next_hebrew_birthday=age_at_next_hebrew,
        days_until_hebrew_birthday=(next_hebrew - reference_date).days if next_hebrew else None,
        next_birthday_type=next_birthday_type(next_gregorian, next_hebrew),
    )
