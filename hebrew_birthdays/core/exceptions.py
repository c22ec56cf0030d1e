"""Error taxonomy shared by the conversion, sync and refresh layers."""

from typing import Optional


class HebrewBirthdayError(Exception):
    """Base class for every error raised by this package."""


class ConversionError(HebrewBirthdayError):
    """The calendar converter could not produce a usable answer."""


class ConversionUnavailable(ConversionError):
    """Transport failure or non-2xx status from the converter."""


class ConversionMalformed(ConversionError):
    """Converter answered 2xx but the payload lacks the expected fields."""


class RecordVanished(HebrewBirthdayError):
    """The target birthday row was deleted while we were working on it."""

    def __init__(self, record_id: str):
        super().__init__(f"Birthday {record_id} no longer exists")
        self.record_id = record_id


class RecordSuperseded(HebrewBirthdayError):
    """The row's birth date or sunset flag changed after we read it; our result is stale."""

    def __init__(self, record_id: str):
        super().__init__(f"Birthday {record_id} changed while its Hebrew dates were being computed")
        self.record_id = record_id


class MissingBirthDate(HebrewBirthdayError):
    """The record has no Gregorian birth date to convert."""


class RateLimited(HebrewBirthdayError):
    def __init__(self, message: str, retry_after: Optional[float] = None):
        super().__init__(message)
        self.retry_after = retry_after


class PermissionDenied(HebrewBirthdayError):
    pass


class Unauthenticated(HebrewBirthdayError):
    pass


class InvalidArgument(HebrewBirthdayError):
    pass


class RefreshFailed(HebrewBirthdayError):
    """Generic on-demand refresh failure surfaced to callers."""
