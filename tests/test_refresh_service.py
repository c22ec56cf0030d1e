from datetime import date
from pathlib import Path
import sys

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from hebrew_birthdays.core.exceptions import (
    InvalidArgument,
    PermissionDenied,
    RateLimited,
    RefreshFailed,
    Unauthenticated,
)
from hebrew_birthdays.core.projector import HebrewBirthdayProjector
from hebrew_birthdays.services.rate_limiter import InMemoryTimestampStore, SlidingWindowRateLimiter
from hebrew_birthdays.services.refresh_service import RefreshService
from hebrew_birthdays.services.sync_service import BirthdaySyncService

from birthday_stubs import FakeClock, FakeSupabaseClient, adar_hebcal, birthday_row

REFERENCE = date(2025, 1, 1)


def _refresh_service(rows=None, clock=None, **hebcal_kwargs):
    db = FakeSupabaseClient(rows if rows is not None else [birthday_row()])
    db.members.add(("user-1", "t-1"))
    hebcal = adar_hebcal(**hebcal_kwargs)
    sync = BirthdaySyncService(db_client=db, hebcal_client=hebcal, projector=HebrewBirthdayProjector(hebcal))
    limiter = SlidingWindowRateLimiter(db, max_requests=3, window_seconds=30, clock=clock or FakeClock())
    return RefreshService(db_client=db, sync_service=sync, rate_limiter=limiter), db, hebcal


def test_refresh_recomputes_and_returns_fields():
    svc, db, _ = _refresh_service()

    response = svc.refresh_birthday("user-1", "b-1", "t-1", reference_date=REFERENCE)

    assert response["success"] is True
    assert response["status"] == "updated"
    assert response["birth_date_hebrew_string"] == "19th of Adar, 5780"
    assert response["next_upcoming_hebrew_birthday"] == "2025-03-19"
    assert db.rows["b-1"]["next_upcoming_hebrew_birthday"] == "2025-03-19"


def test_fourth_call_in_window_is_rate_limited_then_recovers():
    clock = FakeClock()
    svc, db, _ = _refresh_service(clock=clock)

    for _ in range(3):
        svc.refresh_birthday("user-1", "b-1", "t-1", reference_date=REFERENCE)
        clock.advance(5)

    with pytest.raises(RateLimited) as excinfo:
        svc.refresh_birthday("user-1", "b-1", "t-1", reference_date=REFERENCE)
    assert 0 < excinfo.value.retry_after <= 30
    assert len(db.timestamps["user-1_refresh"]) == 3

    clock.advance(31)
    assert svc.refresh_birthday("user-1", "b-1", "t-1", reference_date=REFERENCE)["success"] is True


def test_rate_limit_is_per_caller():
    clock = FakeClock()
    svc, db, _ = _refresh_service(clock=clock)
    db.members.add(("user-2", "t-1"))

    for _ in range(3):
        svc.refresh_birthday("user-1", "b-1", "t-1", reference_date=REFERENCE)

    assert svc.refresh_birthday("user-2", "b-1", "t-1", reference_date=REFERENCE)["success"] is True


def test_unauthenticated_caller_is_rejected_before_rate_limit():
    svc, db, hebcal = _refresh_service()

    with pytest.raises(Unauthenticated):
        svc.refresh_birthday(None, "b-1", "t-1")

    assert db.timestamps == {}
    assert hebcal.total_calls == 0


@pytest.mark.parametrize("birthday_id, tenant_id", [(None, "t-1"), ("b-1", None), ("", "")])
def test_missing_arguments_are_invalid(birthday_id, tenant_id):
    svc, _, _ = _refresh_service()

    with pytest.raises(InvalidArgument):
        svc.refresh_birthday("user-1", birthday_id, tenant_id)


def test_record_in_another_tenant_is_permission_denied():
    svc, db, hebcal = _refresh_service([birthday_row(tenant_id="t-other")])

    with pytest.raises(PermissionDenied):
        svc.refresh_birthday("user-1", "b-1", "t-1")

    assert hebcal.total_calls == 0
    assert db.writes == []


def test_missing_record_looks_like_permission_denied():
    svc, _, _ = _refresh_service(rows=[])

    with pytest.raises(PermissionDenied):
        svc.refresh_birthday("user-1", "b-404", "t-1")


def test_non_member_is_permission_denied():
    svc, _, _ = _refresh_service()

    with pytest.raises(PermissionDenied):
        svc.refresh_birthday("user-9", "b-1", "t-1")


def test_converter_outage_is_a_generic_refresh_failure():
    svc, db, _ = _refresh_service(unavailable=True)

    with pytest.raises(RefreshFailed, match="Failed to refresh Hebrew dates"):
        svc.refresh_birthday("user-1", "b-1", "t-1")

    assert db.writes == []


def test_missing_birth_date_is_a_generic_refresh_failure():
    svc, _, _ = _refresh_service([birthday_row(birth_date_gregorian=None)])

    with pytest.raises(RefreshFailed):
        svc.refresh_birthday("user-1", "b-1", "t-1")


def test_calculations_use_stored_pointer():
    svc, db, _ = _refresh_service()
    svc.refresh_birthday("user-1", "b-1", "t-1", reference_date=REFERENCE)

    calc = svc.get_calculations("user-1", "b-1", "t-1", reference_date=REFERENCE)

    assert calc.next_hebrew_birthday == date(2025, 3, 19)
    assert calc.days_until_hebrew_birthday == 77
    assert calc.current_gregorian_age == 4
    assert calc.next_gregorian_birthday == date(2025, 3, 15)
    assert calc.next_birthday_type == "gregorian"


def test_in_memory_limiter_reports_allowance():
    clock = FakeClock()
    limiter = SlidingWindowRateLimiter(InMemoryTimestampStore(), max_requests=2, window_seconds=60, clock=clock)

    assert limiter.is_allowed("10.0.0.1")
    assert limiter.is_allowed("10.0.0.1")
    assert not limiter.is_allowed("10.0.0.1")
    assert limiter.is_allowed("10.0.0.2")
    clock.advance(60)
    assert limiter.is_allowed("10.0.0.1")
