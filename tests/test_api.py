import asyncio
import hashlib
import hmac
import json
from datetime import date
from pathlib import Path
import sys

import pytest
from fastapi.testclient import TestClient

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from hebrew_birthdays.api import deps
from hebrew_birthdays.api.app import app
from hebrew_birthdays.core.exceptions import ConversionMalformed, ConversionUnavailable
from hebrew_birthdays.core.models import SYNC_UPDATED, BirthRecord, SyncResult
from hebrew_birthdays.core.projector import HebrewBirthdayProjector
from hebrew_birthdays.services.rate_limiter import SlidingWindowRateLimiter
from hebrew_birthdays.services.refresh_service import RefreshService
from hebrew_birthdays.services.sync_service import BirthdaySyncService
from hebrew_birthdays.webhooks import webhook_server

from birthday_stubs import FakeClock, FakeSupabaseClient, adar_hebcal, birthday_row


@pytest.fixture
def backend():
    db = FakeSupabaseClient([birthday_row()])
    db.members.add(("user-1", "t-1"))
    hebcal = adar_hebcal()
    sync = BirthdaySyncService(db_client=db, hebcal_client=hebcal, projector=HebrewBirthdayProjector(hebcal))
    limiter = SlidingWindowRateLimiter(db, max_requests=3, window_seconds=30, clock=FakeClock())
    refresh = RefreshService(db_client=db, sync_service=sync, rate_limiter=limiter)

    state = {"user_id": "user-1"}
    app.dependency_overrides[deps.get_sync_service] = lambda: sync
    app.dependency_overrides[deps.get_refresh_service] = lambda: refresh
    app.dependency_overrides[deps.get_current_user_id] = lambda: state["user_id"]
    yield {"db": db, "hebcal": hebcal, "state": state}
    app.dependency_overrides.clear()


@pytest.fixture
def client(backend, monkeypatch):
    monkeypatch.setattr(webhook_server, "WEBHOOK_SECRET", None)
    return TestClient(app)


def test_refresh_route_returns_recomputed_fields(client, backend):
    response = client.post("/birthdays/b-1/refresh", json={"tenant_id": "t-1"})

    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["birth_date_hebrew_string"] == "19th of Adar, 5780"
    assert backend["db"].rows["b-1"]["birth_date_hebrew_day"] == 19


def test_refresh_route_rate_limits_fourth_call(client):
    for _ in range(3):
        assert client.post("/birthdays/b-1/refresh", json={"tenant_id": "t-1"}).status_code == 200

    response = client.post("/birthdays/b-1/refresh", json={"tenant_id": "t-1"})

    assert response.status_code == 429
    assert response.json()["detail"]["code"] == "resource-exhausted"
    assert int(response.headers["Retry-After"]) == 30


def test_refresh_route_maps_access_errors(client, backend):
    assert client.post("/birthdays/b-1/refresh", json={"tenant_id": "t-2"}).json()["detail"]["code"] == "permission-denied"
    assert client.post("/birthdays/b-1/refresh", json={}).status_code == 400

    backend["state"]["user_id"] = None
    response = client.post("/birthdays/b-1/refresh", json={"tenant_id": "t-1"})
    assert response.status_code == 401
    assert response.json()["detail"]["code"] == "unauthenticated"


def test_refresh_route_without_body_is_an_invalid_argument(client):
    response = client.post("/birthdays/b-1/refresh")

    assert response.status_code == 400
    assert response.json()["detail"]["code"] == "invalid-argument"


def test_refresh_route_hides_conversion_details(client, backend):
    backend["hebcal"].unavailable = True

    response = client.post("/birthdays/b-1/refresh", json={"tenant_id": "t-1"})

    assert response.status_code == 500
    assert response.json()["detail"] == {"code": "internal", "message": "Failed to refresh Hebrew dates"}


def test_calculations_route(client):
    response = client.get("/birthdays/b-1/calculations", params={"tenant_id": "t-1"})

    assert response.status_code == 200
    assert response.json()["next_birthday_type"] in {"gregorian", "hebrew", "same"}
    assert client.get("/birthdays/b-1/calculations", params={"tenant_id": "t-2"}).status_code == 403


def _event(event_type, record, old_record=None, table="birthdays"):
    return {"type": event_type, "table": table, "schema": "public", "record": record, "old_record": old_record}


def test_webhook_insert_is_accepted_and_synced(client, backend):
    response = client.post("/webhooks/birthdays", json=_event("INSERT", birthday_row()))

    assert response.status_code == 202
    assert response.json()["status"] == "accepted"
    # TestClient runs background tasks before returning
    assert backend["db"].rows["b-1"]["birth_date_hebrew_string"] == "19th of Adar, 5780"


def test_webhook_unrelated_edit_is_skipped(client, backend):
    synced = birthday_row(
        birth_date_hebrew_string="19th of Adar, 5780",
        birth_date_hebrew_year=5780,
        birth_date_hebrew_month="Adar",
        birth_date_hebrew_day=19,
        next_upcoming_hebrew_birthday="2025-03-19",
        future_hebrew_birthdays=[{"gregorian": "2025-03-19", "hebrewYear": 5785}],
    )

    response = client.post("/webhooks/birthdays", json=_event("UPDATE", dict(synced, notes="new"), synced))

    assert response.status_code == 200
    assert response.json()["status"] == "skipped"
    assert backend["hebcal"].total_calls == 0


def test_webhook_ignores_deletes_and_other_tables(client):
    assert client.post("/webhooks/birthdays", json=_event("DELETE", None, birthday_row())).json()["status"] == "ignored"
    assert client.post("/webhooks/birthdays", json=_event("INSERT", {"id": 1}, table="wishlists")).json()["status"] == "ignored"


def test_webhook_rejects_bad_payloads(client):
    assert client.post("/webhooks/birthdays", content=b"{not json", headers={"Content-Type": "application/json"}).status_code == 400
    assert client.post("/webhooks/birthdays", json={"record": {}}).status_code == 400
    assert client.post("/webhooks/birthdays", json=_event("INSERT", None)).status_code == 400


def test_webhook_signature_is_enforced_when_secret_set(client, monkeypatch):
    monkeypatch.setattr(webhook_server, "WEBHOOK_SECRET", "s3cret")
    body = json.dumps(_event("DELETE", None, birthday_row())).encode("utf-8")
    signature = "sha256=" + hmac.new(b"s3cret", body, hashlib.sha256).hexdigest()

    unsigned = client.post("/webhooks/birthdays", content=body, headers={"Content-Type": "application/json"})
    signed = client.post(
        "/webhooks/birthdays",
        content=body,
        headers={"Content-Type": "application/json", "X-Webhook-Signature": signature},
    )

    assert unsigned.status_code == 401
    assert signed.status_code == 200


def test_webhook_metrics(client):
    response = client.get("/webhooks/metrics")

    assert response.status_code == 200
    assert "total_webhooks" in response.json()["webhook_metrics"]


def test_liveness(client):
    assert client.get("/health/live").json()["status"] == "alive"


class FlakySyncService:
    def __init__(self, failures, error_cls=ConversionUnavailable):
        self.failures = failures
        self.error_cls = error_cls
        self.calls = 0

    def synchronize(self, record, previous=None):
        self.calls += 1
        if self.calls <= self.failures:
            raise self.error_cls("Hebcal API error: 503")
        return SyncResult(status=SYNC_UPDATED, record_id=record.id)


def test_background_sync_retries_while_converter_unavailable():
    service = FlakySyncService(failures=2)
    record = BirthRecord.coerce(birthday_row())

    result = asyncio.run(
        webhook_server.process_birthday_event_with_retry(service, record, max_retries=3, base_delay=0)
    )

    assert result.updated
    assert service.calls == 3


def test_background_sync_gives_up_after_max_retries():
    service = FlakySyncService(failures=10)
    record = BirthRecord.coerce(birthday_row())

    result = asyncio.run(
        webhook_server.process_birthday_event_with_retry(service, record, max_retries=2, base_delay=0)
    )

    assert result is None
    assert service.calls == 3


def test_background_sync_does_not_retry_malformed_answers():
    service = FlakySyncService(failures=1, error_cls=ConversionMalformed)
    record = BirthRecord.coerce(birthday_row(birth_date_gregorian=date(2020, 3, 15)))

    result = asyncio.run(
        webhook_server.process_birthday_event_with_retry(service, record, max_retries=3, base_delay=0)
    )

    assert result is None
    assert service.calls == 1
