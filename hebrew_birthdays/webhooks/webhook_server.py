from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
import asyncio
import hmac
import hashlib
import json
import logging
import time
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import ValidationError

from ..api.deps import get_sync_service
from ..config import (
    BIRTHDAYS_TABLE,
    WEBHOOK_MAX_RETRIES,
    WEBHOOK_RATE_LIMIT_MAX_REQUESTS,
    WEBHOOK_RATE_LIMIT_WINDOW_SECONDS,
    WEBHOOK_SECRET,
)
from ..core.exceptions import ConversionUnavailable
from ..core.models import BirthRecord, SyncResult
from ..services.rate_limiter import InMemoryTimestampStore, SlidingWindowRateLimiter
from ..services.sync_service import BirthdaySyncService

router = APIRouter(prefix="/webhooks", tags=["webhooks"])
logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "X-Webhook-Signature"
MAX_BACKOFF_SECONDS = 30

processing_metrics: Dict[str, Any] = {
    'total_webhooks': 0,
    'accepted_webhooks': 0,
    'skipped_webhooks': 0,
    'ignored_webhooks': 0,
    'failed_webhooks': 0,
    'rate_limited_requests': 0,
    'updated_syncs': 0,
    'skipped_syncs': 0,
    'vanished_syncs': 0,
    'superseded_syncs': 0,
    'failed_syncs': 0,
    'sync_retries': 0,
    'last_reset': datetime.now(),
}

_rate_limit_store = InMemoryTimestampStore()
rate_limiter = SlidingWindowRateLimiter(
    _rate_limit_store,
    max_requests=WEBHOOK_RATE_LIMIT_MAX_REQUESTS,
    window_seconds=WEBHOOK_RATE_LIMIT_WINDOW_SECONDS,
)


def _extract_client_ip(request: Request) -> str:
    """Prefer X-Forwarded-For but fall back to socket IP."""
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


def verify_webhook_signature(payload: bytes, signature: str) -> bool:
    """HMAC-SHA256 of the raw body, sent as `sha256=<hex>`"""
    if not WEBHOOK_SECRET:
        logger.warning("No webhook secret configured - skipping verification")
        return True  # Development mode

    try:
        expected = hmac.new(
            WEBHOOK_SECRET.encode('utf-8'),
            payload,
            hashlib.sha256
        ).hexdigest()
        return hmac.compare_digest(f"sha256={expected}", signature or "")
    except Exception as e:
        logger.error(f"Signature verification failed: {e}")
        return False


def _parse_event_records(event_type: str, data: Dict[str, Any]):
    record = data.get('record')
    if not isinstance(record, dict):
        raise HTTPException(status_code=400, detail="Missing record")

    old_record = data.get('old_record')
    try:
        current = BirthRecord.coerce(record)
        previous = (
            BirthRecord.coerce(old_record)
            if event_type == 'UPDATE' and isinstance(old_record, dict)
            else None
        )
    except ValidationError as exc:
        logger.warning("Invalid birthday record in webhook: %s", exc)
        raise HTTPException(status_code=400, detail="Invalid birthday record")
    return current, previous


@router.post("/birthdays")
async def handle_birthday_webhook(
    request: Request,
    background_tasks: BackgroundTasks,
    sync_service: BirthdaySyncService = Depends(get_sync_service),
):
    """Database webhook for `birthdays`: recompute Hebrew dates in the background when stale"""

    start_time = time.time()
    client_ip = _extract_client_ip(request)

    if not rate_limiter.is_allowed(client_ip):
        logger.warning("Rate limit exceeded for IP: %s", client_ip)
        processing_metrics['rate_limited_requests'] += 1
        raise HTTPException(status_code=429, detail="Rate limit exceeded")

    processing_metrics['total_webhooks'] += 1

    try:
        body = await request.body()
        if not verify_webhook_signature(body, request.headers.get(SIGNATURE_HEADER, '')):
            processing_metrics['failed_webhooks'] += 1
            raise HTTPException(status_code=401, detail="Invalid signature")

        try:
            data = json.loads(body) if body else {}
        except json.JSONDecodeError as exc:
            logger.error("Invalid JSON payload: %s", exc)
            processing_metrics['failed_webhooks'] += 1
            raise HTTPException(status_code=400, detail="Invalid JSON")

        event_type = data.get('type') if isinstance(data, dict) else None
        table = data.get('table') if isinstance(data, dict) else None
        if not event_type or not table:
            logger.warning("Missing required fields in webhook: %s", data)
            processing_metrics['failed_webhooks'] += 1
            raise HTTPException(status_code=400, detail="Missing required fields")

        if table != BIRTHDAYS_TABLE or event_type not in ('INSERT', 'UPDATE'):
            logger.info("Ignoring %s event on table %s", event_type, table)
            processing_metrics['ignored_webhooks'] += 1
            return JSONResponse({"status": "ignored"}, status_code=200)

        try:
            current, previous = _parse_event_records(event_type, data)
        except HTTPException:
            processing_metrics['failed_webhooks'] += 1
            raise

        if not sync_service.needs_recompute(current, previous):
            logger.debug("Birthday %s needs no recompute (%s)", current.id, event_type)
            processing_metrics['skipped_webhooks'] += 1
            return JSONResponse({"status": "skipped", "birthday_id": current.id}, status_code=200)

        background_tasks.add_task(
            process_birthday_event_with_retry,
            sync_service,
            current,
            previous,
            max_retries=WEBHOOK_MAX_RETRIES,
        )
        processing_metrics['accepted_webhooks'] += 1
        logger.info("Queued Hebrew date sync for birthday %s (%s)", current.id, event_type)

        return JSONResponse({
            "status": "accepted",
            "birthday_id": current.id,
            "processing_time_ms": round((time.time() - start_time) * 1000, 2)
        }, status_code=202)

    except HTTPException:
        raise
    except Exception as exc:  # noqa: BLE001
        logger.error("Unexpected error in webhook handler: %s", exc)
        processing_metrics['failed_webhooks'] += 1
        raise HTTPException(status_code=500, detail="Internal server error")


async def process_birthday_event_with_retry(
    sync_service: BirthdaySyncService,
    record: BirthRecord,
    previous: Optional[BirthRecord] = None,
    max_retries: int = WEBHOOK_MAX_RETRIES,
    base_delay: float = 1.0,
) -> Optional[SyncResult]:
    """Run the blocking synchronizer off the loop, retrying only when the converter is unreachable"""

    loop = asyncio.get_running_loop()
    retry_count = 0

    while True:
        try:
            result = await loop.run_in_executor(
                None,
                lambda: sync_service.synchronize(record, previous),
            )
        except ConversionUnavailable as e:
            retry_count += 1
            if retry_count > max_retries:
                logger.error(f"Hebrew date sync for birthday {record.id} failed after {max_retries} retries: {e}")
                processing_metrics['failed_syncs'] += 1
                return None
            wait_time = min(base_delay * 2 ** retry_count, MAX_BACKOFF_SECONDS)
            processing_metrics['sync_retries'] += 1
            logger.warning(f"Hebcal unavailable for birthday {record.id} (attempt {retry_count}), retrying in {wait_time}s: {e}")
            await asyncio.sleep(wait_time)
        except Exception as e:  # noqa: BLE001
            logger.error(f"Hebrew date sync for birthday {record.id} failed: {e}")
            processing_metrics['failed_syncs'] += 1
            return None
        else:
            processing_metrics[f'{result.status}_syncs'] += 1
            logger.info(f"Hebrew date sync for birthday {record.id}: {result.status} (attempts: {retry_count + 1})")
            return result


@router.get("/metrics")
async def get_metrics():
    """Webhook counters since process start"""
    return {
        "webhook_metrics": processing_metrics,
        "active_rate_limits": len(_rate_limit_store),
        "timestamp": datetime.now().isoformat()
    }
