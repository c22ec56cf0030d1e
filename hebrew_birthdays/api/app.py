import asyncio
import logging
import time

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI

from .deps import get_sweep
from .routes.birthdays import router as birthdays_router
from .routes.health import router as health_router
from ..config import CALENDAR_TIMEZONE, SWEEP_HOUR, SWEEP_MINUTE
from ..webhooks.webhook_server import router as webhooks_router

app = FastAPI(title="Hebrew Birthday Sync")
app.include_router(health_router)
app.include_router(birthdays_router)  # exposes /birthdays/{birthday_id}/refresh
app.include_router(webhooks_router)  # exposes /webhooks/birthdays

_scheduler = AsyncIOScheduler(timezone=CALENDAR_TIMEZONE)


async def _scheduled_hebrew_sweep() -> None:
    log = logging.getLogger("scheduler.hebrew_sweep")
    loop = asyncio.get_running_loop()
    started = time.perf_counter()
    try:
        sweep = get_sweep()
        sweep.logger = log
        updated = await loop.run_in_executor(None, lambda: sweep.sweep())
        log.info("Hebrew birthday sweep finished (updated=%s, elapsed=%.2fs)", updated, time.perf_counter() - started)
    except Exception:  # noqa: BLE001
        log.exception("Hebrew birthday sweep job failed")


@app.on_event("startup")
async def _startup() -> None:
    logging.getLogger("apscheduler").setLevel(logging.INFO)

    if not _scheduler.running:
        _scheduler.add_job(
            _scheduled_hebrew_sweep,
            "cron",
            hour=SWEEP_HOUR,
            minute=SWEEP_MINUTE,
            timezone=CALENDAR_TIMEZONE,
            id="hebrew_birthday_sweep",
            misfire_grace_time=3600,
            max_instances=1,
            coalesce=True,
        )
        _scheduler.start()


@app.on_event("shutdown")
async def _shutdown() -> None:
    if _scheduler.running:
        _scheduler.shutdown(wait=False)
