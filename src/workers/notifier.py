"""
Background Notification Worker
==============================

Runs every ``NOTIFICATION_INTERVAL_SECONDS`` (default 60 s).

Concurrency safety
------------------
* **Redis distributed lock** ensures only one instance dispatches
  notifications per cycle across multiple API processes.

Algorithm per cycle
-------------------
1. Send every pending / scheduled notification that is due and unexpired.
2. Retry failed notifications whose backoff has elapsed
   (``next_retry_at = now + 2 ** retry_count minutes``).
3. Send a pickup reminder for approved rides starting within 30 minutes
   that have not been reminded yet.
"""

from __future__ import annotations

import asyncio
import logging

from src.config import settings
from src.infrastructure.database import async_session_factory
from src.infrastructure.locks import DistributedLock
from src.infrastructure.notifications import NotificationService
from src.infrastructure.redis_client import get_redis

logger = logging.getLogger(__name__)

_task: asyncio.Task | None = None
_stop_event: asyncio.Event | None = None


# ── Public API ────────────────────────────────────────────────────────


async def start_notification_loop() -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop())
    logger.info(
        "Notification worker started (interval=%ds)",
        settings.notification_interval_seconds,
    )


async def stop_notification_loop() -> None:
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    logger.info("Notification worker stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop() -> None:
    """Periodic loop: run a delivery cycle then sleep."""
    assert _stop_event is not None
    while not _stop_event.is_set():
        try:
            await run_notification_cycle()
        except Exception:
            logger.exception("Unhandled error in notification cycle")
        try:
            await asyncio.wait_for(
                _stop_event.wait(), timeout=settings.notification_interval_seconds
            )
            break
        except asyncio.TimeoutError:
            pass  # next cycle


async def run_notification_cycle(
    session_factory=None, redis=None
) -> tuple[int, int, int]:
    """Execute one cycle.  Returns ``(sent, retried, reminded)``."""
    redis = redis or get_redis()
    session_factory = session_factory or async_session_factory
    lock = DistributedLock(redis, "notification_worker", ttl_seconds=60)

    if not await lock.acquire():
        logger.debug("Lock held by another worker, skipping cycle")
        return 0, 0, 0

    sent = retried = reminded = 0
    try:
        async with session_factory() as session:
            service = NotificationService(session)
            sent = await service.process_pending()
            retried = await service.retry_failed()
            reminded = await service.send_due_reminders()
            await session.commit()
        if sent or retried or reminded:
            logger.info(
                "Notification cycle: %d sent, %d retried, %d reminders",
                sent,
                retried,
                reminded,
            )
    except Exception:
        logger.exception("Error in notification cycle")
    finally:
        await lock.release()

    return sent, retried, reminded
