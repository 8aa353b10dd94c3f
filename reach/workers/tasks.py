"""
Celery Tasks for scheduled ledger and promotion maintenance

Each task runs its coroutine on a fresh event loop with a task-scoped database
session; the same services back the /api/cron routes.
"""
from __future__ import annotations

import asyncio
from contextlib import contextmanager

from reach.workers.celery_app import celery_app
from reach.db.database import get_task_session
from reach.domain.services.creator_tier_service import CreatorTierService
from reach.domain.services.promotion_service import PromotionService
from reach.domain.services.wallet_service import WalletService
from reach.core.logging import get_logger, set_correlation_id

logger = get_logger(__name__)


@contextmanager
def get_event_loop():
    """
    Context manager for proper event loop handling in Celery tasks.
    Creates a new event loop and ensures proper cleanup to prevent resource leaks.
    """
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        yield loop
    finally:
        try:
            # the Redis singleton is bound to this loop; drop it before closing
            from reach.core.redis_client import close_redis
            loop.run_until_complete(close_redis())
        except Exception as e:
            logger.warning(
                "Failed to close Redis at task end",
                extra_data={"error": str(e)},
            )
        try:
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
        finally:
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()


def run_async(coro):
    """Helper to run async code in sync Celery task with proper cleanup"""
    set_correlation_id()

    with get_event_loop() as loop:
        return loop.run_until_complete(coro)


@celery_app.task(name="reach.workers.tasks.expire_promotions")
def expire_promotions():
    """Flip active promotions past their expiry date to expired"""

    async def _expire():
        async with get_task_session() as db:
            expired = await PromotionService(db).expire_due_promotions()
            return {"expired": expired}

    return run_async(_expire())


@celery_app.task(name="reach.workers.tasks.fail_stale_deposits")
def fail_stale_deposits():
    """Fail pending deposits nobody completed within the stale window"""

    async def _sweep():
        async with get_task_session() as db:
            failed = await WalletService(db).fail_stale_deposits()
            return {"failed": failed}

    return run_async(_sweep())


@celery_app.task(name="reach.workers.tasks.refresh_creator_tiers")
def refresh_creator_tiers():
    """
    Re-fetch every verified social account and recompute each creator's tier.

    Per-account provider failures are counted in the summary and leave the stored
    snapshot in place.
    """

    async def _refresh():
        async with get_task_session() as db:
            summary = await CreatorTierService(db).refresh_all()
            return summary.to_dict()

    return run_async(_refresh())
