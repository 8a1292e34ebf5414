"""
Payment Reconciliation Worker.

Runs every 10 minutes to settle payments whose webhook never arrived.
"""

import asyncio
import logging

from app.config import settings
from app.database import close_db, get_db_context
from app.providers.registry import build_provider_registry
from app.redis import create_redis
from app.services.lock_service import LockService
from app.services.payment_service import PaymentService
from app.workers.celery_app import celery_app

logger = logging.getLogger(__name__)


@celery_app.task(bind=True, max_retries=3)
def reconcile_pending_payments(self):
    """
    Celery task to reconcile stale payments.
    
    INITIATED payments that never reached the provider are failed;
    PENDING ones are polled and settled if the provider has an answer.
    """
    try:
        result = asyncio.run(_reconcile())
        logger.info(f"Payment reconciliation finished: {result}")
        return result
    except Exception as e:
        logger.error(f"Payment reconciliation failed: {e}", exc_info=True)
        raise self.retry(exc=e, countdown=60 * (2 ** self.request.retries))


async def _reconcile():
    """Async implementation of the reconciliation sweep."""
    # Each asyncio.run gets its own loop, so the Redis client is per run
    redis = create_redis()
    
    try:
        async with get_db_context() as db:
            service = PaymentService(
                db,
                providers=build_provider_registry(settings),
                lock=LockService(redis),
            )
            return await service.reconcile_stale_payments()
    finally:
        await redis.aclose()
        await close_db()
