import asyncio
from datetime import datetime, timedelta, timezone

from matchengine.common.logging import get_logger
from matchengine.config import settings
from matchengine.tasks.celery_app import app

logger = get_logger("tasks.request")


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@app.task(name="matchengine.tasks.request_tasks.close_stale_requests")
def close_stale_requests():
    """Celery Beat task: close requests that outlived REQUEST_TTL_HOURS."""
    cutoff = datetime.now(timezone.utc) - timedelta(hours=settings.REQUEST_TTL_HOURS)
    logger.info("Closing requests created before %s", cutoff.isoformat())

    async def _sweep():
        from matchengine.core.matching.service import MatchEngineService
        from matchengine.core.notifications.notifier import VendorNotifier
        from matchengine.db.session import async_session_factory

        async with async_session_factory() as db:
            try:
                service = MatchEngineService(db, VendorNotifier())
                closed = await service.close_stale_requests(cutoff)
                await db.commit()

                if closed:
                    logger.info("Closed %d stale requests", len(closed))
                return [str(request_id) for request_id in closed]
            except Exception as e:
                await db.rollback()
                logger.error("Stale request sweep failed: %s", e)
                raise

    return _run_async(_sweep())
