import asyncio

from matchengine.common.exceptions import ExternalServiceError, NotFoundError
from matchengine.common.logging import get_logger
from matchengine.tasks.celery_app import app

logger = get_logger("tasks.notification")


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@app.task(
    name="matchengine.tasks.notification_tasks.notify_vendor_of_routing",
    bind=True,
    autoretry_for=(ExternalServiceError, NotFoundError),
    retry_backoff=True,
    max_retries=5,
)
def notify_vendor_of_routing(self, routing_id: str):
    """Email (and for urgent requests, text) the vendor a request was routed to.

    NotFoundError is retried too: the task can start before the routing
    transaction commits.
    """
    logger.info("Notifying vendor of routing %s (attempt %d)", routing_id, self.request.retries + 1)

    async def _notify():
        from matchengine.core.notifications.service import send_routing_notification
        from matchengine.db.session import async_session_factory

        async with async_session_factory() as db:
            try:
                return await send_routing_notification(routing_id, db)
            except Exception as e:
                logger.error("Routing notification %s failed: %s", routing_id, e)
                raise

    return _run_async(_notify())
