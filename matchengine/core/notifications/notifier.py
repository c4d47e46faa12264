import uuid

from matchengine.common.logging import get_logger

logger = get_logger("notifications.notifier")


class VendorNotifier:
    """Queues vendor-facing notifications; delivery and retries happen in Celery."""

    def vendor_routed(self, routing_id: uuid.UUID) -> None:
        from matchengine.tasks.notification_tasks import notify_vendor_of_routing

        notify_vendor_of_routing.delay(str(routing_id))
        logger.debug("Queued routing notification %s", routing_id)
