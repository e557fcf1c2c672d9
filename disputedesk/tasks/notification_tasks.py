import asyncio

from disputedesk.common.logging import get_logger
from disputedesk.tasks.celery_app import app

logger = get_logger("tasks.notification")


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@app.task(name="disputedesk.tasks.notification_tasks.dispatch_dispute_event")
def dispatch_dispute_event(event: str, recipient_ids: list[str], data: dict):
    """Best-effort delivery; failures are logged and dropped."""
    logger.info("Dispatching %s to %d recipient(s)", event, len(recipient_ids))

    async def _send():
        from disputedesk.integrations.notifier import NotifierClient

        client = NotifierClient()
        return await client.send(event, recipient_ids, data)

    try:
        return _run_async(_send())
    except Exception as e:
        logger.error("Notification %s failed: %s", event, e)
        return None
