import asyncio
import uuid

from disputedesk.common.exceptions import ExternalServiceError
from disputedesk.common.logging import get_logger
from disputedesk.config import settings
from disputedesk.tasks.celery_app import app

logger = get_logger("tasks.settlement")


def _run_async(coro):
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


@app.task(
    name="disputedesk.tasks.settlement_tasks.submit_settlement_instruction",
    bind=True,
    max_retries=settings.SETTLEMENT_MAX_RETRIES,
)
def submit_settlement_instruction(self, record_id: str):
    """Deliver a recorded settlement instruction to escrow, retrying until it lands.

    Only queued once the resolving transaction has committed the row.
    """
    logger.info("Submitting settlement instruction %s", record_id)

    async def _submit():
        from disputedesk.core.disputes.settlement import deliver_instruction
        from disputedesk.db.session import async_session_factory

        async with async_session_factory() as db:
            try:
                record = await deliver_instruction(uuid.UUID(record_id), db)
                await db.commit()
                return record.delivery_status
            except ExternalServiceError:
                # keep the attempt count and last error
                await db.commit()
                raise
            except Exception as e:
                await db.rollback()
                logger.error("Settlement instruction %s failed: %s", record_id, e)
                raise

    try:
        return _run_async(_submit())
    except ExternalServiceError as exc:
        countdown = settings.SETTLEMENT_RETRY_BACKOFF_SECONDS * (2 ** self.request.retries)
        logger.warning(
            "Settlement instruction %s not delivered (attempt %d), retrying in %ds",
            record_id,
            self.request.retries + 1,
            countdown,
        )
        raise self.retry(exc=exc, countdown=countdown)
