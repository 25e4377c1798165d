"""Periodic schedule lifecycle tasks: status transitions and auto check-out."""

from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.schedule_service.events import get_event_publisher
from services.schedule_service.services.auto_checkout import run_auto_checkout_sweep
from services.schedule_service.services.status_scanner import run_status_sweep

logger = get_logger(__name__)


async def transition_schedule_statuses():
    """
    Advance schedules by wall-clock time:
    - SCHEDULED → IN_PROGRESS once started
    - IN_PROGRESS → COMPLETED once ended

    Safe to run from several workers at once; failures are retried next tick.
    """
    async for db in get_async_db():
        try:
            await run_status_sweep(db, publisher=get_event_publisher())
        except Exception as e:
            logger.error(f"Error transitioning schedule statuses: {e}")
            await db.rollback()
        finally:
            await db.close()
            break


async def reconcile_auto_checkouts():
    """
    Close attendance left open past end time + grace, and send checkout
    reminders for classes about to end.
    """
    async for db in get_async_db():
        try:
            await run_auto_checkout_sweep(db, publisher=get_event_publisher())
        except Exception as e:
            logger.error(f"Error reconciling auto check-outs: {e}")
            await db.rollback()
        finally:
            await db.close()
            break
