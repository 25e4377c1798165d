"""ARQ worker for schedule service background tasks.

Schedules periodic tasks via ARQ cron jobs backed by Redis.
Run with: arq services.schedule_service.worker.WorkerSettings

Every replica may run this worker; each task is idempotent and relies on
conditional updates in the database, not on Redis, for exclusion.
"""

from arq import cron
from libs.common.arq_config import get_redis_settings
from libs.common.logging import configure_logging, get_logger

logger = get_logger(__name__)

EVERY_MINUTE = set(range(60))


# ── Wrapper functions (ARQ requires top-level async callables) ──


async def task_transition_schedule_statuses(ctx: dict):
    """Move schedules to IN_PROGRESS / COMPLETED by wall-clock time."""
    from services.schedule_service.tasks import transition_schedule_statuses

    logger.debug("Running: transition_schedule_statuses")
    await transition_schedule_statuses()


async def task_reconcile_auto_checkouts(ctx: dict):
    """Auto check-out attendance left open after class."""
    from services.schedule_service.tasks import reconcile_auto_checkouts

    logger.debug("Running: reconcile_auto_checkouts")
    await reconcile_auto_checkouts()


async def startup(ctx: dict):
    configure_logging()
    logger.info("Schedule worker started")


# ── Worker configuration ──


class WorkerSettings:
    """ARQ worker settings with cron job schedules."""

    redis_settings = get_redis_settings()
    on_startup = startup

    # Register all task functions so ARQ can discover them
    functions = [
        task_transition_schedule_statuses,
        task_reconcile_auto_checkouts,
    ]

    cron_jobs = [
        # Every minute
        cron(
            task_transition_schedule_statuses,
            minute=EVERY_MINUTE,
            run_at_startup=False,
        ),
        cron(
            task_reconcile_auto_checkouts,
            minute=EVERY_MINUTE,
            run_at_startup=False,
        ),
    ]
