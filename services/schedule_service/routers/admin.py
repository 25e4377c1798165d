"""Admin tooling: manual sweeps, pending work, forced status and auto check-out."""

import uuid

from fastapi import APIRouter, Depends
from libs.auth.dependencies import require_admin
from libs.auth.models import AuthUser
from libs.common.logging import get_logger
from libs.db.session import get_async_db
from services.schedule_service.events import EventPublisher, get_event_publisher
from services.schedule_service.schemas import (
    AutoCheckoutStatsResponse,
    AutoCheckoutSweepResponse,
    BookingResponse,
    ForceStatusRequest,
    ForceStatusResponse,
    PendingSchedulesResponse,
    PromoteWaitlistResponse,
    ScheduleAutoCheckoutResponse,
    ScheduleResponse,
    StatusSweepResponse,
)
from services.schedule_service.services.auto_checkout import (
    auto_checkout_schedule,
    get_auto_checkout_stats,
    run_auto_checkout_sweep,
)
from services.schedule_service.services.schedules import (
    force_schedule_status,
    list_pending_schedules,
)
from services.schedule_service.services.status_scanner import run_status_sweep
from services.schedule_service.services.waitlist import promote_next_for_schedule
from sqlalchemy.ext.asyncio import AsyncSession

logger = get_logger(__name__)
router = APIRouter(prefix="/admin", tags=["admin-schedules"])


# ---------------------------------------------------------------------------
# Sweeps
# ---------------------------------------------------------------------------


@router.post("/sweeps/status", response_model=StatusSweepResponse)
async def trigger_status_sweep(
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    """Run the status transition scanner now."""
    logger.info("Manual status sweep triggered by %s", admin.user_id)
    sweep = await run_status_sweep(db, publisher=publisher)
    return StatusSweepResponse(
        rows_affected=sweep.rows_affected,
        started=sweep.started,
        completed=sweep.completed,
    )


@router.post("/sweeps/auto-checkout", response_model=AutoCheckoutSweepResponse)
async def trigger_auto_checkout_sweep(
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    """Run the auto check-out reconciler now."""
    logger.info("Manual auto check-out sweep triggered by %s", admin.user_id)
    sweep = await run_auto_checkout_sweep(db, publisher=publisher)
    return AutoCheckoutSweepResponse(
        success=not sweep.failed and not sweep.degraded,
        rows_affected=sweep.rows_affected,
        candidates=sweep.candidates,
        claimed=sweep.claimed,
        skipped=sweep.skipped,
        failed=sweep.failed,
        degraded=sweep.degraded,
        members_checked_out=sweep.members_checked_out,
        reminders_sent=sweep.reminders_sent,
    )


# ---------------------------------------------------------------------------
# Schedules
# ---------------------------------------------------------------------------


@router.get("/schedules/pending", response_model=PendingSchedulesResponse)
async def get_pending_schedules(
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Schedules the next sweeps would touch."""
    pending = await list_pending_schedules(db)
    return PendingSchedulesResponse(
        total=pending.total,
        to_start=[ScheduleResponse.model_validate(s) for s in pending.to_start],
        to_complete=[ScheduleResponse.model_validate(s) for s in pending.to_complete],
        to_auto_checkout=[
            ScheduleResponse.model_validate(s) for s in pending.to_auto_checkout
        ],
    )


@router.post("/schedules/{schedule_id}/status", response_model=ForceStatusResponse)
async def force_status(
    schedule_id: uuid.UUID,
    payload: ForceStatusRequest,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    """Set a schedule's status directly, bypassing the scanner."""
    logger.info(
        "Admin %s forcing schedule %s to %s",
        admin.user_id,
        schedule_id,
        payload.status.value,
    )
    result = await force_schedule_status(
        db,
        schedule_id,
        payload.status,
        reason=payload.reason,
        publisher=publisher,
    )
    return ForceStatusResponse(
        success=result.success,
        rows_affected=result.rows_affected,
        previous_status=result.previous_status,
        schedule=ScheduleResponse.model_validate(result.schedule),
    )


@router.post(
    "/schedules/{schedule_id}/auto-checkout",
    response_model=ScheduleAutoCheckoutResponse,
)
async def trigger_schedule_auto_checkout(
    schedule_id: uuid.UUID,
    admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    """Auto check-out one schedule now, without waiting for the grace window."""
    logger.info("Manual auto check-out of %s by %s", schedule_id, admin.user_id)
    outcome = await auto_checkout_schedule(db, schedule_id, publisher=publisher)
    return ScheduleAutoCheckoutResponse(
        success=not outcome.degraded,
        rows_affected=outcome.members_checked_out,
        schedule_id=schedule_id,
        members_checked_out=outcome.members_checked_out,
        degraded=outcome.degraded,
    )


@router.post(
    "/schedules/{schedule_id}/waitlist/promote",
    response_model=PromoteWaitlistResponse,
)
async def promote_waitlist(
    schedule_id: uuid.UUID,
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
    publisher: EventPublisher = Depends(get_event_publisher),
):
    """Give a free seat to the head of the waitlist, if there is one."""
    promoted = await promote_next_for_schedule(db, schedule_id, publisher=publisher)
    return PromoteWaitlistResponse(
        success=promoted is not None,
        rows_affected=1 if promoted else 0,
        promoted=BookingResponse.model_validate(promoted) if promoted else None,
    )


@router.get("/auto-checkout/stats", response_model=AutoCheckoutStatsResponse)
async def auto_checkout_stats(
    _admin: AuthUser = Depends(require_admin),
    db: AsyncSession = Depends(get_async_db),
):
    """Auto check-out activity over the last 24 hours."""
    stats = await get_auto_checkout_stats(db)
    return AutoCheckoutStatsResponse(
        since=stats.since,
        generated_at=stats.generated_at,
        schedules_auto_checked_out=stats.schedules_auto_checked_out,
        members_auto_checked_out=stats.members_auto_checked_out,
    )
