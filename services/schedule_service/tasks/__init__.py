"""Public exports for schedule background tasks."""

from services.schedule_service.tasks.lifecycle import (
    reconcile_auto_checkouts,
    transition_schedule_statuses,
)

__all__ = [
    "reconcile_auto_checkouts",
    "transition_schedule_statuses",
]
