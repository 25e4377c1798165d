"""Typed errors raised by the booking engine.

Routers never translate these by hand: ``add_exception_handlers`` renders
every ``DomainError`` with its status code, machine code and retry hint.
"""

import functools
from typing import Awaitable, Callable, TypeVar

from fastapi import status
from libs.common.error_handler import DomainError
from sqlalchemy.exc import DBAPIError, IntegrityError

T = TypeVar("T")


class ScheduleNotFoundError(DomainError):
    """Schedule not found"""

    status_code = status.HTTP_404_NOT_FOUND
    code = "schedule_not_found"


class BookingNotFoundError(DomainError):
    """Booking not found"""

    status_code = status.HTTP_404_NOT_FOUND
    code = "booking_not_found"


class ScheduleNotOpenError(DomainError):
    """Schedule is not in a state that allows this operation"""

    status_code = status.HTTP_409_CONFLICT
    code = "schedule_not_open"


class DuplicateBookingError(DomainError):
    """Member already holds an active booking for this schedule"""

    status_code = status.HTTP_409_CONFLICT
    code = "duplicate_booking"


class CapacityFullError(DomainError):
    """Schedule is full"""

    status_code = status.HTTP_409_CONFLICT
    code = "capacity_full"


class BookingNotCancellableError(DomainError):
    """Booking can no longer be cancelled"""

    status_code = status.HTTP_409_CONFLICT
    code = "booking_not_cancellable"


class NotEligibleError(DomainError):
    """Member is not eligible to check in"""

    status_code = status.HTTP_403_FORBIDDEN
    code = "not_eligible"


class NoOpenSessionError(DomainError):
    """No open check-in session to close"""

    status_code = status.HTTP_409_CONFLICT
    code = "no_open_session"


class ConcurrencyConflictError(DomainError):
    """A concurrent update won the race; retry the request"""

    status_code = status.HTTP_409_CONFLICT
    code = "concurrency_conflict"
    retryable = True


class OperationTimeoutError(DomainError):
    """The operation did not finish in time; its outcome is unknown, retry"""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "operation_timeout"
    retryable = True


class PersistenceError(DomainError):
    """Schedule store unavailable"""

    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    code = "persistence_error"
    retryable = True


def storage_operation(func: Callable[..., Awaitable[T]]) -> Callable[..., Awaitable[T]]:
    """Re-raise driver failures from an engine operation as PersistenceError.

    Integrity violations are left alone; callers map those to domain errors.
    """

    @functools.wraps(func)
    async def wrapper(*args, **kwargs) -> T:
        try:
            return await func(*args, **kwargs)
        except IntegrityError:
            raise
        except DBAPIError as exc:
            raise PersistenceError(f"Schedule store error: {exc.orig!r}") from exc

    return wrapper
