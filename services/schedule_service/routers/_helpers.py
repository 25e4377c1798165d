"""Shared helpers for schedule service routers."""

import asyncio
from typing import Awaitable, TypeVar

from libs.common.config import get_settings
from libs.common.logging import get_logger
from services.schedule_service.errors import OperationTimeoutError

logger = get_logger(__name__)

T = TypeVar("T")


async def with_request_timeout(operation: Awaitable[T]) -> T:
    """Bound a client-facing operation by BOOKING_REQUEST_TIMEOUT_SECONDS.

    On expiry the outcome is unknown to the caller, so it gets a retryable
    error instead of a guess.
    """
    timeout = get_settings().BOOKING_REQUEST_TIMEOUT_SECONDS
    try:
        return await asyncio.wait_for(operation, timeout=timeout)
    except asyncio.TimeoutError as exc:
        logger.warning("Booking operation exceeded %.1fs", timeout)
        raise OperationTimeoutError() from exc
