"""Global exception handlers for consistent JSON error responses.

Usage:
    from libs.common.error_handler import add_exception_handlers

    app = FastAPI()
    add_exception_handlers(app)
"""

from typing import Optional

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from libs.common.logging import get_logger, get_request_id

logger = get_logger(__name__)


class DomainError(Exception):
    """Base class for typed business errors surfaced to API callers.

    Subclasses set ``status_code`` and ``code``; ``retryable`` tells clients
    whether the same request may succeed if sent again.
    """

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "domain_error"
    retryable: bool = False

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.__class__.__doc__ or self.code
        super().__init__(self.detail)


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    log = logger.warning if exc.status_code < 500 else logger.error
    log(
        "Domain error %s on %s %s: %s",
        exc.code,
        request.method,
        request.url.path,
        exc.detail,
    )
    headers = {}
    request_id = get_request_id()
    if request_id:
        headers["X-Request-ID"] = request_id
    if exc.retryable:
        headers["Retry-After"] = "1"
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code, "retryable": exc.retryable},
        headers=headers,
    )


def add_exception_handlers(app: FastAPI) -> None:
    """Register handlers for every DomainError subclass."""
    app.add_exception_handler(DomainError, domain_error_handler)
