"""FastAPI application for the Schedule Service."""

from dotenv import load_dotenv
from fastapi import FastAPI

load_dotenv()

from libs.common.error_handler import add_exception_handlers
from libs.common.middleware import add_observability_middleware
from services.schedule_service.routers import (
    admin_router,
    bookings_router,
    schedules_router,
)


def create_app() -> FastAPI:
    """Create and configure the Schedule Service FastAPI app."""
    app = FastAPI(
        title="Schedule Service",
        version="0.1.0",
        description="Class schedule lifecycle, booking and attendance engine.",
    )

    # Structured logging + request tracing
    add_observability_middleware(app)

    # DomainError -> {"detail", "code", "retryable"}
    add_exception_handlers(app)

    @app.get("/health", tags=["system"])
    async def health_check() -> dict[str, str]:
        """Health check endpoint."""
        return {"status": "ok", "service": "schedule"}

    # Member-facing routes
    app.include_router(bookings_router)
    app.include_router(schedules_router)

    # Admin tooling
    app.include_router(admin_router)

    return app


app = create_app()
