# roombook/main.py
from http import HTTPStatus

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from roombook.api.routes import bookings, health, meetings
from roombook.core.config import get_settings
from roombook.core.errors import (
    AuthorizationError,
    ConflictError,
    NotFoundError,
    ProviderAuthError,
    ProviderError,
    RoomConflictError,
    SchedulingError,
    ValidationError,
)
from roombook.core.logging_config import configure_logging

# Checked in order; the first matching class wins.
ERROR_STATUS = (
    (ValidationError, HTTPStatus.BAD_REQUEST),
    (ConflictError, HTTPStatus.CONFLICT),
    (RoomConflictError, HTTPStatus.CONFLICT),
    (AuthorizationError, HTTPStatus.FORBIDDEN),
    (NotFoundError, HTTPStatus.NOT_FOUND),
    (ProviderAuthError, HTTPStatus.BAD_GATEWAY),
    (ProviderError, HTTPStatus.BAD_GATEWAY),
)


def status_for(exc: SchedulingError) -> HTTPStatus:
    for error_type, status in ERROR_STATUS:
        if isinstance(exc, error_type):
            return status
    return HTTPStatus.INTERNAL_SERVER_ERROR


async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    status = status_for(exc)
    return JSONResponse(
        status_code=status,
        content={
            "status": "failure",
            "error": type(exc).__name__,
            "message": str(exc),
        },
    )


def create_app() -> FastAPI:
    """
    Application factory for the room booking service.
    """
    settings = get_settings()
    configure_logging(settings.LOG_LEVEL)

    app = FastAPI(
        title=settings.APP_NAME,
        description=(
            "Books meeting rooms through Microsoft Graph and reports each day's\n"
            "meetings across all room mailboxes, merging meetings that occupy\n"
            "several rooms into one entry."
        ),
        version="0.1.0",
    )

    app.add_exception_handler(SchedulingError, scheduling_error_handler)

    # Routers
    app.include_router(health.router)
    app.include_router(bookings.router)
    app.include_router(meetings.router)

    return app


app = create_app()
