# roombook/api/routes/health.py
from datetime import datetime, timezone

from fastapi import APIRouter
from pydantic import BaseModel, Field

from roombook.core.config import get_settings


router = APIRouter(tags=["Health"])


class HealthResponse(BaseModel):
    """
    Response schema for the health check endpoint.
    """

    status: str = Field(..., description="Overall health status of the service.", examples=["ok"])
    app_name: str = Field(..., description="Human-friendly name of the running application.")
    environment: str = Field(..., description="Current deployment environment (local/dev/stage/prod).")
    timezone: str = Field(..., description="Fixed civil timezone meetings are reported in.")
    room_count: int = Field(..., description="Number of configured room mailboxes.")
    timestamp_utc: datetime = Field(
        ...,
        description="Server-side timestamp (UTC) at which this health check was generated.",
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check for the room booking service",
    description=(
        "Lightweight endpoint to verify that the backend is up and responding. "
        "It does not call the calendar provider."
    ),
)
async def health_check() -> HealthResponse:
    settings = get_settings()
    return HealthResponse(
        status="ok",
        app_name=settings.APP_NAME,
        environment=settings.APP_ENV,
        timezone=settings.CALENDAR_TIMEZONE,
        room_count=len(settings.room_mailboxes),
        timestamp_utc=datetime.now(tz=timezone.utc),
    )
