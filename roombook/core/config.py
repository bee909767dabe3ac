# roombook/core/config.py
from functools import lru_cache
from zoneinfo import ZoneInfo

from pydantic import AnyHttpUrl, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from roombook.schemas.meeting import RoomMailbox


class Settings(BaseSettings):
    """
    Global application configuration.

    Values are loaded from environment variables at runtime and are treated
    as immutable for the lifetime of the process:
    - Graph API client credentials
    - the fixed civil timezone used for every booking and listing
    - the table of known room mailboxes
    - administrator mailboxes allowed to cancel/modify any meeting
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
    )

    APP_NAME: str = "RoomBook"
    APP_ENV: str = Field("local", description="Environment name: local/dev/stage/prod")
    LOG_LEVEL: str = Field("INFO", description="Root log level for the service.")

    GRAPH_TENANT_ID: str | None = None
    GRAPH_CLIENT_ID: str | None = None
    GRAPH_CLIENT_SECRET: str | None = None
    GRAPH_BASE_URL: AnyHttpUrl | None = None
    GRAPH_TIMEOUT_SECONDS: float = Field(
        default=10.0,
        description="HTTP timeout applied to every Graph request.",
    )

    CALENDAR_TIMEZONE: str = Field(
        default="Asia/Kolkata",
        description="IANA name of the fixed civil timezone all meetings are expressed in.",
    )
    OUTLOOK_TIMEZONE: str = Field(
        default="India Standard Time",
        description=(
            "Windows timezone name matching CALENDAR_TIMEZONE. Sent to Graph in the "
            "`Prefer: outlook.timezone` header and on created events."
        ),
    )

    ROOM_MAILBOXES: str = Field(
        default=(
            "gfmeeting@example.com=Ground Floor Meeting Room,"
            "ffmeeting@example.com=1st Floor Meeting Room,"
            "tfmeeting@example.com=3rd Floor Meeting Room,"
            "conference@example.com=Conference Room"
        ),
        description="Comma-separated `address=Display Name` pairs of room mailboxes.",
    )
    ADMIN_EMAILS: str | None = Field(
        default=None,
        description="Comma-separated list of administrator email addresses.",
    )

    MAILBOX_QUERY_TIMEOUT_SECONDS: float = Field(
        default=8.0,
        description="Timeout for a single room mailbox calendar query.",
    )
    LIST_DAY_DEADLINE_SECONDS: float = Field(
        default=15.0,
        description="Overall deadline for joining all mailbox queries of a day listing.",
    )

    INTERNAL_API_KEY: str | None = Field(
        default=None,
        description="API key required in the X-Internal-Api-Key header when configured.",
    )

    @property
    def timezone(self) -> ZoneInfo:
        return ZoneInfo(self.CALENDAR_TIMEZONE)

    @property
    def room_mailboxes(self) -> list[RoomMailbox]:
        """
        Parse ROOM_MAILBOXES into RoomMailbox entries.

        An entry without `=` uses the address as its display name.
        """
        rooms: list[RoomMailbox] = []
        for chunk in self.ROOM_MAILBOXES.split(","):
            chunk = chunk.strip()
            if not chunk:
                continue
            address, _, display_name = chunk.partition("=")
            address = address.strip()
            rooms.append(
                RoomMailbox(
                    address=address,
                    display_name=display_name.strip() or address,
                )
            )
        return rooms

    @property
    def admin_emails(self) -> frozenset[str]:
        if not self.ADMIN_EMAILS:
            return frozenset()
        return frozenset(
            email.strip().casefold()
            for email in self.ADMIN_EMAILS.split(",")
            if email.strip()
        )


@lru_cache()
def get_settings() -> Settings:
    """
    Cached accessor for application settings.

    Using LRU cache ensures settings are read and validated only once,
    while still being easily importable across the app.
    """
    return Settings()
