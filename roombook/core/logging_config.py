# roombook/core/logging_config.py
import logging

from roombook.core.config import get_settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: str | None = None) -> None:
    """
    Install a single stream handler on the `roombook` logger.

    Calling this more than once only adjusts the level.
    """
    settings = get_settings()
    resolved = (level or settings.LOG_LEVEL or "INFO").upper()

    logger = logging.getLogger("roombook")
    logger.setLevel(resolved)

    if not any(getattr(h, "_roombook", False) for h in logger.handlers):
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler._roombook = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
