"""FastAPI dependency injection functions."""

import secrets
from typing import Optional

from fastapi import Depends, Header

from app.config import Settings, get_settings
from app.container import EngineContainer, get_container
from core.exceptions import UnauthorizedError


def get_engine() -> EngineContainer:
    """The engine container; tests replace it via dependency_overrides."""
    return get_container()


async def require_cron_secret(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
) -> None:
    """Bearer-token check for the cron endpoint.

    Raises:
        UnauthorizedError: If CRON_SECRET is unset or the header does not match
    """
    expected = f"Bearer {settings.CRON_SECRET}"
    if not settings.CRON_SECRET or not secrets.compare_digest(authorization or "", expected):
        raise UnauthorizedError("Unauthorized")
