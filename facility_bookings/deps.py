from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any
from urllib.parse import quote, unquote
from uuid import UUID

import httpx
from fastapi import Depends, Header, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from loguru import logger

from facility_bookings import settings
from facility_bookings.scopes import (
    BOOKING_SCOPE_DESCRIPTIONS,
    BookingScope,
    TrainerBookingScope,
)

oauth2_scheme = OAuth2PasswordBearer(
    tokenUrl=f"{settings.users_ms_url}/auth/token",
    scopes=BOOKING_SCOPE_DESCRIPTIONS,
)


@dataclass
class CurrentUser:
    id: UUID
    username: str
    scopes: list[str] = field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return BookingScope.ADMIN in self.scopes

    @property
    def is_console(self) -> bool:
        """Staff / managers / admins: see every booking, default to confirmed."""
        return self.is_admin or BookingScope.MANAGE in self.scopes


def get_current_user(
    x_user_id: str = Header(...),
    x_username: str = Header(...),
    x_user_scopes: str = Header(default=""),
) -> CurrentUser:
    """
    Reads the headers injected by the gateway after token validation.
    The JWT has already been verified, we just trust these headers.
    """
    try:
        user_id = UUID(x_user_id)
    except (ValueError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user identity from gateway",
        ) from None

    scopes = x_user_scopes.split(" ") if x_user_scopes else []

    return CurrentUser(id=user_id, username=unquote(x_username), scopes=scopes)


def require_scopes(*required: str):
    """
    Factory that returns a dependency enforcing one or more scopes.
    Admins pass every check.

    Usage:
        @router.get("/protected")
        async def route(user = Depends(require_scopes("bookings:read"))):
            ...
    """

    async def _dep(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        if current_user.is_admin:
            return current_user
        missing = [s for s in required if s not in current_user.scopes]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing required scopes: {', '.join(missing)}",
            )
        return current_user

    return _dep


# ---------------------------------------------------------------------------
# Pre-built scope dependencies
# ---------------------------------------------------------------------------

can_write_booking = require_scopes(BookingScope.WRITE)
can_cancel_booking = require_scopes(BookingScope.CANCEL)
can_manage_booking = require_scopes(BookingScope.MANAGE)
can_read_trainer_booking = require_scopes(TrainerBookingScope.READ)
can_manage_trainer_booking = require_scopes(TrainerBookingScope.MANAGE)


async def can_read_or_manage_booking(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """
    Passes if the user can read own bookings OR manage the company's bookings.
    - bookings:read   → customer sees own bookings
    - bookings:manage → console user sees every booking of the company
    """
    if not (BookingScope.READ in current_user.scopes or current_user.is_console):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=(
                f"Requires '{BookingScope.READ}' (customers) "
                f"or '{BookingScope.MANAGE}' (console users)."
            ),
        )
    return current_user


async def can_cancel_or_manage_booking(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    if not (BookingScope.CANCEL in current_user.scopes or current_user.is_console):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=(
                f"Requires '{BookingScope.CANCEL}' as the booking owner "
                f"or '{BookingScope.MANAGE}' (console users)."
            ),
        )
    return current_user


# ---------------------------------------------------------------------------
# ActivityClient: post-commit activity/telemetry events
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _get_activity_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.activity_ms_url,
        timeout=httpx.Timeout(5.0),
        follow_redirects=True,
    )


class ActivityClient:
    """
    Thin async wrapper around the activity-ms internal API.
    Called after a booking transaction has committed, so failures are
    logged and swallowed, the booking itself already exists.
    """

    @property
    def _client(self) -> httpx.AsyncClient:
        return _get_activity_http_client()

    def _headers(self, user: CurrentUser) -> dict[str, str]:
        return {
            "X-User-Id": str(user.id),
            "X-Username": quote(user.username),
            "X-User-Scopes": " ".join(user.scopes),
        }

    async def track(
        self,
        action: str,
        company_id: UUID,
        entity_type: str,
        entity_id: UUID,
        user: CurrentUser,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        try:
            resp = await self._client.post(
                "/activity",
                json={
                    "action": action,
                    "company_id": str(company_id),
                    "entity_type": entity_type,
                    "entity_id": str(entity_id),
                    "metadata": metadata or {},
                },
                headers=self._headers(user),
            )
        except httpx.HTTPError:
            logger.warning("Activity event {} for {} not delivered", action, entity_id)
            return False
        if resp.status_code >= 400:
            logger.warning(
                "activity-ms returned {} for event {}", resp.status_code, action
            )
            return False
        return True


_activity_client = ActivityClient()


def get_activity_client() -> ActivityClient:
    return _activity_client
