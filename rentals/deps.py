from dataclasses import dataclass, field
from urllib.parse import unquote
from uuid import UUID

from fastapi import Depends, Header, HTTPException, status

from rentals.scopes import BookingScope


@dataclass
class CurrentUser:
    id: UUID
    username: str
    scopes: list[str] = field(default_factory=list)
    email: str | None = None

    @property
    def is_admin(self) -> bool:
        return (
            "admin:scopes" in self.scopes
            or BookingScope.ADMIN in self.scopes
            or BookingScope.ADMIN_WRITE in self.scopes
        )

    @property
    def is_staff(self) -> bool:
        return self.is_admin or BookingScope.MANAGE in self.scopes

    @property
    def can_read_all(self) -> bool:
        return self.is_staff or BookingScope.ADMIN_READ in self.scopes


def get_current_user(
    x_user_id: str = Header(...),
    x_username: str = Header(...),
    x_user_scopes: str = Header(default=""),
    x_user_email: str | None = Header(default=None),
) -> CurrentUser:
    """
    Identity as forwarded by the gateway. Tokens are verified upstream;
    this service must not be exposed without it. Username and email arrive
    URL-quoted.
    """
    try:
        user_id = UUID(x_user_id)
    except (ValueError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user identity from gateway",
        ) from None

    scopes = x_user_scopes.split(" ") if x_user_scopes else []
    email = unquote(x_user_email) if x_user_email else None

    return CurrentUser(
        id=user_id, username=unquote(x_username), scopes=scopes, email=email
    )


def require_scopes(*required: str):
    """Dependency requiring every scope in `required`; 403 lists the missing ones."""

    async def _dep(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
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
can_sign_agreement = require_scopes(BookingScope.SIGN)


async def can_read_booking(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Own bookings with bookings:read; every booking for staff and admin readers."""
    if not (BookingScope.READ in current_user.scopes or current_user.can_read_all):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=(
                f"Requires '{BookingScope.READ}' (customers), "
                f"'{BookingScope.MANAGE}' (staff), "
                f"or '{BookingScope.ADMIN_READ}' (admin)."
            ),
        )
    return current_user


async def require_staff(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Staff (bookings:manage) or admin."""
    if not current_user.is_staff:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Requires '{BookingScope.MANAGE}' scope (staff) or admin.",
        )
    return current_user


async def require_admin(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    if not current_user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Requires '{BookingScope.ADMIN_WRITE}' scope.",
        )
    return current_user
