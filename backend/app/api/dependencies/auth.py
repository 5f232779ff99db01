# backend/app/api/dependencies/auth.py
"""
Caller identity dependencies.

Authentication happens upstream; the gateway forwards the verified identity
in X-User-Id and X-User-Role headers which this service trusts as-is.
"""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Header

from ...core.exceptions import ForbiddenException, UnauthorizedException
from ...models.user import UserRole

STAFF_ROLES = frozenset({UserRole.PRO.value, UserRole.STAFF.value})


@dataclass(frozen=True)
class CurrentUser:
    id: str
    role: str

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def get_current_user(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
) -> CurrentUser:
    if not x_user_id:
        raise UnauthorizedException(
            "Missing caller identity", code="UNAUTHENTICATED"
        ).to_http_exception()
    role = (x_user_role or UserRole.CLIENT.value).strip().lower()
    if role not in {r.value for r in UserRole}:
        raise UnauthorizedException(
            f"Unknown role {role!r}", code="UNAUTHENTICATED"
        ).to_http_exception()
    return CurrentUser(id=x_user_id.strip(), role=role)


def require_staff(current_user: CurrentUser = Depends(get_current_user)) -> CurrentUser:
    """Lifecycle mutations other than a client's own cancellation are staff-only."""
    if not current_user.is_staff:
        raise ForbiddenException(
            "Only the business can perform this action", code="FORBIDDEN"
        ).to_http_exception()
    return current_user
