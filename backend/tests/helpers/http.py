"""Identity headers the gateway forwards."""

from app.models.user import User


def as_user(user: User) -> dict:
    return {"X-User-Id": user.id, "X-User-Role": user.role}
