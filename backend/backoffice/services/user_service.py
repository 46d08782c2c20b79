# Overview: Read-only lookups against the identity collaborator's user table.

from ..extensions import db
from ..models import User
from ..errors import UserNotFound


def get_user(user_id) -> User:
    """Resolve an acting user, raising UserNotFound for unknown or inactive ids."""
    user = db.session.get(User, user_id) if user_id is not None else None
    if user is None or not user.is_active:
        raise UserNotFound(f"User {user_id} not found", {"user_id": user_id})
    return user


def find_user(user_id) -> User | None:
    if user_id is None:
        return None
    return db.session.get(User, user_id)
