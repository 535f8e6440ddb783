# Overview: Service-layer operations for users; runs inside an app context on the store thread.

from __future__ import annotations

import logging

from ..entities import User as UserEntity
from ..extensions import db
from ..models import Delivery, Product, User
from ..validation import ConflictError, validate_user
from .concurrency import atomic

logger = logging.getLogger(__name__)

USER_MUTABLE_FIELDS = ("name", "address", "phone", "email")


def apply_user_patch(u: User, user: UserEntity) -> None:
    for k in USER_MUTABLE_FIELDS:
        setattr(u, k, getattr(user, k))


def list_users() -> list[UserEntity]:
    users = db.session.query(User).order_by(User.name.asc(), User.id.asc()).all()
    return [u.to_entity() for u in users]


def get_user(user_id: int) -> UserEntity | None:
    u = db.session.get(User, user_id)
    return u.to_entity() if u else None


def create_user(user: UserEntity) -> int:
    user = validate_user(user)
    with atomic():
        u = User()
        apply_user_patch(u, user)
        db.session.add(u)
        db.session.flush()
        user_id = u.id
    logger.debug("Created user %s", user_id)
    return user_id


def update_user(user: UserEntity) -> bool:
    """No-op (returns False) when the user carries no id or no longer exists."""
    if not user.id:
        return False
    user = validate_user(user)
    with atomic():
        u = db.session.get(User, user.id)
        if u is None:
            return False
        apply_user_patch(u, user)
    return True


def delete_user(user_id: int) -> None:
    """
    Delete a user.

    Products assigned to the user are detached (user_id set to NULL).
    Deliveries require their recipient, so deletion is refused while any
    delivery still references the user.
    """
    with atomic():
        has_deliveries = db.session.query(Delivery.id).filter_by(user_id=user_id).first() is not None
        if has_deliveries:
            raise ConflictError("User has deliveries and cannot be deleted")

        detached = (
            db.session.query(Product)
            .filter_by(user_id=user_id)
            .update({Product.user_id: None}, synchronize_session=False)
        )
        db.session.query(User).filter_by(id=user_id).delete(synchronize_session=False)
    if detached:
        logger.info("Detached %d products from deleted user %s", detached, user_id)
