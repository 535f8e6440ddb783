from __future__ import annotations

from ..extensions import db
from ..entities import User as UserEntity


class User(db.Model):
    """
    A customer: the recipient of deliveries and optional assignee of products.

    Deleting a user is guarded in the service layer: products are detached,
    and deletion is refused while deliveries still reference the user.
    """
    __tablename__ = "users"
    __table_args__ = (
        db.Index("ix_users_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.Text, nullable=False)
    address = db.Column(db.Text, nullable=True)
    phone = db.Column(db.Text, nullable=True)
    email = db.Column(db.Text, nullable=True)

    def __repr__(self) -> str:
        return f"<User id={self.id} name={self.name!r}>"

    def to_entity(self) -> UserEntity:
        return UserEntity(
            id=self.id,
            name=self.name,
            address=self.address or "",
            phone=self.phone or "",
            email=self.email,
        )
