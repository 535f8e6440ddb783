from __future__ import annotations

from ..extensions import db
from ..entities import (
    DELIVERY_STATUS_PENDING,
    Delivery as DeliveryEntity,
    DeliveryItem as DeliveryItemEntity,
)


class Delivery(db.Model):
    """
    Delivery note header.

    total_amount is a snapshot computed by the caller at creation time.
    It is never recomputed from delivery_items.
    """
    __tablename__ = "deliveries"
    __table_args__ = (
        db.Index("ix_deliveries_date", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    # ISO-8601 string
    date = db.Column(db.Text, nullable=False)

    # "Pending" | "Delivered", stored as free text
    status = db.Column(db.Text, nullable=True, default=DELIVERY_STATUS_PENDING, server_default=DELIVERY_STATUS_PENDING)
    total_amount = db.Column(db.Float, nullable=True, default=0.0, server_default=db.text("0"))
    signature_path = db.Column(db.Text, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    items = db.relationship(
        "DeliveryItem",
        order_by="DeliveryItem.id",
        lazy="select",
        viewonly=True,
    )

    def __repr__(self) -> str:
        return f"<Delivery id={self.id} user_id={self.user_id} status={self.status!r}>"

    def to_entity(self) -> DeliveryEntity:
        return DeliveryEntity(
            id=self.id,
            user_id=self.user_id,
            date=self.date,
            status=self.status or DELIVERY_STATUS_PENDING,
            total_amount=self.total_amount if self.total_amount is not None else 0.0,
            signature_path=self.signature_path or "",
            notes=self.notes or "",
        )


class DeliveryItem(db.Model):
    """
    One line of a delivery.

    unit_price is the product price at delivery creation time; it does not
    follow later changes to products.price.
    """
    __tablename__ = "delivery_items"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    delivery_id = db.Column(db.Integer, db.ForeignKey("deliveries.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=True, default=1, server_default=db.text("1"))
    unit_price = db.Column(db.Float, nullable=True, default=0.0, server_default=db.text("0"))

    def __repr__(self) -> str:
        return f"<DeliveryItem id={self.id} delivery_id={self.delivery_id} product_id={self.product_id} qty={self.quantity}>"

    def to_entity(self) -> DeliveryItemEntity:
        return DeliveryItemEntity(
            id=self.id,
            delivery_id=self.delivery_id,
            product_id=self.product_id,
            quantity=self.quantity if self.quantity is not None else 1,
            unit_price=self.unit_price if self.unit_price is not None else 0.0,
        )
