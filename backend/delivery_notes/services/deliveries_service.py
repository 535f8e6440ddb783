"""
Deliveries Service - delivery notes and their line items

A delivery's total_amount is supplied by the caller (see calculate_total)
and stored as given. Nothing here recomputes it when items change, and item
unit prices are snapshots that do not follow products.price.
"""

from __future__ import annotations

import logging
from typing import Iterable

from ..entities import (
    DELIVERY_STATUS_DELIVERED,
    Delivery as DeliveryEntity,
    DeliveryDetail,
    DeliveryItem as DeliveryItemEntity,
    DeliveryLine,
)
from ..extensions import db
from ..models import Delivery, DeliveryItem, Product, User
from ..validation import ValidationError, validate_delivery, validate_delivery_item
from .concurrency import atomic

logger = logging.getLogger(__name__)

DELIVERY_MUTABLE_FIELDS = ("user_id", "date", "status", "total_amount", "signature_path", "notes")
ITEM_MUTABLE_FIELDS = ("delivery_id", "product_id", "quantity", "unit_price")

UNKNOWN_PRODUCT_NAME = "Unknown"


def calculate_total(items: Iterable[DeliveryItemEntity]) -> float:
    """Sum of unit_price x quantity over the given lines."""
    return sum(item.unit_price * item.quantity for item in items)


def _require_user(user_id: int) -> None:
    if db.session.get(User, user_id) is None:
        raise ValidationError("User not found")


def _require_product(product_id: int) -> None:
    if db.session.get(Product, product_id) is None:
        raise ValidationError(f"Product {product_id} not found")


def _require_delivery(delivery_id: int) -> None:
    if db.session.get(Delivery, delivery_id) is None:
        raise ValidationError("Delivery not found")


def _new_item_row(item: DeliveryItemEntity, delivery_id: int) -> DeliveryItem:
    _require_product(item.product_id)
    row = DeliveryItem(
        delivery_id=delivery_id,
        product_id=item.product_id,
        quantity=item.quantity,
        unit_price=item.unit_price,
    )
    db.session.add(row)
    db.session.flush()
    return row


# --- Deliveries ---

def list_deliveries() -> list[DeliveryEntity]:
    deliveries = db.session.query(Delivery).order_by(Delivery.date.desc(), Delivery.id.desc()).all()
    return [d.to_entity() for d in deliveries]


def get_delivery(delivery_id: int) -> DeliveryEntity | None:
    d = db.session.get(Delivery, delivery_id)
    return d.to_entity() if d else None


def create_delivery(delivery: DeliveryEntity) -> int:
    delivery = validate_delivery(delivery)
    with atomic():
        _require_user(delivery.user_id)
        d = Delivery(**{k: getattr(delivery, k) for k in DELIVERY_MUTABLE_FIELDS})
        db.session.add(d)
        db.session.flush()
        delivery_id = d.id
    return delivery_id


def create_delivery_with_items(delivery: DeliveryEntity, items: Iterable[DeliveryItemEntity]) -> int:
    """
    Insert a delivery and all of its items in one transaction.

    Either every row is committed or none is; a failing item (e.g. unknown
    product) rolls back the parent row as well.
    """
    delivery = validate_delivery(delivery)
    items = [validate_delivery_item(item, require_delivery=False) for item in items]
    with atomic():
        _require_user(delivery.user_id)
        d = Delivery(**{k: getattr(delivery, k) for k in DELIVERY_MUTABLE_FIELDS})
        db.session.add(d)
        db.session.flush()
        delivery_id = d.id
        for item in items:
            _new_item_row(item, delivery_id)
    logger.debug("Created delivery %s with %d items", delivery_id, len(items))
    return delivery_id


def update_delivery(delivery: DeliveryEntity) -> bool:
    """No-op (returns False) when the delivery carries no id or no longer exists."""
    if not delivery.id:
        return False
    delivery = validate_delivery(delivery)
    with atomic():
        d = db.session.get(Delivery, delivery.id)
        if d is None:
            return False
        _require_user(delivery.user_id)
        for k in DELIVERY_MUTABLE_FIELDS:
            setattr(d, k, getattr(delivery, k))
    return True


def mark_delivered(delivery_id: int) -> bool:
    with atomic():
        d = db.session.get(Delivery, delivery_id)
        if d is None:
            return False
        d.status = DELIVERY_STATUS_DELIVERED
    return True


def delete_delivery(delivery_id: int) -> None:
    with atomic():
        db.session.query(DeliveryItem).filter_by(delivery_id=delivery_id).delete(synchronize_session=False)
        db.session.query(Delivery).filter_by(id=delivery_id).delete(synchronize_session=False)


def get_delivery_detail(delivery_id: int) -> DeliveryDetail | None:
    """Delivery with recipient and item lines (product names resolved)."""
    d = db.session.get(Delivery, delivery_id)
    if d is None:
        return None

    user = db.session.get(User, d.user_id)

    items = d.items
    product_ids = {item.product_id for item in items}
    names = {}
    if product_ids:
        rows = db.session.query(Product.id, Product.name).filter(Product.id.in_(product_ids)).all()
        names = {row.id: row.name for row in rows}

    lines = [
        DeliveryLine(item=item.to_entity(), product_name=names.get(item.product_id, UNKNOWN_PRODUCT_NAME))
        for item in items
    ]
    return DeliveryDetail(
        delivery=d.to_entity(),
        user=user.to_entity() if user else None,
        lines=lines,
    )


# --- Delivery items ---

def list_delivery_items(delivery_id: int) -> list[DeliveryItemEntity]:
    items = (
        db.session.query(DeliveryItem)
        .filter_by(delivery_id=delivery_id)
        .order_by(DeliveryItem.id.asc())
        .all()
    )
    return [i.to_entity() for i in items]


def get_delivery_item(item_id: int) -> DeliveryItemEntity | None:
    i = db.session.get(DeliveryItem, item_id)
    return i.to_entity() if i else None


def create_delivery_item(item: DeliveryItemEntity) -> int:
    item = validate_delivery_item(item)
    with atomic():
        _require_delivery(item.delivery_id)
        row = _new_item_row(item, item.delivery_id)
        item_id = row.id
    return item_id


def update_delivery_item(item: DeliveryItemEntity) -> bool:
    if not item.id:
        return False
    item = validate_delivery_item(item)
    with atomic():
        row = db.session.get(DeliveryItem, item.id)
        if row is None:
            return False
        _require_delivery(item.delivery_id)
        _require_product(item.product_id)
        for k in ITEM_MUTABLE_FIELDS:
            setattr(row, k, getattr(item, k))
    return True


def delete_delivery_item(item_id: int) -> None:
    with atomic():
        db.session.query(DeliveryItem).filter_by(id=item_id).delete(synchronize_session=False)


def delete_delivery_items(delivery_id: int) -> int:
    with atomic():
        deleted = (
            db.session.query(DeliveryItem)
            .filter_by(delivery_id=delivery_id)
            .delete(synchronize_session=False)
        )
    return deleted
