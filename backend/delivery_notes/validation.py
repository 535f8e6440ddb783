from __future__ import annotations

from dataclasses import replace
from typing import Any

from .entities import DELIVERY_STATUSES, Delivery, DeliveryItem, Product, User
from .time_utils import parse_iso_datetime


# Maximum price: 9,999,999.99
# This prevents nonsensical prices from reaching exports
MAX_PRICE = 9_999_999.99


class ValidationError(ValueError):
    """Malformed entity payload."""


class ConflictError(ValueError):
    """Business rule conflict (e.g., deleting a user that still has deliveries)."""


def _require_text(value: Any, field: str) -> str:
    if value is None:
        raise ValidationError(f"{field} is required")
    text = str(value).strip()
    if not text:
        raise ValidationError(f"{field} cannot be blank")
    return text


def _optional_text(value: Any) -> str | None:
    # Empty strings are stored as NULL
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _coerce_int(value: Any, field: str) -> int:
    # bool is a subclass of int; reject it explicitly
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be an integer")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        stripped = value.strip()
        if not stripped or "." in stripped or "e" in stripped.lower():
            raise ValidationError(f"{field} must be a plain integer")
        try:
            return int(stripped)
        except ValueError:
            raise ValidationError(f"{field} must be an integer")
    raise ValidationError(f"{field} must be an integer")


def _coerce_float(value: Any, field: str) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            raise ValidationError(f"{field} must be a number")
    raise ValidationError(f"{field} must be a number")


def _optional_id(value: Any, field: str) -> int | None:
    # 0 and "" mean "not assigned"
    if value in (None, "", 0):
        return None
    return _coerce_int(value, field)


def _check_iso(value: str | None, field: str) -> None:
    if value is None:
        return
    try:
        parse_iso_datetime(value)
    except ValueError:
        raise ValidationError(f"{field} must be an ISO-8601 date")


def validate_user(user: User) -> User:
    return replace(
        user,
        name=_require_text(user.name, "name"),
        address=(user.address or "").strip(),
        phone=(user.phone or "").strip(),
        email=_optional_text(user.email),
    )


def validate_product(product: Product) -> Product:
    price = _coerce_float(product.price if product.price is not None else 0, "price")
    if price < 0:
        raise ValidationError("price must be >= 0")
    if price > MAX_PRICE:
        raise ValidationError(f"price cannot exceed {MAX_PRICE:,.2f}")

    delivery_date = _optional_text(product.delivery_date)
    _check_iso(delivery_date, "delivery_date")

    images = []
    for uri in product.images or []:
        images.append(_require_text(uri, "image"))

    return replace(
        product,
        name=_require_text(product.name, "name"),
        price=price,
        note=_optional_text(product.note),
        user_id=_optional_id(product.user_id, "user_id"),
        delivery_date=delivery_date,
        images=images,
    )


def validate_delivery(delivery: Delivery) -> Delivery:
    if delivery.user_id in (None, "", 0):
        raise ValidationError("user_id is required")
    date = _require_text(delivery.date, "date")
    _check_iso(date, "date")

    status = _require_text(delivery.status, "status")
    if status not in DELIVERY_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(DELIVERY_STATUSES)}")

    return replace(
        delivery,
        user_id=_coerce_int(delivery.user_id, "user_id"),
        date=date,
        status=status,
        total_amount=_coerce_float(delivery.total_amount or 0, "total_amount"),
        signature_path=delivery.signature_path or "",
        notes=delivery.notes or "",
    )


def validate_delivery_item(item: DeliveryItem, *, require_delivery: bool = True) -> DeliveryItem:
    """
    require_delivery=False is used while building a delivery and its items
    together; the delivery id is filled in after the parent row is flushed.
    """
    if require_delivery and item.delivery_id in (None, "", 0):
        raise ValidationError("delivery_id is required")
    if item.product_id in (None, "", 0):
        raise ValidationError("product_id is required")

    quantity = _coerce_int(item.quantity, "quantity")
    if quantity < 1:
        raise ValidationError("quantity must be >= 1")

    unit_price = _coerce_float(item.unit_price if item.unit_price is not None else 0, "unit_price")
    if unit_price < 0:
        raise ValidationError("unit_price must be >= 0")

    return replace(
        item,
        delivery_id=_coerce_int(item.delivery_id, "delivery_id") if item.delivery_id else None,
        product_id=_coerce_int(item.product_id, "product_id"),
        quantity=quantity,
        unit_price=unit_price,
    )
