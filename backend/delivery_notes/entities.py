# Overview: Plain entity records handed across the repository boundary.
#
# Repository calls run on the store worker thread inside a short-lived session,
# so ORM instances never leave it; callers get these detached dataclasses.

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

DELIVERY_STATUS_PENDING = "Pending"
DELIVERY_STATUS_DELIVERED = "Delivered"
DELIVERY_STATUSES = (DELIVERY_STATUS_PENDING, DELIVERY_STATUS_DELIVERED)


@dataclass
class User:
    name: str
    address: str = ""
    phone: str = ""
    email: Optional[str] = None
    id: Optional[int] = None


@dataclass
class Product:
    name: str
    price: float = 0.0
    note: Optional[str] = None
    user_id: Optional[int] = None
    delivery_date: Optional[str] = None
    images: list[str] = field(default_factory=list)
    id: Optional[int] = None


@dataclass
class Delivery:
    user_id: int
    date: str
    status: str = DELIVERY_STATUS_PENDING
    total_amount: float = 0.0
    signature_path: str = ""
    notes: str = ""
    id: Optional[int] = None


@dataclass
class DeliveryItem:
    product_id: int
    quantity: int = 1
    unit_price: float = 0.0
    delivery_id: Optional[int] = None
    id: Optional[int] = None

    @property
    def subtotal(self) -> float:
        return self.unit_price * self.quantity


@dataclass
class ExportProduct:
    """Product with its assignee resolved to a display name."""
    product: Product
    user_name: Optional[str] = None


@dataclass
class DeliveryLine:
    item: DeliveryItem
    product_name: str


@dataclass
class DeliveryDetail:
    """Delivery hydrated with its recipient and line items, ready for export."""
    delivery: Delivery
    user: Optional[User]
    lines: list[DeliveryLine] = field(default_factory=list)


@dataclass
class DashboardStats:
    users: int = 0
    products: int = 0
    deliveries: int = 0
    pending_deliveries: int = 0
    delivered_deliveries: int = 0
