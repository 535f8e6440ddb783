# backend/delivery_notes/services/products_service.py
"""
Products Service

IMAGES: a product's image URIs are a child collection in product_images.
- create_product inserts the parent row, then one row per image, in order
- update_product deletes every image row for the product and reinserts the
  full list it was given (no diffing; an empty list clears the images)
- delete_product removes image rows explicitly before the product row
Each of these runs in a single transaction.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable

from ..entities import ExportProduct, Product as ProductEntity
from ..extensions import db
from ..models import Product, ProductImage, User
from ..time_utils import parse_iso_date
from ..validation import ValidationError, validate_product
from .concurrency import atomic

PRODUCT_MUTABLE_FIELDS = ("name", "price", "note", "user_id", "delivery_date")


def apply_product_patch(p: Product, product: ProductEntity) -> None:
    for k in PRODUCT_MUTABLE_FIELDS:
        setattr(p, k, getattr(product, k))


def _require_assignee(user_id: int | None) -> None:
    if user_id is not None and db.session.get(User, user_id) is None:
        raise ValidationError("Assigned user not found")


def _insert_images(product_id: int, images: Iterable[str]) -> None:
    # One row per image, flushed individually so row ids follow list order
    for image_path in images:
        db.session.add(ProductImage(product_id=product_id, image_path=image_path))
        db.session.flush()


def replace_images(product_id: int, images: Iterable[str]) -> None:
    """Bulk-replace the image collection. Caller owns the transaction."""
    db.session.query(ProductImage).filter_by(product_id=product_id).delete(synchronize_session=False)
    _insert_images(product_id, images)


def list_products() -> list[ProductEntity]:
    products = db.session.query(Product).order_by(Product.name.asc(), Product.id.asc()).all()
    return [p.to_entity() for p in products]


def get_product(product_id: int) -> ProductEntity | None:
    p = db.session.get(Product, product_id)
    return p.to_entity() if p else None


def create_product(product: ProductEntity) -> int:
    product = validate_product(product)
    with atomic():
        _require_assignee(product.user_id)
        p = Product()
        apply_product_patch(p, product)
        db.session.add(p)
        db.session.flush()
        product_id = p.id
        _insert_images(product_id, product.images)
    return product_id


def update_product(product: ProductEntity) -> bool:
    """
    Overwrite a product and replace its images with product.images.

    No-op (returns False) when the product carries no id or no longer exists.
    """
    if not product.id:
        return False
    product = validate_product(product)
    with atomic():
        p = db.session.get(Product, product.id)
        if p is None:
            return False
        _require_assignee(product.user_id)
        apply_product_patch(p, product)
        db.session.flush()
        replace_images(p.id, product.images)
    return True


def delete_product(product_id: int) -> None:
    with atomic():
        db.session.query(ProductImage).filter_by(product_id=product_id).delete(synchronize_session=False)
        db.session.query(Product).filter_by(id=product_id).delete(synchronize_session=False)


def list_products_for_export(product_ids: Iterable[int] | None = None) -> list[ExportProduct]:
    """
    Products with the assignee's name resolved, ordered by name.

    product_ids=None exports everything; unknown ids are skipped.
    """
    query = db.session.query(Product)
    if product_ids is not None:
        query = query.filter(Product.id.in_(list(product_ids)))
    products = query.order_by(Product.name.asc(), Product.id.asc()).all()
    return [
        ExportProduct(product=p.to_entity(), user_name=p.user.name if p.user else None)
        for p in products
    ]


@dataclass
class ProductFilter:
    """
    Client-side product filter.

    search: case-insensitive substring of the name
    user_id: only products assigned to this user
    date_from / date_to: inclusive delivery-date bounds (ISO strings); while
    either bound is set, products without a delivery date are excluded
    """
    search: str = ""
    user_id: int | None = None
    date_from: str | None = None
    date_to: str | None = None

    @property
    def is_active(self) -> bool:
        return bool(self.search or self.user_id or self.date_from or self.date_to)


def _matches(product: ProductEntity, flt: ProductFilter, date_from: date | None, date_to: date | None) -> bool:
    if flt.search and flt.search.lower() not in product.name.lower():
        return False

    if flt.user_id and product.user_id != flt.user_id:
        return False

    if date_from or date_to:
        try:
            delivered = parse_iso_date(product.delivery_date)
        except ValueError:
            delivered = None
        if delivered is None:
            return False
        if date_from and delivered < date_from:
            return False
        if date_to and delivered > date_to:
            return False

    return True


def filter_products(products: Iterable[ProductEntity], flt: ProductFilter) -> list[ProductEntity]:
    try:
        date_from = parse_iso_date(flt.date_from)
        date_to = parse_iso_date(flt.date_to)
    except ValueError:
        raise ValidationError("Filter dates must be ISO-8601 dates")
    return [p for p in products if _matches(p, flt, date_from, date_to)]
