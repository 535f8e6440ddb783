from __future__ import annotations

from ..extensions import db
from ..entities import Product as ProductEntity


class Product(db.Model):
    """
    Product master data.

    IMAGES:
    Image URIs live in product_images (one row per URI). The collection is
    loaded eagerly with the product and ordered by row id, which is insertion
    order. Updates replace the whole collection (see products_service).
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_name", "name"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.Text, nullable=False)
    price = db.Column(db.Float, nullable=True, default=0.0, server_default=db.text("0"))
    note = db.Column(db.Text, nullable=True)

    # Optional assignee
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    # ISO-8601 date string, kept as text
    delivery_date = db.Column(db.Text, nullable=True)

    images = db.relationship(
        "ProductImage",
        order_by="ProductImage.id",
        lazy="selectin",
        viewonly=True,
    )
    user = db.relationship("User", lazy="joined", viewonly=True)

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} price={self.price}>"

    def to_entity(self) -> ProductEntity:
        return ProductEntity(
            id=self.id,
            name=self.name,
            price=self.price if self.price is not None else 0.0,
            note=self.note,
            user_id=self.user_id,
            delivery_date=self.delivery_date,
            images=[img.image_path for img in self.images],
        )


class ProductImage(db.Model):
    __tablename__ = "product_images"
    __table_args__ = (
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(
        db.Integer,
        db.ForeignKey("products.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    image_path = db.Column(db.Text, nullable=False)

    def __repr__(self) -> str:
        return f"<ProductImage id={self.id} product_id={self.product_id} path={self.image_path!r}>"
