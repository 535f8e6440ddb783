import pytest

from delivery_notes.entities import Product
from delivery_notes.models import ProductImage
from delivery_notes.services import products_service
from delivery_notes.services.products_service import ProductFilter, filter_products
from delivery_notes.validation import ValidationError


class TestProductCrud:
    def test_create_with_images_keeps_order(self, db_session):
        images = ["file:///c.jpg", "file:///a.jpg", "file:///b.jpg"]
        product_id = products_service.create_product(Product(name="Cheese", price=7.5, images=images))

        product = products_service.get_product(product_id)
        assert product.name == "Cheese"
        assert product.price == 7.5
        assert product.images == images

    def test_create_without_images(self, db_session):
        product_id = products_service.create_product(Product(name="Salt"))
        product = products_service.get_product(product_id)
        assert product.images == []
        assert product.price == 0.0

    def test_list_is_ordered_by_name(self, db_session):
        for name in ("Yoghurt", "Apples", "Milk"):
            products_service.create_product(Product(name=name))
        assert [p.name for p in products_service.list_products()] == ["Apples", "Milk", "Yoghurt"]

    def test_update_replaces_images(self, db_session, milk):
        product = products_service.get_product(milk)
        product.images = ["file:///new-1.jpg", "file:///new-2.jpg"]
        product.price = 1.4

        assert products_service.update_product(product) is True

        updated = products_service.get_product(milk)
        assert updated.images == ["file:///new-1.jpg", "file:///new-2.jpg"]
        assert updated.price == 1.4
        assert db_session.query(ProductImage).filter_by(product_id=milk).count() == 2

    def test_replacing_with_same_list_is_idempotent(self, db_session, milk):
        product = products_service.get_product(milk)
        product.images = ["file:///x.jpg", "file:///y.jpg"]

        products_service.update_product(product)
        products_service.update_product(product)

        assert products_service.get_product(milk).images == ["file:///x.jpg", "file:///y.jpg"]
        assert db_session.query(ProductImage).filter_by(product_id=milk).count() == 2

    def test_update_with_empty_images_clears_them(self, db_session, milk):
        product = products_service.get_product(milk)
        product.images = []

        products_service.update_product(product)

        assert products_service.get_product(milk).images == []
        assert db_session.query(ProductImage).filter_by(product_id=milk).count() == 0

    def test_update_missing_product_leaves_no_orphan_images(self, db_session):
        ghost = Product(name="Ghost", images=["file:///ghost.jpg"], id=999999)

        assert products_service.update_product(ghost) is False
        assert db_session.query(ProductImage).filter_by(product_id=999999).count() == 0

    def test_delete_removes_images(self, db_session, milk):
        products_service.delete_product(milk)

        assert products_service.get_product(milk) is None
        assert db_session.query(ProductImage).filter_by(product_id=milk).count() == 0

    def test_assignee_must_exist(self, db_session):
        with pytest.raises(ValidationError):
            products_service.create_product(Product(name="Orphan", user_id=123456))
        assert products_service.list_products() == []

    @pytest.mark.parametrize("price", [-1, "abc", 10_000_000])
    def test_invalid_price_rejected(self, db_session, price):
        with pytest.raises(ValidationError):
            products_service.create_product(Product(name="Bad", price=price))

    def test_invalid_delivery_date_rejected(self, db_session):
        with pytest.raises(ValidationError):
            products_service.create_product(Product(name="Bad", delivery_date="next tuesday"))


class TestProductExport:
    def test_export_rows_resolve_user_names(self, db_session, customer):
        assigned = products_service.create_product(Product(name="Butter", user_id=customer))
        products_service.create_product(Product(name="Flour"))

        rows = products_service.list_products_for_export()

        assert [(r.product.name, r.user_name) for r in rows] == [("Butter", "Ada Customer"), ("Flour", None)]
        assert rows[0].product.id == assigned

    def test_export_selection_skips_unknown_ids(self, db_session, milk, bread):
        rows = products_service.list_products_for_export([milk, 777777])
        assert [r.product.id for r in rows] == [milk]


class TestProductFilter:
    def setup_method(self):
        self.products = [
            Product(id=1, name="Whole Milk", user_id=1, delivery_date="2024-01-10"),
            Product(id=2, name="Skimmed milk", user_id=2, delivery_date="2024-02-15T08:00:00Z"),
            Product(id=3, name="Bread", user_id=1),
            Product(id=4, name="Butter", delivery_date="2024-03-01"),
        ]

    def _ids(self, **kwargs):
        return [p.id for p in filter_products(self.products, ProductFilter(**kwargs))]

    def test_empty_filter_keeps_everything(self):
        assert ProductFilter().is_active is False
        assert self._ids() == [1, 2, 3, 4]

    def test_search_is_case_insensitive(self):
        assert self._ids(search="MILK") == [1, 2]

    def test_user_filter(self):
        assert self._ids(user_id=1) == [1, 3]

    def test_date_range_is_inclusive(self):
        assert self._ids(date_from="2024-01-10", date_to="2024-02-15") == [1, 2]

    def test_date_bound_excludes_undated_products(self):
        assert self._ids(date_from="2000-01-01") == [1, 2, 4]

    def test_filters_combine(self):
        assert self._ids(search="milk", user_id=2, date_to="2024-12-31") == [2]

    def test_bad_filter_date(self):
        with pytest.raises(ValidationError):
            self._ids(date_from="yesterday")
