import unittest

from delivery_notes.entities import Delivery, DeliveryItem, Product, User
from delivery_notes.validation import (
    MAX_PRICE,
    ValidationError,
    validate_delivery,
    validate_delivery_item,
    validate_product,
    validate_user,
)


class UserValidationTests(unittest.TestCase):
    def test_normalizes_text(self):
        user = validate_user(User(name=" Ada ", address=None, phone=" 555 ", email="  "))
        self.assertEqual(user.name, "Ada")
        self.assertEqual(user.address, "")
        self.assertEqual(user.phone, "555")
        self.assertIsNone(user.email)

    def test_name_required(self):
        with self.assertRaises(ValidationError):
            validate_user(User(name=None))


class ProductValidationTests(unittest.TestCase):
    def test_coerces_numbers(self):
        product = validate_product(Product(name="Tea", price="2.50", user_id="7"))
        self.assertEqual(product.price, 2.5)
        self.assertEqual(product.user_id, 7)

    def test_zero_user_id_means_unassigned(self):
        self.assertIsNone(validate_product(Product(name="Tea", user_id=0)).user_id)

    def test_price_bounds(self):
        self.assertEqual(validate_product(Product(name="Max", price=MAX_PRICE)).price, MAX_PRICE)
        with self.assertRaises(ValidationError):
            validate_product(Product(name="Too much", price=MAX_PRICE + 1))
        with self.assertRaises(ValidationError):
            validate_product(Product(name="Bool", price=True))

    def test_blank_image_rejected(self):
        with self.assertRaises(ValidationError):
            validate_product(Product(name="Pic", images=["file:///ok.jpg", "  "]))

    def test_user_id_must_be_plain_integer(self):
        with self.assertRaises(ValidationError):
            validate_product(Product(name="Tea", user_id="1.5"))


class DeliveryValidationTests(unittest.TestCase):
    def test_defaults(self):
        delivery = validate_delivery(Delivery(user_id="3", date="2024-01-01T08:00:00Z", notes=None))
        self.assertEqual(delivery.user_id, 3)
        self.assertEqual(delivery.status, "Pending")
        self.assertEqual(delivery.notes, "")
        self.assertEqual(delivery.signature_path, "")

    def test_user_and_date_required(self):
        with self.assertRaises(ValidationError):
            validate_delivery(Delivery(user_id=None, date="2024-01-01"))
        with self.assertRaises(ValidationError):
            validate_delivery(Delivery(user_id=1, date=""))
        with self.assertRaises(ValidationError):
            validate_delivery(Delivery(user_id=1, date="01/02/2024"))

    def test_item_rules(self):
        item = validate_delivery_item(DeliveryItem(product_id="4", quantity="2", unit_price="1.5"), require_delivery=False)
        self.assertEqual((item.product_id, item.quantity, item.unit_price, item.delivery_id), (4, 2, 1.5, None))

        with self.assertRaises(ValidationError):
            validate_delivery_item(DeliveryItem(product_id=4))
        with self.assertRaises(ValidationError):
            validate_delivery_item(DeliveryItem(product_id=4, delivery_id=1, unit_price=-1))
        with self.assertRaises(ValidationError):
            validate_delivery_item(DeliveryItem(product_id=None, delivery_id=1))


if __name__ == "__main__":
    unittest.main()
