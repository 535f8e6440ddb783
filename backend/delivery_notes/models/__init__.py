from .users import User
from .products import Product, ProductImage
from .deliveries import Delivery, DeliveryItem
from .schema import SchemaVersion

__all__ = [
    'User',
    'Product', 'ProductImage',
    'Delivery', 'DeliveryItem',
    'SchemaVersion',
]
