"""
Async repository over the store.

Each entity kind has a repository with the same five operations:
list / get_by_id / create / update / delete. Reads return detached
entity dataclasses; get_by_id returns None for a missing row. update on an
entity without an id does nothing. Every call raises StoreNotReadyError
when the store has not been initialised.
"""

from __future__ import annotations

from typing import Any, Generic, Iterable, TypeVar

from .entities import (
    DashboardStats,
    Delivery,
    DeliveryDetail,
    DeliveryItem,
    ExportProduct,
    Product,
    User,
)
from .services import deliveries_service, products_service, reporting_service, users_service
from .store import Store

T = TypeVar("T")

USERS = "users"
PRODUCTS = "products"
DELIVERIES = "deliveries"
DELIVERY_ITEMS = "delivery_items"


class EntityRepository(Generic[T]):
    kind: str = ""

    _list = None
    _get = None
    _create = None
    _update = None
    _delete = None

    def __init__(self, store: Store):
        self.store = store

    async def list(self, *args: Any) -> list[T]:
        return await self.store.run(self._list, *args)

    async def get_by_id(self, entity_id: int) -> T | None:
        return await self.store.run(self._get, entity_id)

    async def create(self, entity: T) -> int:
        return await self.store.run(self._create, entity)

    async def update(self, entity: T) -> None:
        await self.store.run(self._update, entity)

    async def delete(self, entity_id: int) -> None:
        await self.store.run(self._delete, entity_id)


class UserRepository(EntityRepository[User]):
    kind = USERS

    _list = staticmethod(users_service.list_users)
    _get = staticmethod(users_service.get_user)
    _create = staticmethod(users_service.create_user)
    _update = staticmethod(users_service.update_user)
    _delete = staticmethod(users_service.delete_user)


class ProductRepository(EntityRepository[Product]):
    kind = PRODUCTS

    _list = staticmethod(products_service.list_products)
    _get = staticmethod(products_service.get_product)
    _create = staticmethod(products_service.create_product)
    _update = staticmethod(products_service.update_product)
    _delete = staticmethod(products_service.delete_product)

    async def list_for_export(self, product_ids: Iterable[int] | None = None) -> list[ExportProduct]:
        ids = list(product_ids) if product_ids is not None else None
        return await self.store.run(products_service.list_products_for_export, ids)


class DeliveryRepository(EntityRepository[Delivery]):
    kind = DELIVERIES

    _list = staticmethod(deliveries_service.list_deliveries)
    _get = staticmethod(deliveries_service.get_delivery)
    _create = staticmethod(deliveries_service.create_delivery)
    _update = staticmethod(deliveries_service.update_delivery)
    _delete = staticmethod(deliveries_service.delete_delivery)

    async def create_with_items(self, delivery: Delivery, items: Iterable[DeliveryItem]) -> int:
        return await self.store.run(deliveries_service.create_delivery_with_items, delivery, list(items))

    async def mark_delivered(self, delivery_id: int) -> bool:
        return await self.store.run(deliveries_service.mark_delivered, delivery_id)

    async def get_detail(self, delivery_id: int) -> DeliveryDetail | None:
        return await self.store.run(deliveries_service.get_delivery_detail, delivery_id)


class DeliveryItemRepository(EntityRepository[DeliveryItem]):
    """Items are listed per delivery: list(delivery_id)."""
    kind = DELIVERY_ITEMS

    _list = staticmethod(deliveries_service.list_delivery_items)
    _get = staticmethod(deliveries_service.get_delivery_item)
    _create = staticmethod(deliveries_service.create_delivery_item)
    _update = staticmethod(deliveries_service.update_delivery_item)
    _delete = staticmethod(deliveries_service.delete_delivery_item)

    async def list(self, delivery_id: int) -> list[DeliveryItem]:
        return await self.store.run(self._list, delivery_id)

    async def delete_for_delivery(self, delivery_id: int) -> int:
        return await self.store.run(deliveries_service.delete_delivery_items, delivery_id)


class Repository:
    """Dispatches the generic (kind, ...) operations to the per-entity repositories."""

    def __init__(self, store: Store):
        self.store = store
        self.users = UserRepository(store)
        self.products = ProductRepository(store)
        self.deliveries = DeliveryRepository(store)
        self.delivery_items = DeliveryItemRepository(store)
        self._by_kind: dict[str, EntityRepository] = {
            repo.kind: repo
            for repo in (self.users, self.products, self.deliveries, self.delivery_items)
        }

    def for_kind(self, kind: str) -> EntityRepository:
        try:
            return self._by_kind[kind]
        except KeyError:
            raise ValueError(f"Unknown entity kind: {kind}") from None

    async def list(self, kind: str, *args: Any) -> list:
        return await self.for_kind(kind).list(*args)

    async def get_by_id(self, kind: str, entity_id: int):
        return await self.for_kind(kind).get_by_id(entity_id)

    async def create(self, kind: str, entity) -> int:
        return await self.for_kind(kind).create(entity)

    async def update(self, kind: str, entity) -> None:
        await self.for_kind(kind).update(entity)

    async def delete(self, kind: str, entity_id: int) -> None:
        await self.for_kind(kind).delete(entity_id)

    async def stats(self) -> DashboardStats:
        return await self.store.run(reporting_service.get_dashboard_stats)
