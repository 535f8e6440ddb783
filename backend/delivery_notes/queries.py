"""
Query and mutation bindings between the query cache and the repository.

Keys:
    ("users",)                     all users
    ("users", id)                  one user
    ("products",)                  all products
    ("products", id)               one product
    ("deliveries",)                all deliveries
    ("deliveries", id)             one delivery
    ("deliveries", id, "items")    items of one delivery

Single-entity and per-delivery queries are disabled while their id is
missing. Mutations invalidate the list key of their kind, which by prefix
also covers every single-entity key of that kind.
"""

from __future__ import annotations

from typing import Optional

from .entities import Delivery, DeliveryItem
from .query_cache import Mutation, QueryClient, QueryObserver
from .repository import DELIVERIES, PRODUCTS, USERS, Repository


def users_key() -> tuple:
    return (USERS,)


def user_key(user_id: Optional[int]) -> tuple:
    return (USERS, user_id)


def products_key() -> tuple:
    return (PRODUCTS,)


def product_key(product_id: Optional[int]) -> tuple:
    return (PRODUCTS, product_id)


def deliveries_key() -> tuple:
    return (DELIVERIES,)


def delivery_key(delivery_id: Optional[int]) -> tuple:
    return (DELIVERIES, delivery_id)


def delivery_items_key(delivery_id: Optional[int]) -> tuple:
    return (DELIVERIES, delivery_id, "items")


class DeliveryNotesQueries:
    def __init__(self, client: QueryClient, repository: Repository):
        self.client = client
        self.repository = repository

    # --- users ---

    def users(self) -> QueryObserver:
        return QueryObserver(self.client, users_key(), self.repository.users.list)

    def user(self, user_id: Optional[int]) -> QueryObserver:
        return QueryObserver(
            self.client,
            user_key(user_id),
            lambda: self.repository.users.get_by_id(user_id),
            enabled=bool(user_id),
        )

    def create_user(self) -> Mutation:
        return Mutation(self.client, self.repository.users.create, invalidates=[users_key()])

    def update_user(self) -> Mutation:
        return Mutation(self.client, self.repository.users.update, invalidates=[users_key()])

    def delete_user(self) -> Mutation:
        # Deleting a user detaches their products
        return Mutation(self.client, self.repository.users.delete, invalidates=[users_key(), products_key()])

    # --- products ---

    def products(self) -> QueryObserver:
        return QueryObserver(self.client, products_key(), self.repository.products.list)

    def product(self, product_id: Optional[int]) -> QueryObserver:
        return QueryObserver(
            self.client,
            product_key(product_id),
            lambda: self.repository.products.get_by_id(product_id),
            enabled=bool(product_id),
        )

    def create_product(self) -> Mutation:
        return Mutation(self.client, self.repository.products.create, invalidates=[products_key()])

    def update_product(self) -> Mutation:
        return Mutation(self.client, self.repository.products.update, invalidates=[products_key()])

    def delete_product(self) -> Mutation:
        return Mutation(self.client, self.repository.products.delete, invalidates=[products_key()])

    # --- deliveries ---

    def deliveries(self) -> QueryObserver:
        return QueryObserver(self.client, deliveries_key(), self.repository.deliveries.list)

    def delivery(self, delivery_id: Optional[int]) -> QueryObserver:
        return QueryObserver(
            self.client,
            delivery_key(delivery_id),
            lambda: self.repository.deliveries.get_by_id(delivery_id),
            enabled=bool(delivery_id),
        )

    def delivery_items(self, delivery_id: Optional[int]) -> QueryObserver:
        return QueryObserver(
            self.client,
            delivery_items_key(delivery_id),
            lambda: self.repository.delivery_items.list(delivery_id),
            enabled=bool(delivery_id),
        )

    def create_delivery(self) -> Mutation:
        """Variables: (Delivery, [DeliveryItem, ...]); all rows commit together."""
        async def create(variables: tuple[Delivery, list[DeliveryItem]]) -> int:
            delivery, items = variables
            return await self.repository.deliveries.create_with_items(delivery, items)

        return Mutation(self.client, create, invalidates=[deliveries_key()])

    def update_delivery(self) -> Mutation:
        return Mutation(self.client, self.repository.deliveries.update, invalidates=[deliveries_key()])

    def mark_delivered(self) -> Mutation:
        return Mutation(self.client, self.repository.deliveries.mark_delivered, invalidates=[deliveries_key()])

    def delete_delivery(self) -> Mutation:
        return Mutation(self.client, self.repository.deliveries.delete, invalidates=[deliveries_key()])

    def create_delivery_item(self) -> Mutation:
        return Mutation(
            self.client,
            self.repository.delivery_items.create,
            invalidates=lambda item, _result: [delivery_items_key(item.delivery_id)],
        )

    def update_delivery_item(self) -> Mutation:
        return Mutation(
            self.client,
            self.repository.delivery_items.update,
            invalidates=lambda item, _result: [delivery_items_key(item.delivery_id)],
        )

    def delete_delivery_item(self) -> Mutation:
        """Variables: the DeliveryItem being removed (id and delivery_id are used)."""
        async def delete(item: DeliveryItem) -> None:
            await self.repository.delivery_items.delete(item.id)

        return Mutation(
            self.client,
            delete,
            invalidates=lambda item, _result: [delivery_items_key(item.delivery_id)],
        )

    def delete_delivery_items(self) -> Mutation:
        return Mutation(
            self.client,
            self.repository.delivery_items.delete_for_delivery,
            invalidates=lambda delivery_id, _result: [delivery_items_key(delivery_id)],
        )

