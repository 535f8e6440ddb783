"""Repository behaviour through the async Store, the way the app uses it."""

import asyncio
import logging

import pytest

from delivery_notes.entities import Delivery, DeliveryItem, Product, User
from delivery_notes.repository import DELIVERIES, DELIVERY_ITEMS, PRODUCTS, USERS, Repository
from delivery_notes.store import Store, StoreNotReadyError
from delivery_notes.validation import ConflictError


class TestStoreLifecycle:
    def test_use_before_init_raises(self, app, db_session):
        async def main():
            repo = Repository(Store(app))
            await repo.users.list()

        with pytest.raises(StoreNotReadyError):
            asyncio.run(main())

    def test_init_is_idempotent(self, app, db_session):
        async def main():
            store = Store(app)
            try:
                first = await store.init()
                second = await store.init()
                return first, second, store.is_ready
            finally:
                await store.close()

        first, second, ready = asyncio.run(main())
        assert first == second == 3
        assert ready is True

    def test_use_after_close_raises(self, app, db_session):
        async def main():
            store = Store(app)
            await store.init()
            await store.close()
            await store.run(lambda: None)

        with pytest.raises(StoreNotReadyError):
            asyncio.run(main())


    def test_lifecycle_is_logged_below_info(self, app, db_session, caplog):
        caplog.set_level(logging.DEBUG, logger="delivery_notes.store")

        async def main():
            async with Store(app):
                pass

        asyncio.run(main())

        store_records = [r for r in caplog.records if r.name == "delivery_notes.store"]
        assert [r.getMessage() for r in store_records] == ["Store ready (schema version 3)", "Store closed"]
        assert all(r.levelno == logging.DEBUG for r in store_records)


class TestUserRepository:
    def test_create_then_get(self, run_repo):
        async def op(repo):
            user_id = await repo.users.create(User(name="Linus", email="linus@example.com"))
            return user_id, await repo.users.get_by_id(user_id)

        user_id, user = run_repo(op)
        assert user == User(name="Linus", address="", phone="", email="linus@example.com", id=user_id)

    def test_get_missing_returns_none(self, run_repo):
        assert run_repo(lambda repo: repo.users.get_by_id(10101)) is None

    def test_update_without_id_does_nothing(self, run_repo):
        async def op(repo):
            await repo.users.create(User(name="Kept"))
            await repo.users.update(User(name="Dropped"))
            return await repo.users.list()

        assert [u.name for u in run_repo(op)] == ["Kept"]

    def test_delete_conflict_propagates(self, run_repo):
        async def op(repo):
            user_id = await repo.users.create(User(name="Busy"))
            await repo.deliveries.create(Delivery(user_id=user_id, date="2024-02-02"))
            await repo.users.delete(user_id)

        with pytest.raises(ConflictError):
            run_repo(op)


class TestProductRepository:
    def test_images_round_trip_in_order(self, run_repo):
        async def op(repo):
            product_id = await repo.products.create(Product(name="Tea", images=["b://2", "a://1"]))
            created = await repo.products.get_by_id(product_id)
            created.images = ["c://3"]
            await repo.products.update(created)
            return await repo.products.get_by_id(product_id)

        assert run_repo(op).images == ["c://3"]

    def test_list_for_export(self, run_repo):
        async def op(repo):
            user_id = await repo.users.create(User(name="Owner"))
            first = await repo.products.create(Product(name="Oats", user_id=user_id))
            await repo.products.create(Product(name="Rice"))
            return first, await repo.products.list_for_export([first])

        first, rows = run_repo(op)
        assert [(r.product.id, r.user_name) for r in rows] == [(first, "Owner")]


class TestDeliveryRepository:
    def test_create_with_items_and_detail(self, run_repo):
        async def op(repo):
            user_id = await repo.users.create(User(name="Buyer"))
            product_id = await repo.products.create(Product(name="Coffee", price=4.0))
            items = [DeliveryItem(product_id=product_id, quantity=3, unit_price=4.0)]
            delivery_id = await repo.deliveries.create_with_items(
                Delivery(user_id=user_id, date="2024-07-07T12:00:00Z", total_amount=12.0), items,
            )
            assert await repo.deliveries.mark_delivered(delivery_id) is True
            return await repo.deliveries.get_detail(delivery_id)

        detail = run_repo(op)
        assert detail.delivery.status == "Delivered"
        assert detail.delivery.total_amount == 12.0
        assert detail.user.name == "Buyer"
        assert [(line.product_name, line.item.quantity) for line in detail.lines] == [("Coffee", 3)]

    def test_items_per_delivery(self, run_repo):
        async def op(repo):
            user_id = await repo.users.create(User(name="Buyer"))
            product_id = await repo.products.create(Product(name="Coffee", price=4.0))
            first = await repo.deliveries.create(Delivery(user_id=user_id, date="2024-01-01"))
            second = await repo.deliveries.create(Delivery(user_id=user_id, date="2024-01-02"))
            await repo.delivery_items.create(DeliveryItem(delivery_id=first, product_id=product_id))
            await repo.delivery_items.create(DeliveryItem(delivery_id=second, product_id=product_id, quantity=2))
            removed = await repo.delivery_items.delete_for_delivery(first)
            return (
                removed,
                await repo.delivery_items.list(first),
                await repo.delivery_items.list(second),
            )

        removed, first_items, second_items = run_repo(op)
        assert removed == 1
        assert first_items == []
        assert [i.quantity for i in second_items] == [2]


class TestGenericDispatch:
    def test_kind_dispatch(self, run_repo):
        async def op(repo):
            user_id = await repo.create(USERS, User(name="Generic"))
            product_id = await repo.create(PRODUCTS, Product(name="Widget"))
            delivery_id = await repo.create(DELIVERIES, Delivery(user_id=user_id, date="2024-01-01"))
            await repo.create(DELIVERY_ITEMS, DeliveryItem(delivery_id=delivery_id, product_id=product_id))
            await repo.delete(PRODUCTS, product_id)
            return (
                await repo.get_by_id(USERS, user_id),
                await repo.list(PRODUCTS),
                await repo.list(DELIVERY_ITEMS, delivery_id),
            )

        user, products, items = run_repo(op)
        assert user.name == "Generic"
        assert products == []
        # Delivery items outlive their product
        assert len(items) == 1

    def test_unknown_kind(self, run_repo):
        with pytest.raises(ValueError):
            run_repo(lambda repo: repo.list("invoices"))

    def test_stats(self, run_repo):
        async def op(repo):
            await repo.users.create(User(name="Counted"))
            return await repo.stats()

        assert run_repo(op).users == 1


class TestConcurrentCalls:
    def test_concurrent_writes_are_serialised(self, run_repo):
        async def op(repo):
            ids = await asyncio.gather(*(repo.users.create(User(name=f"User {n:02d}")) for n in range(20)))
            return ids, await repo.users.list()

        ids, users = run_repo(op)
        assert len(set(ids)) == 20
        assert len(users) == 20

    def test_cancelled_caller_does_not_abort_write(self, run_repo):
        async def op(repo):
            task = asyncio.ensure_future(repo.users.create(User(name="Survivor")))
            await asyncio.sleep(0)
            task.cancel()
            with pytest.raises(asyncio.CancelledError):
                await task
            # Queued behind the cancelled write on the single worker
            return await repo.users.list()

        assert [u.name for u in run_repo(op)] == ["Survivor"]


class TestMarkDelivered:
    def test_missing_delivery_reports_false(self, run_repo):
        assert run_repo(lambda repo: repo.deliveries.mark_delivered(424242)) is False
