import asyncio

import pytest
from sqlalchemy import delete, update
from sqlalchemy.exc import OperationalError

from conftest import place_order_command
from storefront.application.cart.cleanup_task import ClearStaleCartsUseCase
from storefront.application.order.place_order import PlaceOrderUseCase
from storefront.domain.errors import (
    CartEmpty,
    InsufficientStock,
    PersistenceFailed,
    ProductNotFound,
    SequenceUnavailable,
    VariantNotFound,
)
from storefront.domain.order.models import OrderStatus
from storefront.infrastructure.database import product_variants, products
from storefront.infrastructure.repositories.cart_repository import CartRepository


class TestPlaceOrder:
    """
    Testy składania zamówienia na prawdziwej (SQLite) bazie.
    """

    async def _two_line_cart(self, shop, user_id="user_1", stock_a=5, stock_b=3):
        shirt = await shop.create_product("Shirt", [("M", "Red", 10.00, stock_a)])
        socks = await shop.create_product("Socks", [("L", "Blue", 5.00, stock_b)])
        variant_a = shirt.variants[0]
        variant_b = socks.variants[0]
        await shop.add_to_cart(user_id, shirt, variant_a, 2)
        await shop.add_to_cart(user_id, socks, variant_b, 1)
        return shirt, variant_a, socks, variant_b

    async def _place(self, db, command):
        async with db.session_factory() as session:
            return await PlaceOrderUseCase(session).execute(command)

    async def test_order_reserves_stock_and_clears_cart(self, db, shop):
        """Test: koszyk A x2 po 10.00 + B x1 po 5.00"""
        _, variant_a, _, variant_b = await self._two_line_cart(shop)

        result = await self._place(db, place_order_command("user_1"))

        assert result.created is True
        assert result.cart_cleared is True
        assert result.order.total_amount == 25.00
        assert result.order.status == OrderStatus.PENDING
        assert result.order.order_number == 1
        assert len(result.order.items) == 2

        assert await shop.stock(variant_a) == 3
        assert await shop.stock(variant_b) == 2
        assert (await shop.cart("user_1")).is_empty

    async def test_insufficient_stock_changes_nothing(self, db, shop):
        """Test: B ma stan 0 - zamówienie odrzucone, nic się nie zmienia"""
        _, variant_a, socks, variant_b = await self._two_line_cart(shop)
        await shop.set_stock(socks, variant_b, 0)

        with pytest.raises(InsufficientStock) as exc_info:
            await self._place(db, place_order_command("user_1"))

        assert exc_info.value.variant_id == variant_b.id
        assert exc_info.value.available == 0
        assert exc_info.value.requested == 1

        assert await shop.stock(variant_a) == 5
        assert await shop.stock(variant_b) == 0
        assert len((await shop.cart("user_1")).items) == 2
        assert await shop.orders("user_1") == []

    async def test_empty_cart_is_rejected(self, db, shop):
        with pytest.raises(CartEmpty):
            await self._place(db, place_order_command("nobody"))

        assert await shop.orders("nobody") == []

    async def test_price_is_taken_from_cart_snapshot(self, db, shop):
        """Test: zmiana ceny produktu po dodaniu do koszyka nie zmienia zamówienia"""
        shirt = await shop.create_product("Shirt", [("M", "Red", 10.00, 5)])
        variant = shirt.variants[0]
        await shop.add_to_cart("user_1", shirt, variant, 1)

        async with db.session_factory() as session:
            async with session.begin():
                await session.execute(
                    update(product_variants)
                    .where(product_variants.c.id == variant.id)
                    .values(price=99.00)
                )

        result = await self._place(db, place_order_command("user_1"))

        assert result.order.items[0].price_at_time == 10.00
        assert result.order.total_amount == 10.00

    async def test_missing_product_is_rejected(self, db, shop):
        shirt, variant_a, _, variant_b = await self._two_line_cart(shop)
        async with db.session_factory() as session:
            async with session.begin():
                await session.execute(delete(products).where(products.c.id == shirt.id))

        with pytest.raises(ProductNotFound):
            await self._place(db, place_order_command("user_1"))

        assert await shop.stock(variant_b) == 3

    async def test_missing_variant_is_rejected(self, db, shop):
        """Test: wariant usunięty po dodaniu do koszyka - nic się nie zmienia"""
        _, variant_a, _, variant_b = await self._two_line_cart(shop)
        async with db.session_factory() as session:
            async with session.begin():
                await session.execute(
                    delete(product_variants).where(product_variants.c.id == variant_b.id)
                )

        with pytest.raises(VariantNotFound) as exc_info:
            await self._place(db, place_order_command("user_1"))

        assert exc_info.value.variant_id == variant_b.id
        assert await shop.stock(variant_a) == 5
        assert len((await shop.cart("user_1")).items) == 2
        assert await shop.orders("user_1") == []

    async def test_order_numbers_increase(self, db, shop):
        shirt = await shop.create_product("Shirt", [("M", "Red", 10.00, 10)])
        variant = shirt.variants[0]

        numbers = []
        for user_id in ("u1", "u2", "u3"):
            await shop.add_to_cart(user_id, shirt, variant, 1)
            result = await self._place(db, place_order_command(user_id))
            numbers.append(result.order.order_number)

        assert numbers == [1, 2, 3]
        assert await shop.stock(variant) == 7

    async def test_last_unit_race(self, db, shop):
        """Test: dwa równoległe zamówienia na ostatnią sztukę - wygrywa dokładnie jedno"""
        shirt = await shop.create_product("Shirt", [("M", "Red", 10.00, 1)])
        variant = shirt.variants[0]
        await shop.add_to_cart("alice", shirt, variant, 1)
        await shop.add_to_cart("bob", shirt, variant, 1)

        results = await asyncio.gather(
            self._place(db, place_order_command("alice")),
            self._place(db, place_order_command("bob")),
            return_exceptions=True,
        )

        failures = [r for r in results if isinstance(r, Exception)]
        successes = [r for r in results if not isinstance(r, Exception)]
        assert len(successes) == 1
        assert len(failures) == 1
        assert isinstance(failures[0], InsufficientStock)
        assert await shop.stock(variant) == 0

    async def test_concurrent_orders_get_distinct_numbers(self, db, shop):
        shirt = await shop.create_product("Shirt", [("M", "Red", 10.00, 10)])
        variant = shirt.variants[0]
        users = [f"user_{i}" for i in range(5)]
        for user_id in users:
            await shop.add_to_cart(user_id, shirt, variant, 1)

        results = await asyncio.gather(
            *(self._place(db, place_order_command(user_id)) for user_id in users)
        )

        numbers = sorted(r.order.order_number for r in results)
        assert numbers == [1, 2, 3, 4, 5]
        assert await shop.stock(variant) == 5

    async def test_sequence_failure_releases_reservation(self, db, shop, monkeypatch):
        _, variant_a, _, variant_b = await self._two_line_cart(shop)

        async def broken_next_value(name, max_attempts=3):
            raise SequenceUnavailable(name)

        async with db.session_factory() as session:
            use_case = PlaceOrderUseCase(session)
            monkeypatch.setattr(use_case.sequence_repo, "next_value", broken_next_value)
            with pytest.raises(SequenceUnavailable):
                await use_case.execute(place_order_command("user_1"))

        assert await shop.stock(variant_a) == 5
        assert await shop.stock(variant_b) == 3
        assert len((await shop.cart("user_1")).items) == 2

    async def test_persistence_failure_releases_reservation(self, db, shop, monkeypatch):
        _, variant_a, _, variant_b = await self._two_line_cart(shop)

        async def broken_insert(**kwargs):
            raise OperationalError("INSERT INTO orders", {}, Exception("disk I/O error"))

        async with db.session_factory() as session:
            use_case = PlaceOrderUseCase(session)
            monkeypatch.setattr(use_case.order_repo, "insert", broken_insert)
            with pytest.raises(PersistenceFailed):
                await use_case.execute(place_order_command("user_1"))

        assert await shop.stock(variant_a) == 5
        assert await shop.stock(variant_b) == 3
        assert await shop.orders("user_1") == []

    async def test_cart_clear_failure_still_reports_success(self, db, shop, monkeypatch):
        _, variant_a, _, _ = await self._two_line_cart(shop)

        attempts = []

        async def broken_clear(user_id, lines):
            attempts.append(user_id)
            raise OperationalError("DELETE FROM cart_items", {}, Exception("database is locked"))

        async with db.session_factory() as session:
            use_case = PlaceOrderUseCase(session)
            monkeypatch.setattr(use_case.cart_repo, "remove_ordered_lines", broken_clear)
            result = await use_case.execute(place_order_command("user_1"))

        assert result.created is True
        assert result.cart_cleared is False
        assert len(attempts) == 3
        assert await shop.stock(variant_a) == 3
        assert len((await shop.cart("user_1")).items) == 2

        # Background retry finishes the job
        async with db.session_factory() as session:
            cleared = await ClearStaleCartsUseCase(session).execute()

        assert cleared == 1
        assert (await shop.cart("user_1")).is_empty

    async def test_background_clear_keeps_quantity_added_after_order(self, db, shop, monkeypatch):
        """Test: sztuka dołożona do tej samej pozycji po zamówieniu zostaje w koszyku"""
        shirt, variant_a, _, _ = await self._two_line_cart(shop)

        async def broken_clear(user_id, lines):
            raise OperationalError("DELETE FROM cart_items", {}, Exception("database is locked"))

        async with db.session_factory() as session:
            use_case = PlaceOrderUseCase(session)
            monkeypatch.setattr(use_case.cart_repo, "remove_ordered_lines", broken_clear)
            result = await use_case.execute(place_order_command("user_1"))
        assert result.cart_cleared is False

        # Merges into the already ordered line (2 -> 3)
        await shop.add_to_cart("user_1", shirt, variant_a, 1)

        async with db.session_factory() as session:
            assert await ClearStaleCartsUseCase(session).execute() == 1

        cart = await shop.cart("user_1")
        assert [(line.variant_id, line.quantity) for line in cart.items] == [(variant_a.id, 1)]

    async def test_clear_takes_only_snapshotted_quantity(self, db, shop):
        shirt = await shop.create_product("Shirt", [("M", "Red", 10.00, 5)])
        variant = shirt.variants[0]
        await shop.add_to_cart("user_1", shirt, variant, 2)
        snapshot = await shop.cart("user_1")

        await shop.add_to_cart("user_1", shirt, variant, 1)
        async with db.session_factory() as session:
            async with session.begin():
                await CartRepository(session).remove_ordered_lines("user_1", snapshot.items)

        cart = await shop.cart("user_1")
        assert len(cart.items) == 1
        assert cart.items[0].quantity == 1

    async def test_idempotent_retry_returns_same_order(self, db, shop):
        shirt = await shop.create_product("Shirt", [("M", "Red", 10.00, 5)])
        variant = shirt.variants[0]
        await shop.add_to_cart("user_1", shirt, variant, 2)

        first = await self._place(db, place_order_command("user_1", idempotency_key="abc-123"))
        # User refilled the cart before the retry arrived
        await shop.add_to_cart("user_1", shirt, variant, 1)
        second = await self._place(db, place_order_command("user_1", idempotency_key="abc-123"))

        assert first.created is True
        assert second.created is False
        assert second.order.id == first.order.id
        assert await shop.stock(variant) == 3
        assert len(await shop.orders("user_1")) == 1
