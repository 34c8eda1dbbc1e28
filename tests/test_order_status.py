import pytest

from conftest import place_order_command
from storefront.application.order.place_order import PlaceOrderUseCase
from storefront.application.order.update_status import UpdateOrderStatusUseCase
from storefront.domain.errors import InvalidStatusTransition, OrderNotFound, PermissionDenied
from storefront.domain.order.commands import UpdateOrderStatus
from storefront.domain.order.models import OrderStatus
from storefront.domain.order.status import Role, check_transition, is_terminal


class TestStatusTransitions:
    """
    Unit testy grafu statusów - bez bazy danych.
    """

    def test_admin_moves_order_forward(self):
        check_transition(OrderStatus.PENDING, OrderStatus.PROCESSING, Role.ADMIN)
        check_transition(OrderStatus.PROCESSING, OrderStatus.SHIPPED, Role.ADMIN)
        check_transition(OrderStatus.SHIPPED, OrderStatus.DELIVERED, Role.ADMIN)

    def test_customer_can_cancel_pending_order(self):
        check_transition(OrderStatus.PENDING, OrderStatus.CANCELLED, Role.CUSTOMER)

    def test_customer_cannot_ship(self):
        with pytest.raises(PermissionDenied):
            check_transition(OrderStatus.PENDING, OrderStatus.SHIPPED, Role.CUSTOMER)

    def test_customer_cannot_cancel_processing_order(self):
        with pytest.raises(PermissionDenied):
            check_transition(OrderStatus.PROCESSING, OrderStatus.CANCELLED, Role.CUSTOMER)

    @pytest.mark.parametrize("terminal", [OrderStatus.DELIVERED, OrderStatus.CANCELLED])
    def test_terminal_states_cannot_be_left(self, terminal):
        assert is_terminal(terminal)
        for target in OrderStatus:
            with pytest.raises(InvalidStatusTransition):
                check_transition(terminal, target, Role.ADMIN)

    def test_shipped_order_cannot_be_cancelled(self):
        with pytest.raises(InvalidStatusTransition, match="from Shipped to Cancelled"):
            check_transition(OrderStatus.SHIPPED, OrderStatus.CANCELLED, Role.ADMIN)

    def test_no_going_back(self):
        with pytest.raises(InvalidStatusTransition):
            check_transition(OrderStatus.SHIPPED, OrderStatus.PENDING, Role.ADMIN)


class TestUpdateOrderStatusUseCase:

    async def _placed_order(self, db, shop, quantity=2):
        shirt = await shop.create_product("Shirt", [("M", "Red", 10.00, 5)])
        variant = shirt.variants[0]
        await shop.add_to_cart("user_1", shirt, variant, quantity)
        async with db.session_factory() as session:
            result = await PlaceOrderUseCase(session).execute(place_order_command("user_1"))
        return result.order, variant

    async def _update(self, db, order_id, status, user_id="user_1", role=Role.CUSTOMER):
        command = UpdateOrderStatus(order_id=order_id, status=status, user_id=user_id, role=role)
        async with db.session_factory() as session:
            return await UpdateOrderStatusUseCase(session).execute(command)

    async def test_customer_cancels_pending_order_and_stock_returns(self, db, shop):
        order, variant = await self._placed_order(db, shop)
        assert await shop.stock(variant) == 3

        updated = await self._update(db, order.id, OrderStatus.CANCELLED)

        assert updated.status == OrderStatus.CANCELLED
        assert await shop.stock(variant) == 5

    async def test_cancelling_twice_is_rejected(self, db, shop):
        order, variant = await self._placed_order(db, shop)
        await self._update(db, order.id, OrderStatus.CANCELLED)

        with pytest.raises(InvalidStatusTransition):
            await self._update(db, order.id, OrderStatus.CANCELLED)

        # Stock returned only once
        assert await shop.stock(variant) == 5

    async def test_delivered_order_cannot_be_cancelled(self, db, shop):
        order, variant = await self._placed_order(db, shop)
        await self._update(db, order.id, OrderStatus.DELIVERED, user_id="admin_1", role=Role.ADMIN)

        with pytest.raises(InvalidStatusTransition):
            await self._update(db, order.id, OrderStatus.CANCELLED, user_id="admin_1", role=Role.ADMIN)

        assert await shop.stock(variant) == 3

    async def test_other_customer_sees_not_found(self, db, shop):
        order, _ = await self._placed_order(db, shop)

        with pytest.raises(OrderNotFound):
            await self._update(db, order.id, OrderStatus.CANCELLED, user_id="intruder")

    async def test_customer_cannot_mark_shipped(self, db, shop):
        order, _ = await self._placed_order(db, shop)

        with pytest.raises(PermissionDenied):
            await self._update(db, order.id, OrderStatus.SHIPPED)

    async def test_order_snapshot_survives_status_change(self, db, shop):
        order, _ = await self._placed_order(db, shop)

        updated = await self._update(db, order.id, OrderStatus.PROCESSING, user_id="admin_1", role=Role.ADMIN)

        assert updated.items == order.items
        assert updated.total_amount == order.total_amount
        assert updated.order_number == order.order_number
