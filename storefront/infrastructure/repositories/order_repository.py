from uuid import UUID, uuid4

from sqlalchemy import func, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.domain.order.models import (
    Order,
    OrderItem,
    OrderStatus,
    PaymentMethod,
    ShippingAddress,
)
from storefront.infrastructure.database import orders, utcnow


class OrderRepository:
    """
    Order store.

    Orders are inserted once and only their status (and the cart_cleared
    bookkeeping flag) ever changes afterwards.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def insert(
        self,
        order_number: int,
        user_id: str,
        items: list[OrderItem],
        shipping_address: ShippingAddress,
        payment_method: PaymentMethod,
        total_amount: float,
        idempotency_key: str | None = None,
    ) -> Order:
        order_id = uuid4()
        now = utcnow()

        await self.session.execute(
            insert(orders).values(
                id=order_id,
                order_number=order_number,
                user_id=user_id,
                items=[item.model_dump(mode="json") for item in items],
                shipping_address=shipping_address.model_dump(mode="json"),
                payment_method=payment_method.value,
                total_amount=total_amount,
                status=OrderStatus.PENDING.value,
                idempotency_key=idempotency_key,
                cart_cleared=False,
                created_at=now,
                updated_at=now,
            )
        )

        return Order(
            id=order_id,
            order_number=order_number,
            user_id=user_id,
            items=items,
            shipping_address=shipping_address,
            payment_method=payment_method,
            total_amount=total_amount,
            status=OrderStatus.PENDING,
            created_at=now,
            updated_at=now,
        )

    async def get(self, order_id: UUID, user_id: str | None = None) -> Order | None:
        """Get order; with user_id only if that user owns it"""
        stmt = select(orders).where(orders.c.id == order_id)
        if user_id is not None:
            stmt = stmt.where(orders.c.user_id == user_id)

        row = (await self.session.execute(stmt)).fetchone()
        return self._to_model(row) if row else None

    async def get_by_idempotency_key(self, user_id: str, idempotency_key: str) -> Order | None:
        stmt = select(orders).where(
            orders.c.user_id == user_id,
            orders.c.idempotency_key == idempotency_key,
        )
        row = (await self.session.execute(stmt)).fetchone()
        return self._to_model(row) if row else None

    async def list_for_user(self, user_id: str) -> list[Order]:
        """User's orders, latest first"""
        stmt = (
            select(orders)
            .where(orders.c.user_id == user_id)
            .order_by(orders.c.order_number.desc())
        )
        result = await self.session.execute(stmt)
        return [self._to_model(row) for row in result.fetchall()]

    async def list_all(
        self,
        status: OrderStatus | None = None,
        limit: int = 20,
        offset: int = 0,
    ) -> tuple[list[Order], int]:
        """All orders for the admin view; returns (page, total count)"""
        stmt = select(orders)
        count_stmt = select(func.count()).select_from(orders)
        if status is not None:
            stmt = stmt.where(orders.c.status == status.value)
            count_stmt = count_stmt.where(orders.c.status == status.value)

        stmt = stmt.order_by(orders.c.order_number.desc()).limit(limit).offset(offset)

        result = await self.session.execute(stmt)
        total = (await self.session.execute(count_stmt)).scalar_one()
        return [self._to_model(row) for row in result.fetchall()], total

    async def compare_and_set_status(
        self,
        order_id: UUID,
        expected: OrderStatus,
        new_status: OrderStatus,
    ) -> bool:
        """Change status only if it is still `expected`"""
        stmt = (
            update(orders)
            .where(orders.c.id == order_id, orders.c.status == expected.value)
            .values(status=new_status.value, updated_at=utcnow())
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def mark_cart_cleared(self, order_id: UUID) -> None:
        await self.session.execute(
            update(orders).where(orders.c.id == order_id).values(cart_cleared=True)
        )

    async def list_uncleared_carts(self, limit: int = 100) -> list[Order]:
        """Orders whose ordered quantities are still to be taken out of the cart"""
        stmt = (
            select(orders)
            .where(orders.c.cart_cleared.is_(False))
            .order_by(orders.c.order_number.asc())
            .limit(limit)
        )
        result = await self.session.execute(stmt)
        return [self._to_model(row) for row in result.fetchall()]

    @staticmethod
    def _to_model(row) -> Order:
        return Order(
            id=row.id,
            order_number=row.order_number,
            user_id=row.user_id,
            items=[OrderItem(**item) for item in row.items],
            shipping_address=ShippingAddress(**row.shipping_address),
            payment_method=PaymentMethod(row.payment_method),
            total_amount=row.total_amount,
            status=OrderStatus(row.status),
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
