from datetime import datetime
from uuid import UUID

from sqlalchemy import and_, delete, insert, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.domain.cart.snapshot import CartLine, CartSnapshot
from storefront.domain.order.models import OrderItem
from storefront.infrastructure.database import cart_items, carts, utcnow


class CartRepository:
    """
    Cart store.

    The cart record is created on first add and kept forever; clearing
    removes its lines only.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get(self, user_id: str, for_update: bool = False) -> CartSnapshot:
        """Read the cart; a user without a cart gets an empty snapshot"""
        stmt = (
            select(cart_items)
            .where(cart_items.c.user_id == user_id)
            .order_by(cart_items.c.id.asc())
        )
        if for_update:
            # Merges into these lines wait until the reader commits
            stmt = stmt.with_for_update()
        result = await self.session.execute(stmt)

        return CartSnapshot(
            user_id=user_id,
            items=[self._to_line(row) for row in result.fetchall()],
        )

    async def ensure_cart(self, user_id: str) -> None:
        result = await self.session.execute(
            select(carts.c.user_id).where(carts.c.user_id == user_id)
        )
        if result.scalar_one_or_none() is None:
            now = utcnow()
            await self.session.execute(
                insert(carts).values(user_id=user_id, created_at=now, updated_at=now)
            )

    async def find_line_for_variant(self, user_id: str, variant_id: UUID) -> CartLine | None:
        stmt = select(cart_items).where(
            cart_items.c.user_id == user_id,
            cart_items.c.variant_id == variant_id,
        ).with_for_update()
        row = (await self.session.execute(stmt)).fetchone()
        return self._to_line(row) if row else None

    async def get_line(self, user_id: str, item_id: int) -> CartLine | None:
        stmt = select(cart_items).where(
            cart_items.c.id == item_id,
            cart_items.c.user_id == user_id,
        ).with_for_update()
        row = (await self.session.execute(stmt)).fetchone()
        return self._to_line(row) if row else None

    async def add_line(
        self,
        user_id: str,
        product_id: UUID,
        variant_id: UUID,
        quantity: int,
        price_at_time: float,
        name_at_time: str,
        image_at_time: str,
        size_at_time: str,
        color_at_time: str,
    ) -> None:
        await self.session.execute(
            insert(cart_items).values(
                user_id=user_id,
                product_id=product_id,
                variant_id=variant_id,
                quantity=quantity,
                price_at_time=price_at_time,
                name_at_time=name_at_time,
                image_at_time=image_at_time,
                size_at_time=size_at_time,
                color_at_time=color_at_time,
                added_at=utcnow(),
            )
        )
        await self._touch(user_id)

    async def set_quantity(self, user_id: str, item_id: int, quantity: int) -> bool:
        stmt = (
            update(cart_items)
            .where(cart_items.c.id == item_id, cart_items.c.user_id == user_id)
            .values(quantity=quantity)
        )
        result = await self.session.execute(stmt)
        await self._touch(user_id)
        return result.rowcount == 1

    async def increase_quantity(self, user_id: str, item_id: int, amount: int) -> bool:
        """Atomic `quantity += amount`; False if the line is gone"""
        stmt = (
            update(cart_items)
            .where(cart_items.c.id == item_id, cart_items.c.user_id == user_id)
            .values(quantity=cart_items.c.quantity + amount)
        )
        result = await self.session.execute(stmt)
        await self._touch(user_id)
        return result.rowcount == 1

    async def remove_line(self, user_id: str, item_id: int) -> bool:
        stmt = delete(cart_items).where(
            cart_items.c.id == item_id,
            cart_items.c.user_id == user_id,
        )
        result = await self.session.execute(stmt)
        await self._touch(user_id)
        return result.rowcount == 1

    async def clear(self, user_id: str) -> int:
        """Remove every line of the cart"""
        result = await self.session.execute(
            delete(cart_items).where(cart_items.c.user_id == user_id)
        )
        await self._touch(user_id)
        return result.rowcount

    async def remove_ordered_lines(self, user_id: str, lines: list[CartLine]) -> int:
        """
        Take ordered quantities out of the cart by line id.

        A line whose quantity grew after the snapshot keeps the difference,
        every other line is deleted. Returns number of deleted lines.
        """
        removed = 0
        for line in lines:
            removed += await self._take_quantity(user_id, cart_items.c.id == line.id, line.quantity)
        await self._touch(user_id)
        return removed

    async def remove_ordered_variants(self, user_id: str, items: list[OrderItem], cutoff: datetime) -> int:
        """Same as remove_ordered_lines, matched by variant among lines added up to `cutoff`"""
        removed = 0
        for item in items:
            condition = and_(
                cart_items.c.variant_id == item.variant_id,
                cart_items.c.added_at <= cutoff,
            )
            removed += await self._take_quantity(user_id, condition, item.quantity)
        await self._touch(user_id)
        return removed

    async def _take_quantity(self, user_id: str, condition, quantity: int) -> int:
        result = await self.session.execute(
            update(cart_items)
            .where(cart_items.c.user_id == user_id, condition, cart_items.c.quantity > quantity)
            .values(quantity=cart_items.c.quantity - quantity)
        )
        if result.rowcount:
            return 0

        result = await self.session.execute(
            delete(cart_items).where(
                cart_items.c.user_id == user_id,
                condition,
                cart_items.c.quantity <= quantity,
            )
        )
        return result.rowcount

    async def _touch(self, user_id: str) -> None:
        await self.session.execute(
            update(carts).where(carts.c.user_id == user_id).values(updated_at=utcnow())
        )

    @staticmethod
    def _to_line(row) -> CartLine:
        return CartLine(
            id=row.id,
            product_id=row.product_id,
            variant_id=row.variant_id,
            quantity=row.quantity,
            price_at_time=row.price_at_time,
            name_at_time=row.name_at_time,
            image_at_time=row.image_at_time,
            size_at_time=row.size_at_time,
            color_at_time=row.color_at_time,
            added_at=row.added_at,
        )
