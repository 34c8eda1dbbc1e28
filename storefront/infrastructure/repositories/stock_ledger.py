import logging
from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.domain.errors import InsufficientStock, VariantNotFound
from storefront.infrastructure.database import product_variants

logger = logging.getLogger(__name__)


class StockRequest:
    """Value object: quantity of one variant to reserve or release"""

    def __init__(self, product_id: UUID, variant_id: UUID, quantity: int, label: str | None = None):
        self.product_id = product_id
        self.variant_id = variant_id
        self.quantity = quantity
        self.label = label

    def __repr__(self) -> str:
        return f"StockRequest(variant_id={self.variant_id}, quantity={self.quantity})"


def merge_requests(items: list[StockRequest]) -> list[StockRequest]:
    """
    Sum quantities per variant and sort by variant id.

    Fixed ordering means concurrent reservations lock variant rows in the
    same order and can't deadlock each other.
    """
    merged: dict[UUID, StockRequest] = {}
    for item in items:
        existing = merged.get(item.variant_id)
        if existing is None:
            merged[item.variant_id] = StockRequest(
                item.product_id, item.variant_id, item.quantity, item.label
            )
        else:
            existing.quantity += item.quantity
    return sorted(merged.values(), key=lambda r: str(r.variant_id))


class StockLedger:
    """
    Authoritative per-variant stock.

    Stock is only ever changed with single conditional UPDATE statements,
    never read-modify-write from application code.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def check_and_reserve(self, items: list[StockRequest]) -> None:
        """
        All-or-nothing reservation of every line.

        Runs inside a savepoint: if any line is short, decrements already
        applied for earlier lines are rolled back before the error leaves.

        Raises:
            InsufficientStock: first line (in variant order) that can't be served
            VariantNotFound: a variant row no longer exists
        """
        requests = merge_requests(items)

        async with self.session.begin_nested():
            for request in requests:
                reserved = await self.decrement_variant_stock(
                    request.product_id, request.variant_id, request.quantity
                )
                if not reserved:
                    available = await self.get_stock(request.variant_id, request.product_id)
                    if available is None:
                        raise VariantNotFound(request.product_id, request.variant_id)
                    logger.warning(
                        f"Insufficient stock for variant {request.variant_id}: "
                        f"available {available}, requested {request.quantity}"
                    )
                    raise InsufficientStock(
                        request.variant_id, available, request.quantity, request.label
                    )

        logger.debug(f"Reserved stock for {len(requests)} variant(s)")

    async def release(self, items: list[StockRequest]) -> None:
        """Give reserved quantities back (inverse of check_and_reserve)"""
        for request in merge_requests(items):
            stmt = (
                update(product_variants)
                .where(
                    product_variants.c.id == request.variant_id,
                    product_variants.c.product_id == request.product_id,
                )
                .values(stock=product_variants.c.stock + request.quantity)
            )
            result = await self.session.execute(stmt)
            if result.rowcount == 0:
                # Variant was deleted meanwhile - nothing to give the stock back to
                logger.warning(f"Could not release {request.quantity} of missing variant {request.variant_id}")

    async def decrement_variant_stock(self, product_id: UUID, variant_id: UUID, amount: int) -> bool:
        """Atomic `stock -= amount if stock >= amount`; False when nothing was decremented"""
        if amount <= 0:
            raise ValueError("Quantity must be positive")

        stmt = (
            update(product_variants)
            .where(
                product_variants.c.id == variant_id,
                product_variants.c.product_id == product_id,
                product_variants.c.stock >= amount,
            )
            .values(stock=product_variants.c.stock - amount)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def set_stock(self, product_id: UUID, variant_id: UUID, stock: int) -> bool:
        """Admin override of the stock count"""
        if stock < 0:
            raise ValueError("Stock cannot be negative")

        stmt = (
            update(product_variants)
            .where(
                product_variants.c.id == variant_id,
                product_variants.c.product_id == product_id,
            )
            .values(stock=stock)
        )
        result = await self.session.execute(stmt)
        return result.rowcount == 1

    async def get_stock(self, variant_id: UUID, product_id: UUID | None = None) -> int | None:
        """Current stock; None if the variant (of that product, when given) doesn't exist"""
        stmt = select(product_variants.c.stock).where(product_variants.c.id == variant_id)
        if product_id is not None:
            stmt = stmt.where(product_variants.c.product_id == product_id)
        result = await self.session.execute(stmt)
        return result.scalar_one_or_none()
