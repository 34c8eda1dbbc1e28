from sqlalchemy.ext.asyncio import AsyncSession

from storefront.domain.cart.commands import ChangeItemQuantity, RemoveItemFromCart
from storefront.domain.cart.snapshot import CartSnapshot
from storefront.domain.errors import CartItemNotFound, InsufficientStock, VariantNotFound
from storefront.infrastructure.repositories.cart_repository import CartRepository
from storefront.infrastructure.repositories.stock_ledger import StockLedger


class ViewCartQuery:
    """Query: Get the user's cart"""

    def __init__(self, session: AsyncSession):
        self.cart_repo = CartRepository(session)

    async def execute(self, user_id: str) -> CartSnapshot:
        return await self.cart_repo.get(user_id)


class ChangeItemQuantityUseCase:
    """
    Use Case: Set quantity of a cart line.

    Same rule as adding: the new quantity must fit the variant's current stock.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.cart_repo = CartRepository(session)
        self.stock_ledger = StockLedger(session)

    async def execute(self, command: ChangeItemQuantity) -> CartSnapshot:
        async with self.session.begin():
            line = await self.cart_repo.get_line(command.user_id, command.item_id)
            if line is None:
                raise CartItemNotFound(command.item_id)

            available = await self.stock_ledger.get_stock(line.variant_id, line.product_id)
            if available is None:
                raise VariantNotFound(line.product_id, line.variant_id)
            if command.quantity > available:
                raise InsufficientStock(
                    line.variant_id,
                    available,
                    command.quantity,
                    f"{line.name_at_time} ({line.size_at_time} / {line.color_at_time})",
                )

            await self.cart_repo.set_quantity(command.user_id, command.item_id, command.quantity)
            return await self.cart_repo.get(command.user_id)


class RemoveItemFromCartUseCase:
    """Use Case: Remove a cart line"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.cart_repo = CartRepository(session)

    async def execute(self, command: RemoveItemFromCart) -> CartSnapshot:
        async with self.session.begin():
            removed = await self.cart_repo.remove_line(command.user_id, command.item_id)
            if not removed:
                raise CartItemNotFound(command.item_id)
            return await self.cart_repo.get(command.user_id)


class ClearCartUseCase:
    """Use Case: Remove every line from the cart (the cart itself stays)"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.cart_repo = CartRepository(session)

    async def execute(self, user_id: str) -> CartSnapshot:
        async with self.session.begin():
            await self.cart_repo.clear(user_id)
            return await self.cart_repo.get(user_id)
