import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.domain.errors import ProductNotFound, VariantNotFound
from storefront.domain.product.commands import CreateProduct, SetVariantStock
from storefront.domain.product.models import Product
from storefront.infrastructure.repositories.product_repository import ProductRepository
from storefront.infrastructure.repositories.stock_ledger import StockLedger

logger = logging.getLogger(__name__)


class CreateProductUseCase:
    """Use Case: Create a product with its variants"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.product_repo = ProductRepository(session)

    async def execute(self, command: CreateProduct) -> Product:
        async with self.session.begin():
            product = await self.product_repo.create(command)

        logger.info(f"Product {product.id} '{product.name}' created with {len(product.variants)} variant(s)")
        return product


class ViewProductQuery:
    """Query: Get product with variants"""

    def __init__(self, session: AsyncSession):
        self.product_repo = ProductRepository(session)

    async def execute(self, product_id: UUID) -> Product:
        product = await self.product_repo.get_by_id(product_id)
        if product is None:
            raise ProductNotFound(product_id)
        return product


class SetVariantStockUseCase:
    """Use Case: Admin sets stock of a variant directly"""

    def __init__(self, session: AsyncSession):
        self.session = session
        self.product_repo = ProductRepository(session)
        self.stock_ledger = StockLedger(session)

    async def execute(self, command: SetVariantStock) -> Product:
        async with self.session.begin():
            updated = await self.stock_ledger.set_stock(
                command.product_id, command.variant_id, command.stock
            )
            if not updated:
                if await self.product_repo.get_by_id(command.product_id) is None:
                    raise ProductNotFound(command.product_id)
                raise VariantNotFound(command.product_id, command.variant_id)

            product = await self.product_repo.get_by_id(command.product_id)

        logger.info(f"Stock of variant {command.variant_id} set to {command.stock}")
        return product
