from uuid import UUID, uuid4

from sqlalchemy import insert, select
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.domain.product.commands import CreateProduct
from storefront.domain.product.models import Product, Variant
from storefront.infrastructure.database import product_variants, products, utcnow


class ProductRepository:
    """Products together with their variants"""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_by_id(self, product_id: UUID) -> Product | None:
        result = await self.session.execute(
            select(products).where(products.c.id == product_id)
        )
        row = result.fetchone()
        if row is None:
            return None

        variants = await self._get_variants(product_id)
        return self._to_model(row, variants)

    async def create(self, command: CreateProduct) -> Product:
        product_id = uuid4()
        now = utcnow()

        await self.session.execute(
            insert(products).values(
                id=product_id,
                name=command.name,
                description=command.description,
                category=command.category,
                image_urls=command.image_urls,
                is_featured=command.is_featured,
                created_at=now,
                updated_at=now,
            )
        )
        for spec in command.variants:
            await self.session.execute(
                insert(product_variants).values(
                    id=uuid4(),
                    product_id=product_id,
                    size=spec.size,
                    color=spec.color,
                    price=spec.price,
                    stock=spec.stock,
                )
            )

        return await self.get_by_id(product_id)

    async def _get_variants(self, product_id: UUID) -> list[Variant]:
        stmt = (
            select(product_variants)
            .where(product_variants.c.product_id == product_id)
            .order_by(product_variants.c.size, product_variants.c.color)
        )
        result = await self.session.execute(stmt)
        return [
            Variant(
                id=row.id,
                size=row.size,
                color=row.color,
                price=row.price,
                stock=row.stock,
            )
            for row in result.fetchall()
        ]

    @staticmethod
    def _to_model(row, variants: list[Variant]) -> Product:
        return Product(
            id=row.id,
            name=row.name,
            description=row.description,
            category=row.category,
            image_urls=row.image_urls,
            is_featured=row.is_featured,
            variants=variants,
            created_at=row.created_at,
            updated_at=row.updated_at,
        )
