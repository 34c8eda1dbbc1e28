import logging

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.domain.cart.commands import AddItemToCart
from storefront.domain.cart.snapshot import CartSnapshot
from storefront.domain.errors import InsufficientStock, ProductNotFound, VariantNotFound
from storefront.infrastructure.repositories.cart_repository import CartRepository
from storefront.infrastructure.repositories.product_repository import ProductRepository

logger = logging.getLogger(__name__)


class AddItemToCartUseCase:
    """
    Use Case: Dodaj wariant produktu do koszyka.

    Flow:
    1. Pobierz produkt i wariant (aktualna cena, nazwa, zdjęcie)
    2. Sprawdź czy łączna ilość w koszyku nie przekracza stanu
    3. Dodaj pozycję ze snapshotem albo zwiększ ilość istniejącej pozycji

    Stan magazynowy nie jest tu rezerwowany - rezerwacja następuje dopiero
    przy składaniu zamówienia.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.cart_repo = CartRepository(session)
        self.product_repo = ProductRepository(session)

    async def execute(self, command: AddItemToCart) -> CartSnapshot:
        async with self.session.begin():
            product = await self.product_repo.get_by_id(command.product_id)
            if product is None:
                raise ProductNotFound(command.product_id)

            variant = product.get_variant(command.variant_id)
            if variant is None:
                raise VariantNotFound(command.product_id, command.variant_id)

            await self.cart_repo.ensure_cart(command.user_id)
            existing = await self.cart_repo.find_line_for_variant(command.user_id, command.variant_id)
            wanted = command.quantity + (existing.quantity if existing else 0)

            if wanted > variant.stock:
                raise InsufficientStock(
                    variant.id, variant.stock, wanted, f"{product.name} ({variant.label})"
                )

            if existing:
                # Keep the snapshot taken when the variant was first added
                await self.cart_repo.increase_quantity(command.user_id, existing.id, command.quantity)
            else:
                await self.cart_repo.add_line(
                    user_id=command.user_id,
                    product_id=product.id,
                    variant_id=variant.id,
                    quantity=command.quantity,
                    price_at_time=variant.price,
                    name_at_time=product.name,
                    image_at_time=product.primary_image,
                    size_at_time=variant.size,
                    color_at_time=variant.color,
                )

            cart = await self.cart_repo.get(command.user_id)

        logger.debug(f"Added {command.quantity} x {variant.id} to cart of {command.user_id}")
        return cart
