import pytest

from storefront.application.cart.add_item import AddItemToCartUseCase
from storefront.application.product.manage_products import CreateProductUseCase, SetVariantStockUseCase
from storefront.domain.cart.commands import AddItemToCart
from storefront.domain.order.commands import PlaceOrder
from storefront.domain.order.models import PaymentMethod, ShippingAddress
from storefront.domain.product.commands import CreateProduct, SetVariantStock, VariantSpec
from storefront.infrastructure.database import Database
from storefront.infrastructure.repositories.cart_repository import CartRepository
from storefront.infrastructure.repositories.order_repository import OrderRepository
from storefront.infrastructure.repositories.stock_ledger import StockLedger


SHIPPING_ADDRESS = {
    "fullName": "Jan Kowalski",
    "addressLine1": "ul. Marszałkowska 10",
    "city": "Warszawa",
    "state": "Mazowieckie",
    "postalCode": "00-001",
    "country": "Poland",
}


@pytest.fixture
async def db(tmp_path):
    database = Database(f"sqlite+aiosqlite:///{tmp_path / 'storefront.db'}")
    await database.create_tables()
    yield database
    await database.drop_tables()
    await database.close()


class Shop:
    """Test helper driving the use cases, one session per operation like a request would"""

    def __init__(self, db: Database):
        self.db = db

    async def create_product(self, name: str, variants: list[tuple[str, str, float, int]]):
        command = CreateProduct(
            name=name,
            category="Shirts",
            image_urls=[f"https://cdn.example.com/{name.lower()}.jpg"],
            variants=[
                VariantSpec(size=size, color=color, price=price, stock=stock)
                for size, color, price, stock in variants
            ],
        )
        async with self.db.session_factory() as session:
            return await CreateProductUseCase(session).execute(command)

    async def add_to_cart(self, user_id: str, product, variant, quantity: int):
        command = AddItemToCart(
            user_id=user_id,
            product_id=product.id,
            variant_id=variant.id,
            quantity=quantity,
        )
        async with self.db.session_factory() as session:
            return await AddItemToCartUseCase(session).execute(command)

    async def set_stock(self, product, variant, stock: int):
        command = SetVariantStock(product_id=product.id, variant_id=variant.id, stock=stock)
        async with self.db.session_factory() as session:
            return await SetVariantStockUseCase(session).execute(command)

    async def stock(self, variant) -> int:
        async with self.db.session_factory() as session:
            return await StockLedger(session).get_stock(variant.id)

    async def cart(self, user_id: str):
        async with self.db.session_factory() as session:
            return await CartRepository(session).get(user_id)

    async def orders(self, user_id: str):
        async with self.db.session_factory() as session:
            return await OrderRepository(session).list_for_user(user_id)


@pytest.fixture
def shop(db):
    return Shop(db)


def place_order_command(user_id: str, idempotency_key: str | None = None) -> PlaceOrder:
    return PlaceOrder(
        user_id=user_id,
        shipping_address=ShippingAddress(**SHIPPING_ADDRESS),
        payment_method=PaymentMethod.CREDIT_CARD,
        idempotency_key=idempotency_key,
    )
