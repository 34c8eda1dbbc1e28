import logging
from enum import Enum

from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from storefront import config
from storefront.domain.cart.snapshot import CartSnapshot
from storefront.domain.errors import (
    CartEmpty,
    PersistenceFailed,
    ProductNotFound,
    StorefrontError,
    VariantNotFound,
)
from storefront.domain.order.commands import PlaceOrder
from storefront.domain.order.models import Order, OrderItem, compute_total
from storefront.infrastructure.repositories.cart_repository import CartRepository
from storefront.infrastructure.repositories.order_repository import OrderRepository
from storefront.infrastructure.repositories.product_repository import ProductRepository
from storefront.infrastructure.repositories.sequence import SequenceRepository
from storefront.infrastructure.repositories.stock_ledger import StockLedger, StockRequest

logger = logging.getLogger(__name__)


class PlacementStage(str, Enum):
    VALIDATING = "Validating"
    RESERVING_STOCK = "ReservingStock"
    SEQUENCING = "Sequencing"
    PERSISTING = "Persisting"
    CLEARING_CART = "ClearingCart"
    DONE = "Done"


class PlacementResult:
    """Outcome of a placement: the order and whether it was created now or replayed"""

    def __init__(self, order: Order, created: bool, cart_cleared: bool):
        self.order = order
        self.created = created
        self.cart_cleared = cart_cleared


class PlaceOrderUseCase:
    """
    Use Case: Złóż zamówienie z koszyka użytkownika.

    Flow:
    1. Validating     - wczytaj koszyk, pusty -> CartEmpty
    2. ReservingStock - rozwiąż produkty/warianty, zarezerwuj stan (all-or-nothing)
    3. Sequencing     - pobierz kolejny numer zamówienia
    4. Persisting     - zapisz zamówienie ze snapshotem pozycji
    5. ClearingCart   - wyczyść koszyk (best-effort, osobna transakcja)

    Kroki 2-4 wykonują się w jednej transakcji: rezerwacja, numer i zamówienie
    są zatwierdzane albo wycofywane razem - także gdy request zostanie
    anulowany w trakcie.
    """

    def __init__(self, session: AsyncSession, sequence_name: str = config.ORDER_SEQUENCE_NAME):
        self.session = session
        self.sequence_name = sequence_name
        self.cart_repo = CartRepository(session)
        self.product_repo = ProductRepository(session)
        self.stock_ledger = StockLedger(session)
        self.sequence_repo = SequenceRepository(session)
        self.order_repo = OrderRepository(session)
        self.stage = PlacementStage.VALIDATING

    async def execute(self, command: PlaceOrder) -> PlacementResult:
        """
        Execute place order command.

        Raises:
            CartEmpty, ProductNotFound, VariantNotFound, InsufficientStock,
            SequenceUnavailable, PersistenceFailed
        """
        try:
            order, cart = await self._place(command)
        except IntegrityError:
            # Concurrent retry with the same idempotency key won the insert
            replayed = await self._find_replay(command)
            if replayed is None:
                logger.error(f"Order insert for user {command.user_id} violated a constraint", exc_info=True)
                raise PersistenceFailed("Order could not be saved.")
            logger.info(f"Idempotent replay of order #{replayed.order_number} for user {command.user_id}")
            return PlacementResult(replayed, created=False, cart_cleared=True)
        except StorefrontError as e:
            logger.warning(
                f"Order placement rejected for user {command.user_id} at {self.stage.value}: "
                f"{type(e).__name__}: {e}"
            )
            raise

        if cart is None:
            return PlacementResult(order, created=False, cart_cleared=True)

        logger.info(
            f"Order #{order.order_number} placed for user {command.user_id} "
            f"({len(order.items)} item(s), total {order.total_amount:.2f})"
        )

        cart_cleared = await self._clear_cart(order, cart)
        self.stage = PlacementStage.DONE
        return PlacementResult(order, created=True, cart_cleared=cart_cleared)

    async def _place(self, command: PlaceOrder) -> tuple[Order, CartSnapshot | None]:
        """Transactional part; returns (order, cart) or (existing order, None) on replay"""
        async with self.session.begin():
            self.stage = PlacementStage.VALIDATING
            if command.idempotency_key:
                existing = await self.order_repo.get_by_idempotency_key(
                    command.user_id, command.idempotency_key
                )
                if existing is not None:
                    logger.info(f"Idempotent replay of order #{existing.order_number} for user {command.user_id}")
                    return existing, None

            cart = await self.cart_repo.get(command.user_id, for_update=True)
            if cart.is_empty:
                raise CartEmpty(command.user_id)

            self.stage = PlacementStage.RESERVING_STOCK
            requests = await self._resolve_lines(cart)
            await self.stock_ledger.check_and_reserve(requests)

            self.stage = PlacementStage.SEQUENCING
            order_number = await self.sequence_repo.next_value(self.sequence_name)

            self.stage = PlacementStage.PERSISTING
            items = [self._snapshot_item(line) for line in cart.items]
            try:
                order = await self.order_repo.insert(
                    order_number=order_number,
                    user_id=command.user_id,
                    items=items,
                    shipping_address=command.shipping_address,
                    payment_method=command.payment_method,
                    total_amount=compute_total(items),
                    idempotency_key=command.idempotency_key,
                )
            except IntegrityError:
                raise
            except SQLAlchemyError as e:
                logger.error(f"Persisting order #{order_number} failed: {e}", exc_info=True)
                raise PersistenceFailed("Order could not be saved.") from e

        return order, cart

    async def _resolve_lines(self, cart: CartSnapshot) -> list[StockRequest]:
        """Every line must point at an existing product and one of its variants"""
        requests = []
        for line in cart.items:
            product = await self.product_repo.get_by_id(line.product_id)
            if product is None:
                raise ProductNotFound(line.product_id)

            variant = product.get_variant(line.variant_id)
            if variant is None:
                raise VariantNotFound(line.product_id, line.variant_id)

            requests.append(
                StockRequest(
                    product_id=line.product_id,
                    variant_id=line.variant_id,
                    quantity=line.quantity,
                    label=f"{product.name} ({variant.label})",
                )
            )
        return requests

    @staticmethod
    def _snapshot_item(line) -> OrderItem:
        # Cart snapshot is the contract: price at add time, not at checkout
        return OrderItem(
            product_id=line.product_id,
            variant_id=line.variant_id,
            quantity=line.quantity,
            name_at_time=line.name_at_time,
            image_at_time=line.image_at_time,
            price_at_time=line.price_at_time,
            size_at_time=line.size_at_time,
            color_at_time=line.color_at_time,
        )

    async def _clear_cart(self, order: Order, cart: CartSnapshot) -> bool:
        """Best-effort; the order is already durable, a stale cart is retried later"""
        self.stage = PlacementStage.CLEARING_CART
        try:
            await self._clear_cart_lines(order, cart)
            return True
        except SQLAlchemyError as e:
            logger.warning(
                f"Clearing cart of user {cart.user_id} after order #{order.order_number} failed, "
                f"will retry in background: {e}"
            )
            return False

    @retry(
        stop=stop_after_attempt(config.CART_CLEAR_ATTEMPTS),
        wait=wait_exponential(multiplier=0.05, max=1),
        retry=retry_if_exception_type(OperationalError),
        reraise=True,
    )
    async def _clear_cart_lines(self, order: Order, cart: CartSnapshot) -> None:
        async with self.session.begin():
            await self.cart_repo.remove_ordered_lines(cart.user_id, cart.items)
            await self.order_repo.mark_cart_cleared(order.id)

    async def _find_replay(self, command: PlaceOrder) -> Order | None:
        if not command.idempotency_key:
            return None
        async with self.session.begin():
            return await self.order_repo.get_by_idempotency_key(
                command.user_id, command.idempotency_key
            )
