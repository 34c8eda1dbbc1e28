import asyncio
import logging

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.infrastructure.repositories.cart_repository import CartRepository
from storefront.infrastructure.repositories.order_repository import OrderRepository

logger = logging.getLogger(__name__)


class ClearStaleCartsUseCase:
    """
    Use Case: Finish cart clearing for orders where it failed after commit.

    Only the ordered quantities are taken out, and only from lines added up
    to the order's creation time, so anything the user put in the cart
    afterwards is kept.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.cart_repo = CartRepository(session)
        self.order_repo = OrderRepository(session)

    async def execute(self, limit: int = 100) -> int:
        """Returns number of orders whose cart got cleared"""
        async with self.session.begin():
            pending = await self.order_repo.list_uncleared_carts(limit=limit)

        cleared = 0
        for order in pending:
            try:
                async with self.session.begin():
                    removed = await self.cart_repo.remove_ordered_variants(
                        order.user_id, order.items, order.created_at
                    )
                    await self.order_repo.mark_cart_cleared(order.id)
                cleared += 1
                logger.info(f"Removed {removed} ordered cart line(s) of user {order.user_id} for order #{order.order_number}")
            except Exception as e:
                logger.error(f"Failed to clear cart of user {order.user_id} for order #{order.order_number}: {e}")

        return cleared


class CartCleanupBackgroundTask:
    """
    Background task that periodically retries cart clearing.

    Runs every `interval_seconds`.
    """

    def __init__(self, session_factory, interval_seconds: int = 60):
        self.session_factory = session_factory
        self.interval_seconds = interval_seconds
        self._task = None
        self._running = False

    async def start(self) -> None:
        """Start the background task"""
        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._run())
        logger.info(f"Cart cleanup task started (check interval: {self.interval_seconds}s)")

    async def stop(self) -> None:
        """Stop the background task"""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("Cart cleanup task stopped")

    async def _run(self) -> None:
        """Main task loop"""
        while self._running:
            try:
                await self.run_once()
            except Exception as e:
                logger.error(f"Error in cart cleanup task: {e}")

            await asyncio.sleep(self.interval_seconds)

    async def run_once(self) -> int:
        async with self.session_factory() as session:
            cleared = await ClearStaleCartsUseCase(session).execute()

        if cleared:
            logger.info(f"Cleared carts for {cleared} order(s)")
        return cleared
