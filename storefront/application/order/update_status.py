import logging

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.domain.errors import InvalidStatusTransition, OrderNotFound
from storefront.domain.order.commands import UpdateOrderStatus
from storefront.domain.order.models import Order, OrderStatus
from storefront.domain.order.status import Role, check_transition
from storefront.infrastructure.repositories.order_repository import OrderRepository
from storefront.infrastructure.repositories.stock_ledger import StockLedger, StockRequest

logger = logging.getLogger(__name__)


class UpdateOrderStatusUseCase:
    """
    Use Case: Change an order's status.

    Admins may apply any transition allowed by the status graph to any order.
    Customers only see their own orders and may only cancel a pending one.
    Cancellation gives the ordered quantities back to the stock ledger in the
    same transaction as the status change.
    """

    def __init__(self, session: AsyncSession):
        self.session = session
        self.order_repo = OrderRepository(session)
        self.stock_ledger = StockLedger(session)

    async def execute(self, command: UpdateOrderStatus) -> Order:
        """
        Raises:
            OrderNotFound: missing, or not owned by a customer caller
            PermissionDenied: transition not allowed for the caller's role
            InvalidStatusTransition: transition not in the graph, or lost a race
        """
        async with self.session.begin():
            owner = None if command.role == Role.ADMIN else command.user_id
            order = await self.order_repo.get(command.order_id, user_id=owner)
            if order is None:
                raise OrderNotFound(command.order_id)

            check_transition(order.status, command.status, command.role)

            changed = await self.order_repo.compare_and_set_status(
                order.id, expected=order.status, new_status=command.status
            )
            if not changed:
                # Status moved since we read it
                raise InvalidStatusTransition(order.status.value, command.status.value)

            if command.status == OrderStatus.CANCELLED:
                await self.stock_ledger.release([
                    StockRequest(item.product_id, item.variant_id, item.quantity)
                    for item in order.items
                ])

            updated = await self.order_repo.get(order.id)

        logger.info(
            f"Order #{order.order_number} status {order.status.value} -> {command.status.value} "
            f"by {command.role.value} {command.user_id}"
        )
        return updated
