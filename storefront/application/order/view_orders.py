from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from storefront.domain.errors import OrderNotFound
from storefront.domain.order.models import Order, OrderStatus
from storefront.domain.order.status import Role
from storefront.infrastructure.repositories.order_repository import OrderRepository


class ViewOrderQuery:
    """Query: Get a single order (own order, or any order for admins)"""

    def __init__(self, session: AsyncSession):
        self.order_repo = OrderRepository(session)

    async def execute(self, order_id: UUID, user_id: str, role: Role) -> Order:
        owner = None if role == Role.ADMIN else user_id
        order = await self.order_repo.get(order_id, user_id=owner)
        if order is None:
            raise OrderNotFound(order_id)
        return order


class ViewUserOrdersQuery:
    """Query: Get all orders of a user, latest first"""

    def __init__(self, session: AsyncSession):
        self.order_repo = OrderRepository(session)

    async def execute(self, user_id: str) -> list[Order]:
        return await self.order_repo.list_for_user(user_id)


class OrdersPage:
    def __init__(self, orders: list[Order], total: int, next_page: int | None):
        self.orders = orders
        self.total = total
        self.next_page = next_page


class ViewAllOrdersQuery:
    """Query: Admin listing of all orders, paginated, optionally by status"""

    def __init__(self, session: AsyncSession):
        self.order_repo = OrderRepository(session)

    async def execute(self, page: int = 1, limit: int = 20, status: OrderStatus | None = None) -> OrdersPage:
        offset = (page - 1) * limit
        orders, total = await self.order_repo.list_all(status=status, limit=limit, offset=offset)
        next_page = page + 1 if offset + len(orders) < total else None
        return OrdersPage(orders, total, next_page)
