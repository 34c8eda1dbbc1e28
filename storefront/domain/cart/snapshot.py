from datetime import datetime
from uuid import UUID

from storefront.domain.base import CamelModel


class CartLine(CamelModel):
    """Value object: one cart entry with the price/name/image taken when it was added"""
    id: int
    product_id: UUID
    variant_id: UUID
    quantity: int
    price_at_time: float
    name_at_time: str
    image_at_time: str
    size_at_time: str
    color_at_time: str
    added_at: datetime

    @property
    def total_price(self) -> float:
        return self.price_at_time * self.quantity


class CartSnapshot(CamelModel):
    """The user's cart as read at one point in time"""
    user_id: str
    items: list[CartLine] = []

    @property
    def is_empty(self) -> bool:
        return len(self.items) == 0

    @property
    def subtotal(self) -> float:
        return round(sum(line.total_price for line in self.items), 2)

    @property
    def total_items(self) -> int:
        return sum(line.quantity for line in self.items)

