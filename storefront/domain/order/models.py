from datetime import datetime
from enum import Enum
from uuid import UUID

from pydantic import Field

from storefront.domain.base import CamelModel


class OrderStatus(str, Enum):
    PENDING = "Pending"
    PROCESSING = "Processing"
    SHIPPED = "Shipped"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"


class PaymentMethod(str, Enum):
    CREDIT_CARD = "credit_card"
    PAYPAL = "paypal"
    CASH_ON_DELIVERY = "cash_on_delivery"


class ShippingAddress(CamelModel):
    full_name: str = Field(min_length=2)
    address_line1: str = Field(min_length=5)
    address_line2: str | None = None
    city: str = Field(min_length=2)
    state: str = Field(min_length=2)
    postal_code: str = Field(min_length=3)
    country: str = Field(min_length=2)


class OrderItem(CamelModel):
    """Line item frozen at purchase time - never re-derived from the product"""
    product_id: UUID
    variant_id: UUID
    quantity: int = Field(ge=1)
    name_at_time: str
    image_at_time: str
    price_at_time: float = Field(ge=0)
    size_at_time: str
    color_at_time: str

    class Config:
        frozen = True

    @property
    def line_total(self) -> float:
        return self.price_at_time * self.quantity


class Order(CamelModel):
    id: UUID
    order_number: int
    user_id: str
    items: list[OrderItem]
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    total_amount: float
    status: OrderStatus
    created_at: datetime
    updated_at: datetime


def compute_total(items: list[OrderItem]) -> float:
    """Order total, computed once at creation"""
    return round(sum(item.line_total for item in items), 2)
