from typing import Any
from uuid import UUID

from pydantic import ValidationError

from storefront.domain.base import Command
from storefront.domain.errors import InvalidInput
from storefront.domain.order.models import OrderStatus, PaymentMethod, ShippingAddress
from storefront.domain.order.status import Role


class PlaceOrder(Command):
    """Command: Turn the user's cart into an order"""
    user_id: str
    shipping_address: ShippingAddress
    payment_method: PaymentMethod
    idempotency_key: str | None = None

    @classmethod
    def from_input(
        cls,
        user_id: str,
        shipping_address: Any,
        payment_method: Any,
        idempotency_key: str | None = None,
    ) -> "PlaceOrder":
        """
        Build the command from raw checkout input.

        Raises:
            InvalidInput: malformed address or payment method outside the accepted set
        """
        try:
            # Wire names, so error locations read like the request body
            return cls.model_validate({
                "userId": user_id,
                "shippingAddress": shipping_address,
                "paymentMethod": payment_method,
                "idempotencyKey": idempotency_key,
            })
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in e.errors()
            )
            raise InvalidInput(f"Invalid order data: {problems}") from e


class UpdateOrderStatus(Command):
    """Command: Move an order to another status"""
    order_id: UUID
    status: OrderStatus
    user_id: str
    role: Role = Role.CUSTOMER
