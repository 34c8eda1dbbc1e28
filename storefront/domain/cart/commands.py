from uuid import UUID

from pydantic import Field

from storefront.domain.base import Command


class AddItemToCart(Command):
    """Command: Add a product variant to the cart"""
    user_id: str
    product_id: UUID
    variant_id: UUID
    quantity: int = Field(gt=0)


class ChangeItemQuantity(Command):
    """Command: Set quantity of an existing cart line"""
    user_id: str
    item_id: int
    quantity: int = Field(gt=0)


class RemoveItemFromCart(Command):
    """Command: Remove a cart line"""
    user_id: str
    item_id: int
