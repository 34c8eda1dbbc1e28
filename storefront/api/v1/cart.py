from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.v1.dependencies import CurrentUser, get_current_user, get_db_session
from storefront.application.cart.add_item import AddItemToCartUseCase
from storefront.application.cart.manage_cart import (
    ChangeItemQuantityUseCase,
    ClearCartUseCase,
    RemoveItemFromCartUseCase,
    ViewCartQuery,
)
from storefront.domain.base import CamelModel
from storefront.domain.cart.commands import AddItemToCart, ChangeItemQuantity, RemoveItemFromCart
from storefront.domain.cart.snapshot import CartSnapshot
from storefront.domain.errors import (
    CartItemNotFound,
    InsufficientStock,
    ProductNotFound,
    VariantNotFound,
)

router = APIRouter(prefix="/cart", tags=["cart"])


# === Request Models ===

class AddItemRequest(CamelModel):
    product_id: UUID
    variant_id: UUID
    quantity: int = Field(gt=0)


class ChangeQuantityRequest(CamelModel):
    quantity: int = Field(gt=0)


def _cart_json(cart: CartSnapshot) -> dict:
    body = cart.model_dump(by_alias=True, mode="json")
    body["subtotal"] = cart.subtotal
    body["totalItems"] = cart.total_items
    return body


# === Command Endpoints (Write) ===

@router.post("/items", status_code=201)
async def add_item_to_cart(
    payload: AddItemRequest,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Add a product variant to the cart.

    Price, name, image, size and color are captured now and kept for checkout.
    """
    try:
        command = AddItemToCart(
            user_id=user.user_id,
            product_id=payload.product_id,
            variant_id=payload.variant_id,
            quantity=payload.quantity,
        )
        cart = await AddItemToCartUseCase(session).execute(command)
    except (ProductNotFound, VariantNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InsufficientStock as e:
        raise HTTPException(status_code=409, detail=str(e))

    return {"success": True, "cart": _cart_json(cart)}


@router.put("/items/{item_id}")
async def change_item_quantity(
    item_id: int,
    payload: ChangeQuantityRequest,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Set quantity of a cart line"""
    try:
        command = ChangeItemQuantity(user_id=user.user_id, item_id=item_id, quantity=payload.quantity)
        cart = await ChangeItemQuantityUseCase(session).execute(command)
    except (CartItemNotFound, VariantNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InsufficientStock as e:
        raise HTTPException(status_code=409, detail=str(e))

    return {"success": True, "cart": _cart_json(cart)}


@router.delete("/items/{item_id}")
async def remove_item_from_cart(
    item_id: int,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Remove a cart line"""
    try:
        command = RemoveItemFromCart(user_id=user.user_id, item_id=item_id)
        cart = await RemoveItemFromCartUseCase(session).execute(command)
    except CartItemNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    return {"success": True, "cart": _cart_json(cart)}


@router.delete("")
async def clear_cart(
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Remove every line from the cart"""
    cart = await ClearCartUseCase(session).execute(user.user_id)
    return {"success": True, "cart": _cart_json(cart)}


# === Query Endpoints (Read) ===

@router.get("")
async def get_cart(
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get the caller's cart"""
    cart = await ViewCartQuery(session).execute(user.user_id)
    return {"success": True, "cart": _cart_json(cart)}
