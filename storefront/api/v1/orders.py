from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, Header, HTTPException, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from storefront import config
from storefront.api.v1.dependencies import CurrentUser, get_current_user, get_db_session, require_admin
from storefront.application.order.place_order import PlaceOrderUseCase
from storefront.application.order.update_status import UpdateOrderStatusUseCase
from storefront.application.order.view_orders import (
    ViewAllOrdersQuery,
    ViewOrderQuery,
    ViewUserOrdersQuery,
)
from storefront.domain.base import CamelModel
from storefront.domain.errors import (
    CartEmpty,
    InsufficientStock,
    InvalidInput,
    InvalidStatusTransition,
    OrderNotFound,
    PermissionDenied,
    PersistenceFailed,
    ProductNotFound,
    SequenceUnavailable,
    VariantNotFound,
)
from storefront.domain.order.commands import PlaceOrder, UpdateOrderStatus
from storefront.domain.order.models import Order, OrderStatus

router = APIRouter(prefix="/orders", tags=["orders"])


# === Request Models ===

class CreateOrderRequest(CamelModel):
    # Checked by the PlaceOrder command so malformed input is an InvalidInput (400)
    shipping_address: dict[str, Any]
    payment_method: str


class UpdateOrderStatusRequest(CamelModel):
    status: OrderStatus


def _order_json(order: Order) -> dict:
    return order.model_dump(by_alias=True, mode="json")


# === Command Endpoints (Write) ===

@router.post("", status_code=201)
async def create_order(
    payload: CreateOrderRequest,
    idempotency_key: str | None = Header(default=None),
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Place an order from the caller's cart.

    Stock is reserved all-or-nothing; an `Idempotency-Key` header makes
    retries return the original order instead of ordering twice.
    """
    try:
        command = PlaceOrder.from_input(
            user_id=user.user_id,
            shipping_address=payload.shipping_address,
            payment_method=payload.payment_method,
            idempotency_key=idempotency_key,
        )

        use_case = PlaceOrderUseCase(session)
        result = await use_case.execute(command)
    except (CartEmpty, InvalidInput) as e:
        raise HTTPException(status_code=400, detail=str(e))
    except (ProductNotFound, VariantNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InsufficientStock as e:
        raise HTTPException(
            status_code=409,
            detail={
                "message": str(e),
                "variantId": str(e.variant_id),
                "available": e.available,
                "requested": e.requested,
            },
        )
    except SequenceUnavailable as e:
        raise HTTPException(status_code=503, detail=str(e))
    except PersistenceFailed as e:
        raise HTTPException(status_code=500, detail=str(e))

    body = {
        "success": True,
        "message": "Order placed successfully!" if result.created else "Order already placed.",
        "order": _order_json(result.order),
    }
    return JSONResponse(status_code=201 if result.created else 200, content=body)


@router.put("/{order_id}")
async def update_order_status(
    order_id: UUID,
    payload: UpdateOrderStatusRequest,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """
    Change order status.

    Admins: any transition allowed by the status graph.
    Customers: only cancelling their own pending order.
    """
    try:
        command = UpdateOrderStatus(
            order_id=order_id,
            status=payload.status,
            user_id=user.user_id,
            role=user.role,
        )

        use_case = UpdateOrderStatusUseCase(session)
        order = await use_case.execute(command)
    except OrderNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except PermissionDenied as e:
        raise HTTPException(status_code=403, detail=str(e))
    except InvalidStatusTransition as e:
        raise HTTPException(status_code=409, detail=str(e))

    return {
        "success": True,
        "message": "Order status updated successfully.",
        "order": _order_json(order),
    }


# === Query Endpoints (Read) ===

@router.get("")
async def get_user_orders(
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get all orders of the caller, latest first"""
    orders = await ViewUserOrdersQuery(session).execute(user.user_id)
    return {"success": True, "orders": [_order_json(o) for o in orders]}


@router.get("/admin/all")
async def get_all_orders(
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=config.ADMIN_PAGE_SIZE, ge=1, le=100),
    status: OrderStatus | None = None,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Admin: all orders, paginated, optionally filtered by status"""
    require_admin(user)

    result = await ViewAllOrdersQuery(session).execute(page=page, limit=limit, status=status)
    return {
        "success": True,
        "data": [_order_json(o) for o in result.orders],
        "totalOrders": result.total,
        "nextPage": result.next_page,
    }


@router.get("/{order_id}")
async def get_order(
    order_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Get a single order (own, or any for admins)"""
    try:
        order = await ViewOrderQuery(session).execute(order_id, user.user_id, user.role)
    except OrderNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    return {"success": True, "order": _order_json(order)}
