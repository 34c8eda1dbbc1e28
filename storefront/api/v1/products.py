from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from pydantic import Field
from sqlalchemy.ext.asyncio import AsyncSession

from storefront.api.v1.dependencies import CurrentUser, get_current_user, get_db_session, require_admin
from storefront.application.product.manage_products import (
    CreateProductUseCase,
    SetVariantStockUseCase,
    ViewProductQuery,
)
from storefront.domain.base import CamelModel
from storefront.domain.errors import ProductNotFound, VariantNotFound
from storefront.domain.product.commands import CreateProduct, SetVariantStock
from storefront.domain.product.models import Product

router = APIRouter(prefix="/products", tags=["products"])


class SetStockRequest(CamelModel):
    stock: int = Field(ge=0)


def _product_json(product: Product) -> dict:
    return product.model_dump(by_alias=True, mode="json")


@router.post("", status_code=201)
async def create_product(
    payload: CreateProduct,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Admin: create a product with its variants"""
    require_admin(user)

    product = await CreateProductUseCase(session).execute(payload)
    return {"success": True, "product": _product_json(product)}


@router.get("/{product_id}")
async def get_product(
    product_id: UUID,
    session: AsyncSession = Depends(get_db_session),
):
    """Get product details with variants and their stock"""
    try:
        product = await ViewProductQuery(session).execute(product_id)
    except ProductNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    return {"success": True, "product": _product_json(product)}


@router.put("/{product_id}/variants/{variant_id}/stock")
async def set_variant_stock(
    product_id: UUID,
    variant_id: UUID,
    payload: SetStockRequest,
    user: CurrentUser = Depends(get_current_user),
    session: AsyncSession = Depends(get_db_session),
):
    """Admin: set a variant's stock directly"""
    require_admin(user)

    try:
        command = SetVariantStock(product_id=product_id, variant_id=variant_id, stock=payload.stock)
        product = await SetVariantStockUseCase(session).execute(command)
    except (ProductNotFound, VariantNotFound) as e:
        raise HTTPException(status_code=404, detail=str(e))

    return {"success": True, "product": _product_json(product)}
