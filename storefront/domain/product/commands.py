from uuid import UUID

from pydantic import Field

from storefront.domain.base import Command


class VariantSpec(Command):
    size: str = Field(min_length=1)
    color: str = Field(min_length=1)
    price: float = Field(ge=0)
    stock: int = Field(ge=0, default=0)


class CreateProduct(Command):
    """Command: Create a new product with its variants"""
    name: str = Field(min_length=1)
    description: str = ""
    category: str = Field(min_length=1)
    image_urls: list[str] = Field(min_length=1)
    is_featured: bool = False
    variants: list[VariantSpec] = []


class SetVariantStock(Command):
    """Command: Admin sets a variant's stock directly"""
    product_id: UUID
    variant_id: UUID
    stock: int = Field(ge=0)
