from datetime import datetime
from uuid import UUID

from storefront.domain.base import CamelModel


class Variant(CamelModel):
    id: UUID
    size: str
    color: str
    price: float
    stock: int

    @property
    def label(self) -> str:
        return f"{self.size} / {self.color}"


class Product(CamelModel):
    id: UUID
    name: str
    description: str
    category: str
    image_urls: list[str]
    is_featured: bool
    variants: list[Variant] = []
    created_at: datetime
    updated_at: datetime

    def get_variant(self, variant_id: UUID) -> Variant | None:
        for variant in self.variants:
            if variant.id == variant_id:
                return variant
        return None

    @property
    def primary_image(self) -> str:
        return self.image_urls[0] if self.image_urls else ""
