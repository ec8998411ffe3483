"""In-memory product repository used when no database is configured."""

from __future__ import annotations

from authentiqc.models import Product


class InMemoryProductRepository:
    """Dict-backed repository; contents vanish with the process."""

    def __init__(self) -> None:
        self._products: dict[str, Product] = {}
        self._images: dict[str, str] = {}

    def migrate(self) -> None:
        return None

    async def get_image(self, image_id: str) -> str | None:
        return self._images.get(image_id)

    async def save_image(self, image_id: str, data: str) -> None:
        self._images[image_id] = data

    async def get_product(self, product_id: str) -> Product | None:
        product = self._products.get(product_id)
        return product.model_copy(deep=True) if product else None

    async def save_product(self, product: Product) -> None:
        self._products[product.id] = product.model_copy(deep=True)

    async def list_products(self) -> list[Product]:
        ordered = sorted(self._products.values(), key=lambda item: item.created_at, reverse=True)
        return [product.model_copy(deep=True) for product in ordered]

    async def delete_product(self, product_id: str) -> None:
        product = self._products.pop(product_id, None)
        if product is None:
            return
        for image_id in [*product.reference_image_ids, *product.inspection_image_ids()]:
            self._images.pop(image_id, None)
