"""Storage interface for products and their images."""

from __future__ import annotations

from typing import Protocol

from authentiqc.models import Product


class ProductRepository(Protocol):
    async def get_image(self, image_id: str) -> str | None: ...

    async def save_image(self, image_id: str, data: str) -> None: ...

    async def get_product(self, product_id: str) -> Product | None: ...

    async def save_product(self, product: Product) -> None: ...

    async def list_products(self) -> list[Product]: ...

    async def delete_product(self, product_id: str) -> None: ...
