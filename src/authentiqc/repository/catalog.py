"""Locally cached product list, refreshed after every write that matters."""

from __future__ import annotations

import logging

from authentiqc.models import Product
from authentiqc.repository.base import ProductRepository

logger = logging.getLogger(__name__)


class ProductCatalog:
    def __init__(self, repository: ProductRepository) -> None:
        self.repository = repository
        self._products: list[Product] = []

    @property
    def products(self) -> list[Product]:
        return list(self._products)

    def find(self, product_id: str) -> Product | None:
        for product in self._products:
            if product.id == product_id:
                return product
        return None

    async def refresh(self) -> list[Product]:
        self._products = await self.repository.list_products()
        logger.debug("product_catalog event=refreshed count=%d", len(self._products))
        return self.products
