"""Product repositories and the cached product catalog."""

from authentiqc.repository.base import ProductRepository
from authentiqc.repository.catalog import ProductCatalog
from authentiqc.repository.memory import InMemoryProductRepository
from authentiqc.repository.postgres import PostgresProductRepository

__all__ = [
    "InMemoryProductRepository",
    "PostgresProductRepository",
    "ProductCatalog",
    "ProductRepository",
]
