"""PostgreSQL product repository.

Beginner terms:
- Migration: creating/updating database tables before normal reads/writes.
- JSONB: PostgreSQL JSON type; each product is stored as one JSONB document.
- to_thread: psycopg calls block, so async methods run them on a worker thread.
"""

from __future__ import annotations

import asyncio
import json
import threading
from datetime import UTC, datetime
from typing import Any

from authentiqc.errors import RepositoryError
from authentiqc.models import Product


class PostgresProductRepository:
    """Thread-safe PostgreSQL-backed storage for products and images."""

    def __init__(self, database_url: str) -> None:
        if not database_url:
            raise ValueError("AUTHENTIQC_DATABASE_URL is required")
        self.database_url = database_url
        # Lock guards DB operations done through this repository instance.
        self._lock = threading.Lock()
        self._psycopg, self._dict_row, self._json_wrapper = self._load_psycopg()

    def migrate(self) -> None:
        """Create required tables and indexes if they do not already exist."""
        with self._lock, self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS products (
                    product_id TEXT PRIMARY KEY,
                    product_json JSONB NOT NULL,
                    created_at TIMESTAMPTZ NOT NULL,
                    updated_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_products_created_at
                ON products(created_at DESC)
                """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS product_images (
                    image_id TEXT PRIMARY KEY,
                    data TEXT NOT NULL,
                    created_at TIMESTAMPTZ NOT NULL
                )
                """)
            conn.commit()

    async def get_image(self, image_id: str) -> str | None:
        return await asyncio.to_thread(self._get_image, image_id)

    async def save_image(self, image_id: str, data: str) -> None:
        await asyncio.to_thread(self._save_image, image_id, data)

    async def get_product(self, product_id: str) -> Product | None:
        return await asyncio.to_thread(self._get_product, product_id)

    async def save_product(self, product: Product) -> None:
        await asyncio.to_thread(self._save_product, product)

    async def list_products(self) -> list[Product]:
        return await asyncio.to_thread(self._list_products)

    async def delete_product(self, product_id: str) -> None:
        await asyncio.to_thread(self._delete_product, product_id)

    def _get_image(self, image_id: str) -> str | None:
        row = self._fetch_one(
            "SELECT data FROM product_images WHERE image_id = %s",
            (image_id,),
        )
        return row["data"] if row else None

    def _save_image(self, image_id: str, data: str) -> None:
        self._execute(
            """
            INSERT INTO product_images (image_id, data, created_at)
            VALUES (%s, %s, %s)
            ON CONFLICT (image_id) DO UPDATE SET data = EXCLUDED.data
            """,
            (image_id, data, datetime.now(tz=UTC)),
        )

    def _get_product(self, product_id: str) -> Product | None:
        row = self._fetch_one(
            "SELECT product_json FROM products WHERE product_id = %s",
            (product_id,),
        )
        return self._row_to_product(row) if row else None

    def _save_product(self, product: Product) -> None:
        now = datetime.now(tz=UTC)
        self._execute(
            """
            INSERT INTO products (product_id, product_json, created_at, updated_at)
            VALUES (%s, %s, %s, %s)
            ON CONFLICT (product_id) DO UPDATE
            SET product_json = EXCLUDED.product_json,
                updated_at = EXCLUDED.updated_at
            """,
            (
                product.id,
                self._json_wrapper(product.model_dump(mode="json")),
                product.created_at,
                now,
            ),
        )

    def _list_products(self) -> list[Product]:
        try:
            with self._lock, self._connect() as conn:
                rows = conn.execute(
                    "SELECT product_json FROM products ORDER BY created_at DESC"
                ).fetchall()
        except self._psycopg.Error as exc:
            raise RepositoryError(f"Database error: {exc}") from exc
        return [self._row_to_product(row) for row in rows]

    def _delete_product(self, product_id: str) -> None:
        product = self._get_product(product_id)
        if product is None:
            return
        image_ids = [*product.reference_image_ids, *product.inspection_image_ids()]
        try:
            with self._lock, self._connect() as conn:
                if image_ids:
                    conn.execute(
                        "DELETE FROM product_images WHERE image_id = ANY(%s)",
                        (image_ids,),
                    )
                conn.execute("DELETE FROM products WHERE product_id = %s", (product_id,))
                conn.commit()
        except self._psycopg.Error as exc:
            raise RepositoryError(f"Database error: {exc}") from exc

    def _fetch_one(self, query: str, params: tuple[Any, ...]) -> Any:
        try:
            with self._lock, self._connect() as conn:
                return conn.execute(query, params).fetchone()
        except self._psycopg.Error as exc:
            raise RepositoryError(f"Database error: {exc}") from exc

    def _execute(self, query: str, params: tuple[Any, ...]) -> None:
        try:
            with self._lock, self._connect() as conn:
                conn.execute(query, params)
                conn.commit()
        except self._psycopg.Error as exc:
            raise RepositoryError(f"Database error: {exc}") from exc

    def _connect(self) -> Any:
        """Open a psycopg connection that yields dict-like rows."""
        return self._psycopg.connect(self.database_url, row_factory=self._dict_row)

    @staticmethod
    def _load_psycopg() -> tuple[Any, Any, Any]:
        """Import psycopg and helpers with a friendly install hint on failure."""
        try:
            import psycopg
            from psycopg.rows import dict_row
            from psycopg.types.json import Json
        except ImportError as exc:  # pragma: no cover - exercised only without dependency
            raise RuntimeError(
                "PostgreSQL backend requires psycopg. Install with: "
                'python -m pip install "psycopg[binary]>=3.2,<4.0"'
            ) from exc
        return psycopg, dict_row, Json

    @staticmethod
    def _row_to_product(row: Any) -> Product:
        raw = row["product_json"]
        if isinstance(raw, str):
            raw = json.loads(raw)
        return Product.model_validate(raw)
