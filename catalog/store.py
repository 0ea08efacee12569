"""
catalog/store.py -- SQLAlchemy Core persistence layer for products.

Pattern: Repository + Data Mapper (same as auth/store.py).

owner_id is written by create_product() only. update_product() accepts an
explicit whitelist of mutable fields, so ownership cannot be changed through
any store call.

Layer rule: may import the shared engine factory from auth/store.py; never
imports from api/.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, Float, MetaData, String, Table, Text
from sqlalchemy.engine import Engine

from auth.store import make_engine
from catalog.models import Product

_metadata = MetaData()

_products = Table(
    "products",
    _metadata,
    Column("id", String(32), primary_key=True),
    Column("name", String(100), nullable=False),
    Column("description", Text),
    Column("price", Float, nullable=False),
    Column("owner_id", String(32), nullable=False, index=True),
    Column("created_at", String(32), nullable=False),
)

_MUTABLE_FIELDS = {"name", "description", "price"}


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class ProductStore:
    """Repository for Product entities.

    Usage:
        store = ProductStore("sqlite:///secureapi.db")
        pid = store.create_product(Product(name="Lamp", price=19.5, owner_id=user.id))
        store.update_product(pid, price=17.0)
        store.close()
    """

    def __init__(self, db_url: str) -> None:
        self.engine: Engine = make_engine(db_url)
        _metadata.create_all(self.engine)

    def create_product(self, product: Product) -> str:
        """Insert a new product and return its assigned id."""
        product_id = uuid.uuid4().hex
        with self.engine.connect() as conn:
            conn.execute(
                _products.insert().values(
                    id=product_id,
                    name=product.name,
                    description=product.description,
                    price=product.price,
                    owner_id=product.owner_id,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
        return product_id

    def get_product(self, product_id: str) -> Optional[Product]:
        with self.engine.connect() as conn:
            row = conn.execute(_products.select().where(_products.c.id == product_id)).fetchone()
        return _row_to_product(row) if row is not None else None

    def get_owner_id(self, product_id: str) -> Optional[str]:
        """Return the current owner id of a product, read fresh from the DB.

        Used at authorization time; never cache the result.
        """
        with self.engine.connect() as conn:
            return conn.execute(
                _products.select().with_only_columns(_products.c.owner_id).where(_products.c.id == product_id)
            ).scalar()

    def list_products(self) -> list[Product]:
        """Return all products, oldest first."""
        with self.engine.connect() as conn:
            rows = conn.execute(_products.select().order_by(_products.c.created_at, _products.c.id)).fetchall()
        return [_row_to_product(r) for r in rows]

    def list_by_owner(self, owner_id: str) -> list[Product]:
        with self.engine.connect() as conn:
            rows = conn.execute(
                _products.select().where(_products.c.owner_id == owner_id).order_by(_products.c.created_at)
            ).fetchall()
        return [_row_to_product(r) for r in rows]

    def update_product(self, product_id: str, **fields) -> bool:
        """Update mutable fields (name, description, price) on a product.

        Unknown keys raise ValueError rather than being silently ignored --
        in particular owner_id is rejected.

        Returns True if a row was updated, False if product_id was not found.
        """
        unknown = set(fields) - _MUTABLE_FIELDS
        if unknown:
            raise ValueError(f"Cannot update product fields: {sorted(unknown)!r}")
        if not fields:
            return self.get_product(product_id) is not None
        with self.engine.connect() as conn:
            result = conn.execute(_products.update().where(_products.c.id == product_id).values(**fields))
            conn.commit()
        return result.rowcount > 0

    def delete_product(self, product_id: str) -> bool:
        with self.engine.connect() as conn:
            result = conn.execute(_products.delete().where(_products.c.id == product_id))
            conn.commit()
        return result.rowcount > 0

    def delete_by_owner(self, owner_id: str) -> int:
        """Delete every product owned by a user. Returns the number removed."""
        with self.engine.connect() as conn:
            result = conn.execute(_products.delete().where(_products.c.owner_id == owner_id))
            conn.commit()
        return result.rowcount

    def close(self) -> None:
        self.engine.dispose()


def _row_to_product(row) -> Product:
    return Product(
        id=row.id,
        name=row.name,
        description=row.description,
        price=row.price,
        owner_id=row.owner_id,
        created_at=row.created_at,
    )
