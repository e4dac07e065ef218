"""
Product repositories

One interface, three stores. Every implementation maps rows through
mapping.py with its own schema profile, so the application only ever sees
Product objects.

There is no locking or version check on updates: two concurrent edits of the
same product both succeed and the last write wins.
"""
from __future__ import annotations

import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from fastapi.concurrency import run_in_threadpool
from pymongo import DESCENDING, ReturnDocument
from pymongo.errors import PyMongoError
from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    Integer,
    MetaData,
    Numeric,
    String,
    Table,
    Text,
    func,
    or_,
    select,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from mapping import HOSTED_SCHEMA, SQL_SCHEMA, SchemaProfile, from_row, prepare_insert, prepare_update
from schemas import Product

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """A backend call failed. The original exception is chained."""


class ProductRepository(ABC):
    schema: SchemaProfile
    backend = "unknown"

    @abstractmethod
    async def list_all(self) -> List[Product]:
        ...

    @abstractmethod
    async def get(self, product_id: str) -> Optional[Product]:
        ...

    @abstractmethod
    async def create(self, data: Any) -> Product:
        ...

    @abstractmethod
    async def update(self, product_id: str, data: Any) -> Optional[Product]:
        ...

    @abstractmethod
    async def delete(self, product_id: str) -> bool:
        ...

    @abstractmethod
    async def search(self, term: str) -> List[Product]:
        ...

    @abstractmethod
    async def by_category(self, category: str) -> List[Product]:
        ...

    @abstractmethod
    async def featured(self) -> List[Product]:
        ...

    async def status(self) -> Dict[str, Any]:
        return {"backend": self.backend, "connected": True}


# In-memory (no backend configured)

class InMemoryProductRepository(ProductRepository):
    """Stand-in for the hosted store when no credentials are set.

    Rows are kept in hosted-schema shape so reads and writes exercise the
    same mapping as the real adapter.
    """

    schema = HOSTED_SCHEMA
    backend = "memory"

    def __init__(self, products: Optional[List[Any]] = None):
        self._rows: Dict[str, Dict[str, Any]] = {}
        for product in products or []:
            self._insert(prepare_insert(product, self.schema))

    def _insert(self, row: Dict[str, Any]):
        if row["id"] in self._rows:
            logger.error("Product %s already exists, refusing to overwrite it", row["id"])
            raise StorageError(f"Product {row['id']} already exists")
        self._rows[row["id"]] = row

    def _select(self, predicate=None) -> List[Product]:
        products = [from_row(row, self.schema) for row in self._rows.values()]
        if predicate is not None:
            products = [p for p in products if predicate(p)]
        return sorted(products, key=lambda p: p.created_at, reverse=True)

    async def list_all(self) -> List[Product]:
        return self._select()

    async def get(self, product_id: str) -> Optional[Product]:
        row = self._rows.get(product_id)
        return from_row(row, self.schema) if row else None

    async def create(self, data: Any) -> Product:
        row = prepare_insert(data, self.schema)
        self._insert(row)
        return from_row(row, self.schema)

    async def update(self, product_id: str, data: Any) -> Optional[Product]:
        row = self._rows.get(product_id)
        if row is None:
            return None
        row.update(prepare_update(data, self.schema))
        return from_row(row, self.schema)

    async def delete(self, product_id: str) -> bool:
        return self._rows.pop(product_id, None) is not None

    async def search(self, term: str) -> List[Product]:
        needle = term.lower()
        return self._select(lambda p: needle in p.name.lower() or needle in p.description.lower())

    async def by_category(self, category: str) -> List[Product]:
        return self._select(lambda p: p.category == category)

    async def featured(self) -> List[Product]:
        return self._select(lambda p: p.featured)


# SQL (MySQL in production, SQLite locally)

metadata = MetaData()

products_table = Table(
    "products",
    metadata,
    Column("id", String(36), primary_key=True),
    Column("name", String(255), nullable=False),
    Column("description", Text),
    Column("price", Numeric(10, 2, asdecimal=False), nullable=False, default=0),
    Column("category", String(100), nullable=False, index=True),
    Column("image_url", Text),
    Column("stock", Integer, nullable=False, default=0),
    Column("featured", Boolean, default=False),
    Column("discount", Integer, default=0),
    Column("created_at", DateTime, server_default=func.now()),
    Column("description_images", Text),
    Column("specification_images", Text),
    Column("delivery_images", Text),
    Column("allow_customization", Boolean, default=False),
    Column("allowcustomname", Boolean, default=False),
    Column("allowcustommodality", Boolean, default=False),
    Column("allowcustomcolorselection", Boolean, default=False),
    Column("colors", Text),
    Column("specifications", Text),
)


def _like_pattern(term: str) -> str:
    escaped = term.replace("/", "//").replace("%", "/%").replace("_", "/_")
    return f"%{escaped}%"


def _log_sql_error(action: str, exc: SQLAlchemyError):
    detail = getattr(exc, "orig", None)
    logger.error("SQL error while %s: %s (detail: %s)", action, exc.__class__.__name__, detail or exc)


class SqlProductRepository(ProductRepository):
    schema = SQL_SCHEMA
    backend = "sql"

    def __init__(self, engine: Engine):
        self.engine = engine

    def ensure_schema(self):
        metadata.create_all(self.engine)

    def _fetch(self, statement) -> List[Dict[str, Any]]:
        with self.engine.connect() as conn:
            return [dict(row) for row in conn.execute(statement).mappings()]

    def _write(self, statement) -> int:
        with self.engine.begin() as conn:
            return conn.execute(statement).rowcount

    async def _run(self, action: str, fn, *args):
        try:
            return await run_in_threadpool(fn, *args)
        except SQLAlchemyError as exc:
            _log_sql_error(action, exc)
            raise StorageError(f"Database error while {action}") from exc

    async def _select(self, *criteria) -> List[Product]:
        statement = select(products_table).where(*criteria).order_by(products_table.c.created_at.desc())
        rows = await self._run("listing products", self._fetch, statement)
        return [from_row(row, self.schema) for row in rows]

    async def list_all(self) -> List[Product]:
        return await self._select()

    async def get(self, product_id: str) -> Optional[Product]:
        statement = select(products_table).where(products_table.c.id == product_id)
        rows = await self._run(f"fetching product {product_id}", self._fetch, statement)
        return from_row(rows[0], self.schema) if rows else None

    async def create(self, data: Any) -> Product:
        row = prepare_insert(data, self.schema)
        logger.debug("Inserting product %s", row["id"])
        await self._run("creating product", self._write, products_table.insert().values(**row))
        return await self.get(row["id"])

    async def update(self, product_id: str, data: Any) -> Optional[Product]:
        row = prepare_update(data, self.schema)
        statement = products_table.update().where(products_table.c.id == product_id).values(**row)
        affected = await self._run(f"updating product {product_id}", self._write, statement)
        if affected == 0:
            return None
        return await self.get(product_id)

    async def delete(self, product_id: str) -> bool:
        statement = products_table.delete().where(products_table.c.id == product_id)
        affected = await self._run(f"deleting product {product_id}", self._write, statement)
        return affected > 0

    async def search(self, term: str) -> List[Product]:
        pattern = _like_pattern(term)
        return await self._select(or_(
            products_table.c.name.ilike(pattern, escape="/"),
            products_table.c.description.ilike(pattern, escape="/"),
        ))

    async def by_category(self, category: str) -> List[Product]:
        return await self._select(products_table.c.category == category)

    async def featured(self) -> List[Product]:
        return await self._select(products_table.c.featured.is_(True))

    async def status(self) -> Dict[str, Any]:
        info = {"backend": self.backend, "database_url": self.engine.url.render_as_string(hide_password=True)}
        try:
            await run_in_threadpool(self._fetch, select(func.count()).select_from(products_table))
            info["connected"] = True
        except SQLAlchemyError as exc:
            info.update(connected=False, error=str(exc)[:80])
        return info


# Hosted document store (MongoDB)

def _doc_to_row(doc: Dict[str, Any]) -> Dict[str, Any]:
    doc = dict(doc)
    doc["id"] = str(doc.pop("_id"))
    return doc


class MongoProductRepository(ProductRepository):
    schema = HOSTED_SCHEMA
    backend = "hosted"

    def __init__(self, db, collection_name: str = "products"):
        self.db = db
        self.collection = db[collection_name]

    async def _find(self, filter_dict: Dict[str, Any]) -> List[Product]:
        try:
            cursor = self.collection.find(filter_dict).sort(self.schema.column("createdAt"), DESCENDING)
            return [from_row(_doc_to_row(doc), self.schema) async for doc in cursor]
        except PyMongoError as exc:
            logger.error("Hosted store error while listing products: %s", exc)
            raise StorageError("Hosted store error while listing products") from exc

    async def list_all(self) -> List[Product]:
        return await self._find({})

    async def get(self, product_id: str) -> Optional[Product]:
        try:
            doc = await self.collection.find_one({"_id": product_id})
        except PyMongoError as exc:
            logger.error("Hosted store error while fetching product %s: %s", product_id, exc)
            raise StorageError(f"Hosted store error while fetching product {product_id}") from exc
        return from_row(_doc_to_row(doc), self.schema) if doc else None

    async def create(self, data: Any) -> Product:
        row = prepare_insert(data, self.schema)
        doc = {"_id": row.pop("id"), **row}
        try:
            await self.collection.insert_one(doc)
        except PyMongoError as exc:
            logger.error("Hosted store error while creating product: %s", exc)
            raise StorageError("Hosted store error while creating product") from exc
        return from_row(_doc_to_row(doc), self.schema)

    async def update(self, product_id: str, data: Any) -> Optional[Product]:
        try:
            doc = await self.collection.find_one_and_update(
                {"_id": product_id},
                {"$set": prepare_update(data, self.schema)},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as exc:
            logger.error("Hosted store error while updating product %s: %s", product_id, exc)
            raise StorageError(f"Hosted store error while updating product {product_id}") from exc
        return from_row(_doc_to_row(doc), self.schema) if doc else None

    async def delete(self, product_id: str) -> bool:
        try:
            result = await self.collection.delete_one({"_id": product_id})
        except PyMongoError as exc:
            logger.error("Hosted store error while deleting product %s: %s", product_id, exc)
            raise StorageError(f"Hosted store error while deleting product {product_id}") from exc
        return result.deleted_count > 0

    async def search(self, term: str) -> List[Product]:
        pattern = {"$regex": re.escape(term), "$options": "i"}
        return await self._find({"$or": [
            {self.schema.column("name"): pattern},
            {self.schema.column("description"): pattern},
        ]})

    async def by_category(self, category: str) -> List[Product]:
        return await self._find({self.schema.column("category"): category})

    async def featured(self) -> List[Product]:
        return await self._find({self.schema.column("featured"): True})

    async def status(self) -> Dict[str, Any]:
        info = {"backend": self.backend, "database_name": getattr(self.db, "name", None)}
        try:
            info["collections"] = await self.db.list_collection_names()
            info["connected"] = True
        except PyMongoError as exc:
            info.update(connected=False, error=str(exc)[:80])
        return info
