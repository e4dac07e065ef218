from __future__ import annotations
import logging
import os
from typing import Optional
from motor.motor_asyncio import AsyncIOMotorClient
from pydantic_settings import BaseSettings
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

from repositories import (
    InMemoryProductRepository,
    MongoProductRepository,
    ProductRepository,
    SqlProductRepository,
)

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    STORAGE_BACKEND: str = os.getenv("STORAGE_BACKEND", "sql")
    SQL_DATABASE_URL: str = os.getenv("SQL_DATABASE_URL", "sqlite:///./storefront.db")
    DATABASE_URL: Optional[str] = os.getenv("DATABASE_URL")
    DATABASE_NAME: str = os.getenv("DATABASE_NAME", "storefront")
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()

_client: Optional[AsyncIOMotorClient] = None
_repository: Optional[ProductRepository] = None


def make_engine(url: str) -> Engine:
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            # in-memory db lives on a single shared connection
            kwargs["poolclass"] = StaticPool
        return create_engine(url, **kwargs)
    return create_engine(url, pool_pre_ping=True, pool_size=10)


def build_repository(config: Settings) -> ProductRepository:
    global _client
    backend = config.STORAGE_BACKEND.lower()
    if backend == "sql":
        repository = SqlProductRepository(make_engine(config.SQL_DATABASE_URL))
        repository.ensure_schema()
        return repository
    if backend == "hosted":
        if not config.DATABASE_URL:
            logger.warning("DATABASE_URL is not set, using the in-memory product store")
            return InMemoryProductRepository()
        _client = AsyncIOMotorClient(config.DATABASE_URL)
        return MongoProductRepository(_client[config.DATABASE_NAME])
    raise ValueError(f"Unknown STORAGE_BACKEND {config.STORAGE_BACKEND!r} (expected 'sql' or 'hosted')")


def get_repository() -> ProductRepository:
    global _repository
    if _repository is None:
        _repository = build_repository(settings)
    return _repository
