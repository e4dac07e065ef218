from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from database import get_repository, make_engine
from main import app
from repositories import InMemoryProductRepository, SqlProductRepository
from schemas import Product


def make_product(**overrides) -> Product:
    values = {
        "id": "p-1",
        "name": "Porta Medalhas Corrida",
        "description": "Medal hanger in MDF for runners",
        "price": 129.9,
        "category": "corrida",
        "imageUrl": "https://img.example.com/corrida.jpg",
        "stock": 12,
        "featured": True,
        "discount": 10,
        "createdAt": datetime(2024, 5, 1, 12, 30, 15, 250000, tzinfo=timezone.utc),
        "descriptionImages": ["https://img.example.com/d1.jpg"],
        "specificationImages": ["https://img.example.com/s1.jpg", "https://img.example.com/s2.jpg"],
        "deliveryImages": ["https://img.example.com/box.jpg"],
        "allowCustomization": True,
        "allowCustomName": True,
        "allowCustomModality": True,
        "allowCustomColorSelection": False,
        "colors": ["#000000", "#FFD700"],
        "specifications": [{"name": "Material", "value": "MDF 6mm"}],
    }
    values.update(overrides)
    return Product.model_validate(values)


@pytest.fixture
def product():
    return make_product()


@pytest.fixture
def memory_repository():
    return InMemoryProductRepository()


@pytest.fixture
def sql_repository():
    engine = make_engine("sqlite://")
    repository = SqlProductRepository(engine)
    repository.ensure_schema()
    yield repository
    engine.dispose()


@pytest.fixture
def client(memory_repository):
    app.dependency_overrides[get_repository] = lambda: memory_repository
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
