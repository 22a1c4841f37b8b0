"""Pytest fixtures for marketplace tests."""

import os
import uuid
from datetime import datetime

os.environ.setdefault("JWT_SECRET", "test-secret")

import pytest
import pytest_asyncio
from bson import ObjectId
from mongomock_motor import AsyncMongoMockClient


@pytest.fixture
def db():
    """Fresh in-memory database per test."""
    client = AsyncMongoMockClient()
    return client[f"marketplace_test_{uuid.uuid4().hex[:8]}"]


def _user(name: str, role: str, **extra) -> dict:
    return {
        "_id": ObjectId(),
        "name": name,
        "email": f"{name.lower().replace(' ', '.')}@example.com",
        "phone": "555-0100",
        "role": role,
        "created_at": datetime.utcnow(),
        **extra,
    }


@pytest_asyncio.fixture
async def users(db):
    """Admin, second admin, seller, two buyers."""
    seeded = {
        "admin": _user("Ada Admin", "admin"),
        "other_admin": _user("Otto Admin", "admin"),
        "seller": _user("Sam Seller", "seller"),
        "buyer": _user(
            "Bea Buyer",
            "buyer",
            address={
                "street": "9 Elm St",
                "city": "Springfield",
                "state": "IL",
                "zip_code": "62701",
                "country": "US",
            },
        ),
        "other_buyer": _user("Bo Buyer", "buyer"),
    }
    await db.users.insert_many(list(seeded.values()))
    return seeded


@pytest.fixture
def make_product(db):
    """Factory inserting an active, available product for a seller."""

    async def _make(seller: dict, **overrides) -> dict:
        now = datetime.utcnow()
        product = {
            "_id": ObjectId(),
            "seller_id": seller["_id"],
            "title": "Vintage desk lamp",
            "description": "Brass lamp, works fine",
            "price": 100.0,
            "category": "furniture",
            "condition": "good",
            "tags": ["lamp", "vintage"],
            "images": ["/uploads/lamp-1.jpg"],
            "location": "Springfield",
            "status": "active",
            "is_available": True,
            "created_at": now,
            "updated_at": now,
        }
        product.update(overrides)
        await db.products.insert_one(product)
        return product

    return _make


@pytest_asyncio.fixture
async def product(users, make_product):
    return await make_product(users["seller"])


@pytest_asyncio.fixture
async def api_client(db):
    """HTTP client against the app with the database dependency pointed at the test db."""
    from httpx import ASGITransport, AsyncClient

    from database import get_db
    from main import app

    app.dependency_overrides[get_db] = lambda: db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    from utils.jwt import create_access_token

    def _headers(user: dict) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user['_id'])}"}

    return _headers
