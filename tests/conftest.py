"""Pytest configuration and fixtures"""
import asyncio
import os
from datetime import datetime, timedelta, timezone

import jwt
import pytest

# Set test environment variables before the app modules are imported
os.environ.setdefault("JWT_SECRET_ACCESS", "test-access-secret-that-is-long-enough-for-hs256")
os.environ.setdefault("MONGO_DB_URL", "mongodb://localhost:27017")

from microservices.cart_store import InMemoryCartStore
from services.cart_service import CartService
from services.cart_sync_service import CartSyncService


class YieldingCartStore(InMemoryCartStore):
    """In-memory store that yields to the event loop around each call, so concurrent
    requests actually interleave."""

    async def get(self, user_id):
        await asyncio.sleep(0)
        return await super().get(user_id)

    async def get_or_create(self, user_id):
        await asyncio.sleep(0)
        return await super().get_or_create(user_id)

    async def save(self, cart):
        await asyncio.sleep(0)
        return await super().save(cart)


@pytest.fixture
def store():
    return InMemoryCartStore()


@pytest.fixture
def cart_service(store):
    return CartService(store)


@pytest.fixture
def sync_service(cart_service):
    return CartSyncService(cart_service)


@pytest.fixture
def rose():
    """Sample product snapshot"""
    return {
        "product_id": 7,
        "name_en": "Rose",
        "name_ar": "وردة",
        "price": 50,
        "image_url": "x",
    }


@pytest.fixture
def tulip():
    return {
        "product_id": 8,
        "name_en": "Tulip",
        "name_ar": "توليب",
        "price": 20,
        "image_url": "https://cdn.example.com/tulip.png",
    }


def make_token(user_id="user-123", expires_in=timedelta(minutes=15)):
    payload = {"sub": user_id, "exp": datetime.now(timezone.utc) + expires_in}
    return jwt.encode(payload, os.environ["JWT_SECRET_ACCESS"], algorithm="HS256")


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_token()}"}


@pytest.fixture
def app(cart_service):
    """The FastAPI app wired to the in-memory cart service"""
    from routes.cart_route import get_cart_service
    from server import app

    app.dependency_overrides[get_cart_service] = lambda: cart_service
    yield app
    app.dependency_overrides.clear()


@pytest.fixture
def token_factory():
    return make_token
