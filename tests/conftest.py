"""
Pytest configuration and fixtures for the storefront tests.

SQLite stands in for Postgres (one shared in-memory connection) and fakeredis
for the Redis cart store.
"""
import os
from decimal import Decimal

# Set test environment before importing storefront modules
os.environ["POSTGRES_DSN"] = "sqlite://"
os.environ["KAFKA_ENABLED"] = "false"
os.environ["JWT_SECRET"] = "test-secret-key-for-unit-tests-only"

import fakeredis
import jwt
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from storefront.core.config import settings
from storefront.db.models import Product
from storefront.db.session import Base
from storefront.store.cart_store import CartStore


@pytest.fixture
def engine():
    eng = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest.fixture
def redis_client(redis_server):
    return fakeredis.FakeRedis(server=redis_server, decode_responses=True)


@pytest.fixture
def store(redis_client):
    return CartStore(redis_client, max_retries=3)


@pytest.fixture
def make_product(db):
    """Factory inserting a product and returning it."""
    counter = {"n": 0}

    def _make(name=None, price="10.00", stock=10, is_active=True, image=None):
        counter["n"] += 1
        p = Product(
            name=name or f"Product {counter['n']}",
            description="",
            price=Decimal(price),
            stock=stock,
            is_active=is_active,
            image=image,
        )
        db.add(p)
        db.commit()
        db.refresh(p)
        return p

    return _make


@pytest.fixture
def events(monkeypatch):
    """Capture order events instead of sending them to Kafka."""
    sent = []

    def _capture(event_type, order, **extra):
        sent.append({"type": event_type, "order_number": order.order_number, **extra})

    monkeypatch.setattr("storefront.services.checkout.emit_order_event", _capture)
    monkeypatch.setattr("storefront.services.orders.emit_order_event", _capture)
    return sent


def make_token(user_id: str, role: str = "customer") -> str:
    payload = {"sub": user_id, "role": role, "type": "access"}
    return jwt.encode(payload, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def auth_headers(user_id: str, role: str = "customer") -> dict:
    return {"Authorization": f"Bearer {make_token(user_id, role)}"}


@pytest.fixture
def client(session_factory, store, events):
    from storefront.api.deps import get_db, get_cart_store
    from storefront.main import app

    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = _get_db
    app.dependency_overrides[get_cart_store] = lambda: store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()
