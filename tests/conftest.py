# tests/conftest.py
import os
from decimal import Decimal

os.environ["DATABASE_URL"] = "sqlite://"
os.environ.setdefault("SECRET_KEY", "test-secret-key-with-at-least-32-characters")

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import create_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

import stockroom.models  # noqa: E402,F401
from stockroom.core.security import create_access_token  # noqa: E402
from stockroom.db.database import Base, get_db  # noqa: E402
from stockroom.db.immutability import register_ledger_guard, unregister_ledger_guard  # noqa: E402
from stockroom.main import app  # noqa: E402
from stockroom.models import Product, Room, Store, Supplier  # noqa: E402


@pytest.fixture()
def engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(engine)
        engine.dispose()


@pytest.fixture()
def session_factory(engine):
    register_ledger_guard()
    try:
        yield sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
    finally:
        unregister_ledger_guard()


@pytest.fixture()
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def store(db):
    store = Store(name="Main Street")
    db.add(store)
    db.commit()
    return store


@pytest.fixture()
def other_store(db):
    store = Store(name="Across Town")
    db.add(store)
    db.commit()
    return store


@pytest.fixture()
def product(db, store):
    product = Product(store_id=store.id, name="Espresso Beans", sku="ESP-1", price=Decimal("10.00"), stock=0)
    db.add(product)
    db.commit()
    return product


@pytest.fixture()
def rooms(db, store):
    backroom = Room(store_id=store.id, name="Backroom")
    shelf = Room(store_id=store.id, name="Shelf", for_sale=True)
    db.add(backroom)
    db.flush()
    db.add(shelf)
    db.commit()
    return backroom, shelf


@pytest.fixture()
def supplier(db, store):
    supplier = Supplier(store_id=store.id, name="Roastery Co")
    db.add(supplier)
    db.commit()
    return supplier


@pytest.fixture()
def client(session_factory):
    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        with TestClient(app) as test_client:
            yield test_client
    finally:
        app.dependency_overrides.pop(get_db, None)


@pytest.fixture()
def auth_headers(store):
    token = create_access_token("7", store.id)
    return {"Authorization": f"Bearer {token}"}
