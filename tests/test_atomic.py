from decimal import Decimal

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from stockroom.db.database import Base
from stockroom.db.immutability import register_ledger_guard, unregister_ledger_guard
from stockroom.models import InventoryItem, InventoryTransaction, Product, Room, Store
from stockroom.services import stock_ledger
from stockroom.services.atomic import run_atomic
from stockroom.services.errors import (
    ConcurrencyConflict,
    InternalError,
    LedgerImmutableError,
    NotFound,
)


def test_stale_write_is_retried(db):
    calls = []

    def operation():
        calls.append(1)
        if len(calls) == 1:
            raise StaleDataError("row version changed")
        return "done"

    assert run_atomic(db, operation, label="test", max_attempts=3) == "done"
    assert len(calls) == 2


def test_persistent_conflict_surfaces(db):
    calls = []

    def operation():
        calls.append(1)
        raise StaleDataError("row version changed")

    with pytest.raises(ConcurrencyConflict) as exc_info:
        run_atomic(db, operation, label="test", max_attempts=3)
    assert exc_info.value.attempts == 3
    assert exc_info.value.status_code == 409
    assert len(calls) == 3


def test_locked_database_is_retried(db):
    calls = []

    def operation():
        calls.append(1)
        if len(calls) < 3:
            raise OperationalError("UPDATE products", {}, Exception("database is locked"))
        return len(calls)

    assert run_atomic(db, operation, label="test", max_attempts=3) == 3


def test_other_database_errors_are_internal(db):
    def operation():
        raise OperationalError("SELECT 1", {}, Exception("disk I/O error"))

    with pytest.raises(InternalError):
        run_atomic(db, operation, label="test", max_attempts=3)


def test_domain_errors_are_not_retried(db):
    calls = []

    def operation():
        calls.append(1)
        raise NotFound("Product not found")

    with pytest.raises(NotFound):
        run_atomic(db, operation, label="test", max_attempts=3)
    assert len(calls) == 1


def test_ledger_rows_cannot_be_updated_or_deleted(db, store, product, rooms):
    backroom, _ = rooms
    change = stock_ledger.restock(
        db, store_id=store.id, user_id=1, product_id=product.id, room_id=backroom.id, quantity=3, unit_cost=Decimal("1")
    )
    txn = change.transaction

    txn.notes = "rewritten"
    with pytest.raises(LedgerImmutableError):
        db.commit()
    db.rollback()

    db.delete(db.get(InventoryTransaction, txn.id))
    with pytest.raises(LedgerImmutableError):
        db.commit()
    db.rollback()

    stored = db.scalars(select(InventoryTransaction)).all()
    assert len(stored) == 1
    assert stored[0].notes == "Restocked 3 units at 1.0000 each"


def test_foreign_key_failure_is_not_retried(db):
    calls = []

    def operation():
        calls.append(1)
        raise IntegrityError("INSERT INTO inventory_transactions", {}, Exception("FOREIGN KEY constraint failed"))

    with pytest.raises(InternalError):
        run_atomic(db, operation, label="test", max_attempts=3)
    assert len(calls) == 1


def test_duplicate_key_race_is_retried(db):
    calls = []

    def operation():
        calls.append(1)
        if len(calls) == 1:
            raise IntegrityError("INSERT INTO inventory_items", {}, Exception("UNIQUE constraint failed: inventory_items"))
        return "merged"

    assert run_atomic(db, operation, label="test", max_attempts=3) == "merged"
    assert len(calls) == 2


def test_failed_ledger_append_rolls_back_restock(db, store, product, rooms, monkeypatch):
    backroom, _ = rooms

    def failing_append(session, **values):
        raise OperationalError("INSERT INTO inventory_transactions", {}, Exception("disk full"))

    monkeypatch.setattr(stock_ledger, "_append_transaction", failing_append)

    with pytest.raises(InternalError):
        stock_ledger.restock(
            db, store_id=store.id, user_id=1, product_id=product.id, room_id=backroom.id, quantity=5, unit_cost=Decimal("2")
        )

    db.refresh(product)
    assert product.stock == 0
    assert db.scalars(select(InventoryItem)).all() == []
    assert db.scalars(select(InventoryTransaction)).all() == []


def test_lost_update_is_detected_and_retried(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'stockroom.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(engine)
    make_session = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    try:
        with make_session() as setup:
            store = Store(name="Main Street")
            setup.add(store)
            setup.flush()
            product = Product(store_id=store.id, name="Espresso Beans", price=Decimal("10.00"), stock=0)
            room = Room(store_id=store.id, name="Backroom")
            setup.add_all([product, room])
            setup.commit()
            ids = dict(store_id=store.id, product_id=product.id, room_id=room.id)

        with make_session() as first, make_session() as second:
            # first keeps the product and item it loaded here in its identity map.
            stock_ledger.restock(first, user_id=1, quantity=10, unit_cost=Decimal("1"), **ids)
            stock_ledger.restock(second, user_id=2, quantity=10, unit_cost=Decimal("3"), **ids)

            change = stock_ledger.restock(first, user_id=1, quantity=10, unit_cost=Decimal("5"), **ids)

            assert change.item.quantity == 30
            assert change.item.avg_cost == Decimal("3.0000")
            assert change.product.stock == 30

        with make_session() as check:
            item = check.scalar(select(InventoryItem))
            assert item.quantity == 30
            assert item.avg_cost == Decimal("3.0000")
            assert check.get(Product, ids["product_id"]).stock == 30
            assert len(check.scalars(select(InventoryTransaction)).all()) == 3
    finally:
        engine.dispose()


def test_ledger_guard_can_be_removed(db, store, product, rooms):
    backroom, _ = rooms
    change = stock_ledger.restock(
        db, store_id=store.id, user_id=1, product_id=product.id, room_id=backroom.id, quantity=3, unit_cost=Decimal("1")
    )

    unregister_ledger_guard()
    try:
        change.transaction.notes = "corrected"
        db.commit()
    finally:
        register_ledger_guard()

    assert db.get(InventoryTransaction, change.transaction.id).notes == "corrected"
    change.transaction.notes = "again"
    with pytest.raises(LedgerImmutableError):
        db.commit()
    db.rollback()
