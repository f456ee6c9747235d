"""Stock ledger engine.

Every public operation here changes per-room quantities, keeps
``Product.stock`` equal to the sum of the product's item quantities, and
appends exactly the ledger rows the change implies. Each one runs through
``run_atomic``: state changes and ledger rows commit together or not at all.

Locking order inside an operation is product row first, then item rows in
ascending room id, so concurrent operations on the same product serialize
instead of deadlocking.

An item whose quantity reaches zero is deleted in the same unit.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockroom.core.config import settings
from stockroom.models.inventory import (
    InventoryItem,
    InventoryTransaction,
    Product,
    Room,
    Supplier,
    TransactionType,
)
from stockroom.services.atomic import run_atomic
from stockroom.services.errors import InsufficientStock, InvalidArgument, NotFound

logger = logging.getLogger(__name__)

COST_QUANT = Decimal("0.0001")


@dataclass
class StockChange:
    product: Product
    item: InventoryItem
    transaction: InventoryTransaction | None
    item_deleted: bool = False


@dataclass
class TransferResult:
    product: Product
    source_item: InventoryItem
    destination_item: InventoryItem
    transaction: InventoryTransaction
    source_deleted: bool


def _quantize_cost(value: Decimal) -> Decimal:
    return Decimal(value).quantize(COST_QUANT)


def default_unit_cost(product: Product) -> Decimal:
    """Cost assumed when none was given: a configured share of the sale price."""
    return _quantize_cost(Decimal(product.price) * settings.default_cost_ratio)


def weighted_average_cost(
    current_qty: int,
    current_cost: Decimal,
    added_qty: int,
    added_cost: Decimal,
) -> Decimal:
    new_qty = current_qty + added_qty
    if new_qty <= 0:
        raise InvalidArgument("Weighted average is undefined for a non-positive total quantity")
    total_value = (Decimal(current_cost) * Decimal(current_qty)) + (Decimal(added_cost) * Decimal(added_qty))
    return _quantize_cost(total_value / Decimal(new_qty))


def _require_positive(value: int, field: str) -> None:
    if value is None or value <= 0:
        raise InvalidArgument(f"{field} must be a positive number")


def _get_product(
    db: Session,
    store_id: int,
    product_id: int,
    *,
    include_deleted: bool = False,
) -> Product:
    query = (
        select(Product)
        .where(Product.id == product_id, Product.store_id == store_id)
        .with_for_update()
    )
    if not include_deleted:
        query = query.where(Product.is_deleted.is_(False))
    product = db.scalar(query)
    if not product:
        raise NotFound("Product not found")
    return product


def _get_room(db: Session, store_id: int, room_id: int) -> Room:
    room = db.scalar(select(Room).where(Room.id == room_id, Room.store_id == store_id))
    if not room:
        raise NotFound("Room not found")
    return room


def _get_supplier(db: Session, store_id: int, supplier_id: int) -> Supplier:
    supplier = db.scalar(
        select(Supplier).where(
            Supplier.id == supplier_id,
            Supplier.store_id == store_id,
            Supplier.is_active.is_(True),
        )
    )
    if not supplier:
        raise NotFound("Supplier not found")
    return supplier


def _find_item(db: Session, store_id: int, product_id: int, room_id: int) -> InventoryItem | None:
    return db.scalar(
        select(InventoryItem)
        .where(
            InventoryItem.store_id == store_id,
            InventoryItem.product_id == product_id,
            InventoryItem.room_id == room_id,
        )
        .with_for_update()
    )


def _append_transaction(db: Session, **values) -> InventoryTransaction:
    transaction = InventoryTransaction(**values)
    db.add(transaction)
    return transaction


def restock(
    db: Session,
    *,
    store_id: int,
    user_id: int | None,
    product_id: int,
    room_id: int,
    quantity: int,
    unit_cost: Decimal | None = None,
    supplier_id: int | None = None,
    invoice_number: str | None = None,
    notes: str | None = None,
) -> StockChange:
    _require_positive(quantity, "Quantity")
    if unit_cost is not None and Decimal(unit_cost) < 0:
        raise InvalidArgument("Cost must be a non-negative number")
    invoice_number = invoice_number.strip() or None if invoice_number else None

    def operation() -> StockChange:
        product = _get_product(db, store_id, product_id)
        _get_room(db, store_id, room_id)
        if supplier_id is not None:
            _get_supplier(db, store_id, supplier_id)

        cost = _quantize_cost(unit_cost) if unit_cost is not None else default_unit_cost(product)
        item = _find_item(db, store_id, product_id, room_id)
        if item:
            item.avg_cost = weighted_average_cost(item.quantity, item.avg_cost, quantity, cost)
            item.quantity = item.quantity + quantity
        else:
            item = InventoryItem(
                store_id=store_id,
                product_id=product_id,
                room_id=room_id,
                quantity=quantity,
                avg_cost=cost,
            )
            db.add(item)
        product.stock = product.stock + quantity
        db.flush()

        transaction = _append_transaction(
            db,
            store_id=store_id,
            type=TransactionType.RESTOCK,
            product_id=product_id,
            room_id=room_id,
            inventory_item_id=item.id,
            supplier_id=supplier_id,
            invoice_number=invoice_number,
            user_id=user_id,
            quantity=quantity,
            cost=cost,
            notes=notes or f"Restocked {quantity} units at {cost} each",
        )
        db.flush()
        return StockChange(product=product, item=item, transaction=transaction)

    result = run_atomic(db, operation, label="restock")
    logger.info(
        "Restocked product %s in room %s by %s (store %s, txn %s)",
        product_id,
        room_id,
        quantity,
        store_id,
        result.transaction.id,
    )
    return result


def adjust_quantity(
    db: Session,
    *,
    store_id: int,
    user_id: int | None,
    product_id: int,
    room_id: int,
    new_quantity: int,
    notes: str | None = None,
) -> StockChange:
    if new_quantity is None or new_quantity < 0:
        raise InvalidArgument("Quantity must be zero or a positive number")

    def operation() -> StockChange:
        product = _get_product(db, store_id, product_id)
        item = _find_item(db, store_id, product_id, room_id)
        if not item:
            raise NotFound("Inventory item not found")

        delta = new_quantity - item.quantity
        if delta == 0:
            return StockChange(product=product, item=item, transaction=None)

        item.quantity = new_quantity
        product.stock = product.stock + delta
        transaction = _append_transaction(
            db,
            store_id=store_id,
            type=TransactionType.ADJUSTMENT,
            product_id=product_id,
            room_id=room_id,
            inventory_item_id=item.id,
            user_id=user_id,
            quantity=abs(delta),
            cost=item.avg_cost,
            notes=notes or "Manual inventory adjustment",
        )
        deleted = new_quantity == 0
        if deleted:
            db.delete(item)
        db.flush()
        return StockChange(product=product, item=item, transaction=transaction, item_deleted=deleted)

    result = run_atomic(db, operation, label="adjust_quantity")
    logger.info(
        "Adjusted product %s in room %s to %s (store %s)",
        product_id,
        room_id,
        new_quantity,
        store_id,
    )
    return result


def transfer(
    db: Session,
    *,
    store_id: int,
    user_id: int | None,
    product_id: int,
    source_room_id: int,
    destination_room_id: int,
    quantity: int,
    notes: str | None = None,
) -> TransferResult:
    _require_positive(quantity, "Quantity")
    if source_room_id == destination_room_id:
        raise InvalidArgument("Source and destination rooms must be different")

    def operation() -> TransferResult:
        product = _get_product(db, store_id, product_id)
        source_room = _get_room(db, store_id, source_room_id)
        destination_room = _get_room(db, store_id, destination_room_id)

        # Lock both item rows in room id order.
        items: dict[int, InventoryItem | None] = {}
        for room_id in sorted((source_room_id, destination_room_id)):
            items[room_id] = _find_item(db, store_id, product_id, room_id)
        source_item = items[source_room_id]
        destination_item = items[destination_room_id]

        if not source_item:
            raise NotFound("Source inventory item not found")
        if source_item.quantity < quantity:
            raise InsufficientStock(
                source_item.quantity,
                quantity,
                "Insufficient stock in source room",
            )

        source_cost = source_item.avg_cost
        source_item.quantity = source_item.quantity - quantity
        if destination_item:
            # Transfers are not cost events: the destination keeps its own average.
            destination_item.quantity = destination_item.quantity + quantity
        else:
            destination_item = InventoryItem(
                store_id=store_id,
                product_id=product_id,
                room_id=destination_room_id,
                quantity=quantity,
                avg_cost=source_cost,
            )
            db.add(destination_item)

        transaction = _append_transaction(
            db,
            store_id=store_id,
            type=TransactionType.TRANSFER,
            product_id=product_id,
            room_id=source_room_id,
            destination_room_id=destination_room_id,
            inventory_item_id=source_item.id,
            user_id=user_id,
            quantity=quantity,
            cost=source_cost,
            notes=notes or f"Transferred {quantity} units from {source_room.name} to {destination_room.name}",
        )
        source_deleted = source_item.quantity == 0
        if source_deleted:
            db.delete(source_item)
        db.flush()
        return TransferResult(
            product=product,
            source_item=source_item,
            destination_item=destination_item,
            transaction=transaction,
            source_deleted=source_deleted,
        )

    result = run_atomic(db, operation, label="transfer")
    logger.info(
        "Transferred %s units of product %s from room %s to room %s (store %s)",
        quantity,
        product_id,
        source_room_id,
        destination_room_id,
        store_id,
    )
    return result


def remove_inventory_item(
    db: Session,
    *,
    store_id: int,
    user_id: int | None,
    product_id: int,
    room_id: int,
    notes: str | None = None,
) -> StockChange:
    def operation() -> StockChange:
        product = _get_product(db, store_id, product_id, include_deleted=True)
        item = _find_item(db, store_id, product_id, room_id)
        if not item:
            raise NotFound("Inventory item not found")

        product.stock = product.stock - item.quantity
        transaction = _append_transaction(
            db,
            store_id=store_id,
            type=TransactionType.ADJUSTMENT,
            product_id=product_id,
            room_id=room_id,
            inventory_item_id=item.id,
            user_id=user_id,
            quantity=item.quantity,
            cost=item.avg_cost,
            notes=notes or "Manual inventory removal",
        )
        db.delete(item)
        db.flush()
        return StockChange(product=product, item=item, transaction=transaction, item_deleted=True)

    result = run_atomic(db, operation, label="remove_inventory_item")
    logger.info("Removed product %s from room %s (store %s)", product_id, room_id, store_id)
    return result


def record_sale(
    db: Session,
    *,
    store_id: int,
    user_id: int | None,
    product_id: int,
    quantity: int,
    reference: str | None = None,
) -> StockChange:
    """Deduct sold units from the store's for-sale room."""
    _require_positive(quantity, "Quantity")

    def operation() -> StockChange:
        product = _get_product(db, store_id, product_id)
        sales_room = db.scalar(select(Room).where(Room.store_id == store_id, Room.for_sale.is_(True)))
        if not sales_room:
            raise InsufficientStock(0, quantity, "No for-sale room is configured for this store")
        item = _find_item(db, store_id, product_id, sales_room.id)
        available = item.quantity if item else 0
        if available < quantity:
            raise InsufficientStock(available, quantity)

        item.quantity = item.quantity - quantity
        product.stock = product.stock - quantity
        transaction = _append_transaction(
            db,
            store_id=store_id,
            type=TransactionType.SALE,
            product_id=product_id,
            room_id=sales_room.id,
            inventory_item_id=item.id,
            user_id=user_id,
            quantity=quantity,
            cost=item.avg_cost,
            notes=f"Sale {reference}" if reference else "Sale",
        )
        deleted = item.quantity == 0
        if deleted:
            db.delete(item)
        db.flush()
        return StockChange(product=product, item=item, transaction=transaction, item_deleted=deleted)

    result = run_atomic(db, operation, label="record_sale")
    logger.info("Sold %s units of product %s (store %s)", quantity, product_id, store_id)
    return result
