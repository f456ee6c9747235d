"""Read-only views over current inventory state.

Nothing here writes. Rows synthesized by ``inventory_stats`` for stores that
never went through the ledger engine are display data only.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockroom.core.config import settings
from stockroom.models.inventory import InventoryItem, InventoryTransaction, Product, Room, TransactionType

logger = logging.getLogger(__name__)

MONEY_QUANT = Decimal("0.01")


@dataclass
class InventoryStatRow:
    id: str
    product_id: int
    room_id: int
    product_name: str
    room_name: str
    price: Decimal
    quantity: int
    avg_cost: Decimal
    estimated_cost: Decimal
    estimated_value: Decimal
    is_virtual: bool = False


@dataclass
class StockDrift:
    product_id: int
    product_name: str
    cached_stock: int
    item_quantity: int

    @property
    def difference(self) -> int:
        return self.cached_stock - self.item_quantity


def _stat_row(
    *,
    row_id: str,
    product: Product,
    room: Room,
    quantity: int,
    avg_cost: Decimal,
    is_virtual: bool = False,
) -> InventoryStatRow:
    price = Decimal(product.price)
    avg_cost = Decimal(avg_cost)
    return InventoryStatRow(
        id=row_id,
        product_id=product.id,
        room_id=room.id,
        product_name=product.name,
        room_name=room.name,
        price=price,
        quantity=quantity,
        avg_cost=avg_cost,
        estimated_cost=(avg_cost * quantity).quantize(MONEY_QUANT),
        estimated_value=(price * quantity).quantize(MONEY_QUANT),
        is_virtual=is_virtual,
    )


def default_room(db: Session, store_id: int) -> Room | None:
    """Earliest-created room of the store; ties broken by id."""
    return db.scalar(
        select(Room)
        .where(Room.store_id == store_id)
        .order_by(Room.created_at.asc(), Room.id.asc())
        .limit(1)
    )


def list_inventory(
    db: Session,
    *,
    store_id: int,
    room_id: int | None = None,
    product_id: int | None = None,
) -> list[tuple[InventoryItem, Product, Room]]:
    query = (
        select(InventoryItem, Product, Room)
        .join(Product, Product.id == InventoryItem.product_id)
        .join(Room, Room.id == InventoryItem.room_id)
        .where(InventoryItem.store_id == store_id)
        .order_by(Product.name.asc(), Room.name.asc())
    )
    if room_id is not None:
        query = query.where(InventoryItem.room_id == room_id)
    if product_id is not None:
        query = query.where(InventoryItem.product_id == product_id)
    return [tuple(row) for row in db.execute(query).all()]


def inventory_stats(db: Session, *, store_id: int) -> list[InventoryStatRow]:
    rows = [
        _stat_row(
            row_id=str(item.id),
            product=product,
            room=room,
            quantity=item.quantity,
            avg_cost=item.avg_cost,
        )
        for item, product, room in list_inventory(db, store_id=store_id)
    ]
    if rows:
        return rows

    room = default_room(db, store_id)
    if room is None:
        return []
    products = db.scalars(
        select(Product)
        .where(Product.store_id == store_id, Product.is_deleted.is_(False))
        .order_by(Product.name.asc())
    ).all()
    if products:
        logger.info("Store %s has no inventory items; synthesizing %s virtual rows", store_id, len(products))
    return [
        _stat_row(
            row_id=f"virtual_{product.id}_{room.id}",
            product=product,
            room=room,
            quantity=product.stock or 0,
            avg_cost=Decimal(product.price) * settings.default_cost_ratio,
            is_virtual=True,
        )
        for product in products
    ]


def stock_drift(db: Session, *, store_id: int) -> list[StockDrift]:
    """Products whose cached ``stock`` disagrees with the sum of their items."""
    item_totals = (
        select(
            InventoryItem.product_id.label("product_id"),
            func.sum(InventoryItem.quantity).label("total"),
        )
        .where(InventoryItem.store_id == store_id)
        .group_by(InventoryItem.product_id)
        .subquery()
    )
    rows = db.execute(
        select(Product.id, Product.name, Product.stock, func.coalesce(item_totals.c.total, 0))
        .outerjoin(item_totals, item_totals.c.product_id == Product.id)
        .where(Product.store_id == store_id)
        .order_by(Product.id.asc())
    ).all()
    result = [
        StockDrift(
            product_id=int(row[0]),
            product_name=str(row[1]),
            cached_stock=int(row[2] or 0),
            item_quantity=int(row[3] or 0),
        )
        for row in rows
        if int(row[2] or 0) != int(row[3] or 0)
    ]
    if result:
        logger.warning("Store %s has %s products with stock drift", store_id, len(result))
    return result


def list_transactions(
    db: Session,
    *,
    store_id: int,
    product_id: int | None = None,
    room_id: int | None = None,
    transaction_type: TransactionType | None = None,
    date_from: datetime | None = None,
    date_to: datetime | None = None,
    limit: int | None = None,
) -> list[InventoryTransaction]:
    query = (
        select(InventoryTransaction)
        .where(InventoryTransaction.store_id == store_id)
        .order_by(InventoryTransaction.created_at.desc(), InventoryTransaction.id.desc())
    )
    if product_id is not None:
        query = query.where(InventoryTransaction.product_id == product_id)
    if room_id is not None:
        query = query.where(
            (InventoryTransaction.room_id == room_id) | (InventoryTransaction.destination_room_id == room_id)
        )
    if transaction_type is not None:
        query = query.where(InventoryTransaction.type == transaction_type)
    if date_from is not None:
        query = query.where(InventoryTransaction.created_at >= date_from)
    if date_to is not None:
        query = query.where(InventoryTransaction.created_at <= date_to)
    query = query.limit(min(limit or settings.transactions_page_limit, settings.transactions_page_limit))
    return list(db.scalars(query).all())
