from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from stockroom.api.deps import Principal, get_principal
from stockroom.db.database import get_db
from stockroom.models.inventory import TransactionType
from stockroom.schemas.inventory import (
    AdjustQuantityRequest,
    InventoryItemOut,
    InventoryRowOut,
    InventoryStatOut,
    InventoryTransactionOut,
    ProductOut,
    RemoveItemRequest,
    RestockRequest,
    SaleDeductionRequest,
    StockChangeOut,
    StockDriftOut,
    TransferOut,
    TransferRequest,
)
from stockroom.services import inventory_stats, stock_ledger
from stockroom.services.stock_ledger import StockChange

router = APIRouter(prefix="/inventory", tags=["Inventory"])


def _stock_change_out(change: StockChange) -> StockChangeOut:
    return StockChangeOut(
        inventory_item=InventoryItemOut.model_validate(change.item),
        item_deleted=change.item_deleted,
        product=ProductOut.model_validate(change.product),
        transaction=(
            InventoryTransactionOut.model_validate(change.transaction) if change.transaction is not None else None
        ),
    )


@router.get("", response_model=list[InventoryRowOut])
def list_inventory(
    room_id: int | None = None,
    product_id: int | None = None,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    rows = inventory_stats.list_inventory(
        db,
        store_id=principal.store_id,
        room_id=room_id,
        product_id=product_id,
    )
    return [
        InventoryRowOut(
            product_id=item.product_id,
            product_name=product.name,
            room_id=item.room_id,
            room_name=room.name,
            quantity=item.quantity,
            avg_cost=item.avg_cost,
            estimated_cost=item.avg_cost * item.quantity,
            estimated_value=product.price * item.quantity,
        )
        for item, product, room in rows
    ]


@router.post("/restock", response_model=StockChangeOut, status_code=status.HTTP_201_CREATED)
def restock(
    payload: RestockRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    change = stock_ledger.restock(
        db,
        store_id=principal.store_id,
        user_id=principal.user_id,
        product_id=payload.product_id,
        room_id=payload.room_id,
        quantity=payload.quantity,
        unit_cost=payload.cost,
        supplier_id=payload.supplier_id,
        invoice_number=payload.invoice_number,
        notes=payload.notes,
    )
    return _stock_change_out(change)


@router.put("", response_model=StockChangeOut)
def adjust_quantity(
    payload: AdjustQuantityRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    change = stock_ledger.adjust_quantity(
        db,
        store_id=principal.store_id,
        user_id=principal.user_id,
        product_id=payload.product_id,
        room_id=payload.room_id,
        new_quantity=payload.quantity,
        notes=payload.notes,
    )
    return _stock_change_out(change)


@router.delete("", response_model=StockChangeOut)
def remove_inventory_item(
    payload: RemoveItemRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    change = stock_ledger.remove_inventory_item(
        db,
        store_id=principal.store_id,
        user_id=principal.user_id,
        product_id=payload.product_id,
        room_id=payload.room_id,
        notes=payload.notes,
    )
    return _stock_change_out(change)


@router.post("/transfer", response_model=TransferOut)
def transfer(
    payload: TransferRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    result = stock_ledger.transfer(
        db,
        store_id=principal.store_id,
        user_id=principal.user_id,
        product_id=payload.product_id,
        source_room_id=payload.source_room_id,
        destination_room_id=payload.destination_room_id,
        quantity=payload.quantity,
        notes=payload.notes,
    )
    return TransferOut(
        source_item=InventoryItemOut.model_validate(result.source_item),
        source_deleted=result.source_deleted,
        destination_item=InventoryItemOut.model_validate(result.destination_item),
        product=ProductOut.model_validate(result.product),
        transaction=InventoryTransactionOut.model_validate(result.transaction),
    )


@router.post("/sales", response_model=StockChangeOut, status_code=status.HTTP_201_CREATED)
def record_sale(
    payload: SaleDeductionRequest,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    change = stock_ledger.record_sale(
        db,
        store_id=principal.store_id,
        user_id=principal.user_id,
        product_id=payload.product_id,
        quantity=payload.quantity,
        reference=payload.reference,
    )
    return _stock_change_out(change)


@router.get("/stats", response_model=list[InventoryStatOut])
def stats(
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return inventory_stats.inventory_stats(db, store_id=principal.store_id)


@router.get("/stats/drift", response_model=list[StockDriftOut])
def stock_drift(
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return inventory_stats.stock_drift(db, store_id=principal.store_id)


@router.get("/transactions", response_model=list[InventoryTransactionOut])
def list_transactions(
    product_id: int | None = None,
    room_id: int | None = None,
    type: TransactionType | None = Query(default=None),
    date_from: datetime | None = Query(default=None),
    date_to: datetime | None = Query(default=None),
    limit: int | None = Query(default=None, ge=1),
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return inventory_stats.list_transactions(
        db,
        store_id=principal.store_id,
        product_id=product_id,
        room_id=room_id,
        transaction_type=type,
        date_from=date_from,
        date_to=date_to,
        limit=limit,
    )
