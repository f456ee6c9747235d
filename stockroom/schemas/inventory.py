from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, Field

from stockroom.models.inventory import TransactionType


class RoomCreate(BaseModel):
    name: str = Field(min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=255)
    for_sale: bool = False


class RoomUpdate(BaseModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    description: str | None = Field(default=None, max_length=255)
    for_sale: bool | None = None


class RoomOut(BaseModel):
    id: int
    store_id: int
    name: str
    description: str | None
    for_sale: bool
    created_at: datetime

    model_config = {"from_attributes": True}


class ProductOut(BaseModel):
    id: int
    store_id: int
    name: str
    sku: str | None
    price: Decimal
    stock: int
    is_deleted: bool

    model_config = {"from_attributes": True}


class InventoryItemOut(BaseModel):
    id: int
    store_id: int
    product_id: int
    room_id: int
    quantity: int
    avg_cost: Decimal

    model_config = {"from_attributes": True}


class InventoryTransactionOut(BaseModel):
    id: int
    store_id: int
    type: TransactionType
    product_id: int
    room_id: int
    destination_room_id: int | None
    inventory_item_id: int | None
    supplier_id: int | None
    invoice_number: str | None
    user_id: int | None
    quantity: int
    cost: Decimal
    notes: str | None
    created_at: datetime

    model_config = {"from_attributes": True}


class InventoryRowOut(BaseModel):
    product_id: int
    product_name: str
    room_id: int
    room_name: str
    quantity: int
    avg_cost: Decimal
    estimated_cost: Decimal
    estimated_value: Decimal


class RestockRequest(BaseModel):
    product_id: int
    room_id: int
    quantity: int = Field(gt=0)
    cost: Decimal | None = Field(default=None, ge=0, max_digits=14, decimal_places=4)
    supplier_id: int | None = None
    invoice_number: str | None = Field(default=None, max_length=64)
    notes: str | None = Field(default=None, max_length=255)


class AdjustQuantityRequest(BaseModel):
    product_id: int
    room_id: int
    quantity: int = Field(ge=0, description="New absolute quantity for the room")
    notes: str | None = Field(default=None, max_length=255)


class RemoveItemRequest(BaseModel):
    product_id: int
    room_id: int
    notes: str | None = Field(default=None, max_length=255)


class TransferRequest(BaseModel):
    product_id: int
    source_room_id: int
    destination_room_id: int
    quantity: int = Field(gt=0)
    notes: str | None = Field(default=None, max_length=255)


class SaleDeductionRequest(BaseModel):
    product_id: int
    quantity: int = Field(gt=0)
    reference: str | None = Field(default=None, max_length=64)


class StockChangeOut(BaseModel):
    inventory_item: InventoryItemOut
    item_deleted: bool
    product: ProductOut
    transaction: InventoryTransactionOut | None


class TransferOut(BaseModel):
    source_item: InventoryItemOut
    source_deleted: bool
    destination_item: InventoryItemOut
    product: ProductOut
    transaction: InventoryTransactionOut


class InventoryStatOut(BaseModel):
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
    is_virtual: bool

    model_config = {"from_attributes": True}


class StockDriftOut(BaseModel):
    product_id: int
    product_name: str
    cached_stock: int
    item_quantity: int
    difference: int

    model_config = {"from_attributes": True}
