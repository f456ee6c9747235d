from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from stockroom.api.deps import Principal, get_principal
from stockroom.db.database import get_db
from stockroom.schemas.inventory import RoomCreate, RoomOut, RoomUpdate
from stockroom.services import rooms

router = APIRouter(prefix="/inventory/rooms", tags=["Rooms"])


@router.get("", response_model=list[RoomOut])
def list_rooms(
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return rooms.list_rooms(db, store_id=principal.store_id)


@router.post("", response_model=RoomOut, status_code=status.HTTP_201_CREATED)
def create_room(
    payload: RoomCreate,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return rooms.create_room(
        db,
        store_id=principal.store_id,
        name=payload.name,
        description=payload.description,
        for_sale=payload.for_sale,
    )


@router.patch("/{room_id}", response_model=RoomOut)
def update_room(
    room_id: int,
    payload: RoomUpdate,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return rooms.update_room(
        db,
        store_id=principal.store_id,
        room_id=room_id,
        name=payload.name,
        description=payload.description,
        for_sale=payload.for_sale,
    )


@router.delete("/{room_id}", response_model=RoomOut)
def delete_room(
    room_id: int,
    principal: Principal = Depends(get_principal),
    db: Session = Depends(get_db),
):
    return rooms.delete_room(db, store_id=principal.store_id, room_id=room_id)
