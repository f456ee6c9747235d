import logging

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from stockroom.models.inventory import InventoryItem, InventoryTransaction, Room
from stockroom.services.atomic import run_atomic
from stockroom.services.errors import Conflict, InvalidArgument, NotFound

logger = logging.getLogger(__name__)


def _clean_name(name: str | None) -> str:
    cleaned = (name or "").strip()
    if not cleaned:
        raise InvalidArgument("Room name is required")
    return cleaned


def _ensure_name_free(db: Session, store_id: int, name: str, exclude_room_id: int | None = None) -> None:
    query = select(Room.id).where(Room.store_id == store_id, Room.name == name)
    if exclude_room_id is not None:
        query = query.where(Room.id != exclude_room_id)
    if db.scalar(query) is not None:
        raise Conflict("A room with this name already exists")


def _clear_for_sale(db: Session, store_id: int, keep_room_id: int | None = None) -> None:
    statement = update(Room).where(Room.store_id == store_id, Room.for_sale.is_(True))
    if keep_room_id is not None:
        statement = statement.where(Room.id != keep_room_id)
    db.execute(statement.values(for_sale=False).execution_options(synchronize_session="fetch"))


def list_rooms(db: Session, *, store_id: int) -> list[Room]:
    return list(db.scalars(select(Room).where(Room.store_id == store_id).order_by(Room.name.asc())).all())


def get_room(db: Session, *, store_id: int, room_id: int) -> Room:
    room = db.scalar(select(Room).where(Room.id == room_id, Room.store_id == store_id))
    if not room:
        raise NotFound("Room not found")
    return room


def create_room(
    db: Session,
    *,
    store_id: int,
    name: str,
    description: str | None = None,
    for_sale: bool = False,
) -> Room:
    name = _clean_name(name)

    def operation() -> Room:
        _ensure_name_free(db, store_id, name)
        if for_sale:
            _clear_for_sale(db, store_id)
        room = Room(
            store_id=store_id,
            name=name,
            description=description.strip() or None if description else None,
            for_sale=bool(for_sale),
        )
        db.add(room)
        db.flush()
        return room

    room = run_atomic(db, operation, label="create_room")
    logger.info("Created room %s in store %s (for_sale=%s)", room.id, store_id, room.for_sale)
    return room


def update_room(
    db: Session,
    *,
    store_id: int,
    room_id: int,
    name: str | None = None,
    description: str | None = None,
    for_sale: bool | None = None,
) -> Room:
    if name is not None:
        name = _clean_name(name)

    def operation() -> Room:
        room = get_room(db, store_id=store_id, room_id=room_id)
        if name is not None and name != room.name:
            _ensure_name_free(db, store_id, name, exclude_room_id=room.id)
            room.name = name
        if description is not None:
            room.description = description.strip() or None
        if for_sale is not None:
            if for_sale:
                _clear_for_sale(db, store_id, keep_room_id=room.id)
            room.for_sale = for_sale
        db.flush()
        return room

    room = run_atomic(db, operation, label="update_room")
    logger.info("Updated room %s in store %s", room.id, store_id)
    return room


def delete_room(db: Session, *, store_id: int, room_id: int) -> Room:
    def operation() -> Room:
        room = get_room(db, store_id=store_id, room_id=room_id)
        item_count = db.scalar(
            select(func.count(InventoryItem.id)).where(
                InventoryItem.store_id == store_id,
                InventoryItem.room_id == room.id,
            )
        )
        if item_count:
            raise Conflict("Cannot delete room with inventory items. Move items to another room first.")
        history_count = db.scalar(
            select(func.count(InventoryTransaction.id)).where(
                (InventoryTransaction.room_id == room.id) | (InventoryTransaction.destination_room_id == room.id)
            )
        )
        if history_count:
            raise Conflict("Cannot delete room referenced by inventory history")
        db.delete(room)
        db.flush()
        return room

    room = run_atomic(db, operation, label="delete_room")
    logger.info("Deleted room %s from store %s", room_id, store_id)
    return room
