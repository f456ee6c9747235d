"""ORM guard keeping ``InventoryTransaction`` rows append-only.

A ``before_flush`` listener on every Session rejects any flush that would
UPDATE or DELETE a ledger row. Inserts pass through untouched. Bulk SQL
statements bypass the ORM and are not covered here.

    from stockroom.db.immutability import register_ledger_guard
    register_ledger_guard()  # once, at startup
"""

import logging

from sqlalchemy import event
from sqlalchemy.orm import Session

from stockroom.models.inventory import InventoryTransaction
from stockroom.services.errors import LedgerImmutableError

logger = logging.getLogger(__name__)


def _reject_ledger_changes(session, flush_context, instances):
    for obj in session.deleted:
        if isinstance(obj, InventoryTransaction):
            logger.error("Blocked delete of inventory transaction %s", obj.id)
            raise LedgerImmutableError(obj.id, "deleted")
    for obj in session.dirty:
        if isinstance(obj, InventoryTransaction) and session.is_modified(obj, include_collections=False):
            logger.error("Blocked update of inventory transaction %s", obj.id)
            raise LedgerImmutableError(obj.id, "updated")


def register_ledger_guard() -> None:
    if not event.contains(Session, "before_flush", _reject_ledger_changes):
        event.listen(Session, "before_flush", _reject_ledger_changes)


def unregister_ledger_guard() -> None:
    if event.contains(Session, "before_flush", _reject_ledger_changes):
        event.remove(Session, "before_flush", _reject_ledger_changes)
