"""Typed failures raised by the inventory services.

Every error carries a stable ``code`` and the HTTP status the API layer maps
it to. Services raise these before writing anything (validation) or from
inside an atomic unit, in which case the unit is rolled back first.
"""


class InventoryError(Exception):
    code: str = "INVENTORY_ERROR"
    status_code: int = 400

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class Unauthorized(InventoryError):
    code = "UNAUTHORIZED"
    status_code = 401


class Forbidden(InventoryError):
    code = "FORBIDDEN"
    status_code = 403


class NotFound(InventoryError):
    """Missing entity, or one owned by another store. The two are not distinguished."""

    code = "NOT_FOUND"
    status_code = 404


class InvalidArgument(InventoryError):
    code = "INVALID_ARGUMENT"
    status_code = 400


class Conflict(InventoryError):
    code = "CONFLICT"
    status_code = 409


class InsufficientStock(Conflict):
    code = "INSUFFICIENT_STOCK"

    def __init__(self, available: int, requested: int, message: str | None = None):
        self.available = available
        self.requested = requested
        super().__init__(message or f"Insufficient stock: available {available}, requested {requested}")


class ConcurrencyConflict(Conflict):
    code = "CONCURRENT_MODIFICATION"

    def __init__(self, attempts: int):
        self.attempts = attempts
        super().__init__(f"Inventory was modified concurrently; gave up after {attempts} attempts")


class InternalError(InventoryError):
    code = "INTERNAL"
    status_code = 500


class LedgerImmutableError(InternalError):
    code = "LEDGER_IMMUTABLE"

    def __init__(self, transaction_id: int | None, action: str):
        self.transaction_id = transaction_id
        self.action = action
        super().__init__(f"Inventory transaction {transaction_id} is immutable and cannot be {action}")
