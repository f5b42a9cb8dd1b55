from __future__ import annotations


class InventoryError(Exception):
    code = "inventory_error"
    status_code = 400

    def to_dict(self) -> dict:
        return {"detail": str(self), "error": self.code}


class InvalidQuantity(InventoryError, ValueError):
    code = "invalid_quantity"
    status_code = 422


class InvalidPrice(InventoryError, ValueError):
    code = "invalid_price"
    status_code = 422


class FabricNotFound(InventoryError, LookupError):
    code = "fabric_not_found"
    status_code = 404

    def __init__(self, fabric_id: str | None, name: str | None = None):
        self.fabric_id = fabric_id
        label = f'"{name}" ' if name else ""
        if fabric_id:
            message = f"fabric {label}(id={fabric_id}) not found"
        else:
            message = f"product {label}has no fabric id; select a valid product"
        super().__init__(message)


class BatchNotFound(InventoryError, LookupError):
    code = "batch_not_found"
    status_code = 404

    def __init__(self, fabric_id: str, batch_id: str):
        self.fabric_id = fabric_id
        self.batch_id = batch_id
        super().__init__(f"batch {batch_id} not found for fabric {fabric_id}")


class NoBatchesAvailable(InventoryError):
    code = "no_batches"
    status_code = 409

    def __init__(self, fabric_id: str, name: str | None = None):
        self.fabric_id = fabric_id
        label = f'"{name}"' if name else fabric_id
        super().__init__(f"no batches found for fabric {label}; purchase stock for this fabric first")


class InsufficientStock(InventoryError):
    code = "insufficient_stock"
    status_code = 409

    def __init__(self, requested: float, available: float, color: str | None = None, name: str | None = None):
        self.requested = requested
        self.available = available
        self.color = color
        self.name = name
        subject = f" for {name}" if name else ""
        if color:
            subject += f" ({color})"
        super().__init__(f"insufficient stock{subject}: requested {requested:g}, only {available:g} available")

    def to_dict(self) -> dict:
        body = super().to_dict()
        body.update({"requested": self.requested, "available": self.available, "color": self.color})
        return body


class TransactionConflict(InventoryError):
    code = "transaction_conflict"
    status_code = 503

    def __init__(self, fabric_id: str, attempts: int):
        self.fabric_id = fabric_id
        self.attempts = attempts
        super().__init__(f"stock update for fabric {fabric_id} kept conflicting after {attempts} attempts")
