from stockbook.domain.inventory.batches import (
    Batch,
    ColorItem,
    ColoredBatch,
    FlatBatch,
    batch_from_raw,
    effective_quantity,
    normalize_batches,
)
from stockbook.domain.inventory.errors import (
    BatchNotFound,
    FabricNotFound,
    InsufficientStock,
    InvalidPrice,
    InvalidQuantity,
    InventoryError,
    NoBatchesAvailable,
    TransactionConflict,
)
from stockbook.domain.inventory.fifo import CostLine, SaleResult, calculate_fifo_sale
from stockbook.domain.inventory.reducer import InventoryReducer, SaleRequest
from stockbook.domain.inventory.store import ABORT, Commit, FabricState, TransactionResult

__all__ = [
    "ABORT",
    "Batch",
    "BatchNotFound",
    "ColorItem",
    "ColoredBatch",
    "Commit",
    "CostLine",
    "FabricNotFound",
    "FabricState",
    "FlatBatch",
    "InsufficientStock",
    "InvalidPrice",
    "InvalidQuantity",
    "InventoryError",
    "InventoryReducer",
    "NoBatchesAvailable",
    "SaleRequest",
    "SaleResult",
    "TransactionConflict",
    "TransactionResult",
    "batch_from_raw",
    "calculate_fifo_sale",
    "effective_quantity",
    "normalize_batches",
]
