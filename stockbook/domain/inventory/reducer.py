from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from stockbook.core.config import get_settings
from stockbook.domain.inventory.batches import normalize_color
from stockbook.domain.inventory.errors import (
    FabricNotFound,
    InsufficientStock,
    InvalidQuantity,
    InventoryError,
    NoBatchesAvailable,
    TransactionConflict,
)
from stockbook.domain.inventory.fifo import (
    CostLine,
    SaleResult,
    apply_sale,
    available_quantity,
    calculate_fifo_sale,
    validate_quantity,
)
from stockbook.domain.inventory.store import ABORT, Abort, Commit, FabricState, FabricStore

logger = logging.getLogger(__name__)


class SaleRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    fabric_id: str | None = Field(default=None, validation_alias=AliasChoices("fabric_id", "fabricId"))
    quantity: float
    color: str | None = None
    name: str | None = None

    @property
    def label(self) -> str:
        return self.name or self.fabric_id or "unknown product"


@dataclass
class ReductionResult:
    fabric_id: str
    product_name: str
    quantity_reduced: float
    total_cost: float
    cost_of_goods_sold: list[CostLine] = field(default_factory=list)
    attempts: int = 1
    success: bool = True

    def to_dict(self) -> dict[str, Any]:
        return {
            "fabric_id": self.fabric_id,
            "product_name": self.product_name,
            "quantity_reduced": self.quantity_reduced,
            "total_cost": self.total_cost,
            "cost_of_goods_sold": [line.to_dict() for line in self.cost_of_goods_sold],
            "attempts": self.attempts,
            "success": self.success,
        }


@dataclass
class ProductAvailability:
    product_name: str
    fabric_id: str | None
    available: bool
    reason: str | None = None
    current_stock: float = 0.0
    requested_quantity: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "product_name": self.product_name,
            "fabric_id": self.fabric_id,
            "available": self.available,
            "reason": self.reason,
            "current_stock": self.current_stock,
            "requested_quantity": self.requested_quantity,
        }


@dataclass
class StockAvailability:
    products: list[ProductAvailability]

    @property
    def all_available(self) -> bool:
        return all(item.available for item in self.products)

    def to_dict(self) -> dict[str, Any]:
        return {
            "all_available": self.all_available,
            "products": [item.to_dict() for item in self.products],
        }


def coerce_sale_request(raw: SaleRequest | Mapping[str, Any]) -> SaleRequest:
    if isinstance(raw, SaleRequest):
        return raw
    try:
        return SaleRequest.model_validate(raw)
    except ValidationError as exc:
        raise InvalidQuantity(f"invalid sale request: {exc.errors()[0]['msg']}") from exc


def sale_mutation(request: SaleRequest):
    """Build the pure read-modify-write step for one product.

    The returned function may run several times, each time on a fresh read
    of the fabric; it never touches anything outside its argument.
    """

    def mutate(current: FabricState | None) -> Commit | Abort:
        if current is None or not current.batches:
            return ABORT
        try:
            result = calculate_fifo_sale(current.batches, request.quantity, request.color)
        except InsufficientStock:
            return ABORT
        return Commit(batches=tuple(apply_sale(current.batches, result)), payload=result)

    return mutate


class InventoryReducer:
    def __init__(self, store: FabricStore, max_retries: int | None = None):
        self.store = store
        self.max_retries = max_retries or get_settings().transaction_max_retries

    def _diagnose_abort(self, request: SaleRequest) -> InventoryError | None:
        # The abort carries no reason; re-read outside the transaction to explain it.
        # None means the fresh read could satisfy the sale after all.
        batches = self.store.read_fabric_batches(request.fabric_id)
        if batches is None:
            return FabricNotFound(request.fabric_id, request.name)
        if not batches:
            return NoBatchesAvailable(request.fabric_id, request.name)
        try:
            calculate_fifo_sale(batches, request.quantity, request.color)
        except InsufficientStock as exc:
            return InsufficientStock(
                requested=exc.requested,
                available=exc.available,
                color=normalize_color(request.color),
                name=request.name,
            )
        return None

    def _reduce_one(self, request: SaleRequest) -> ReductionResult:
        attempts = 0
        for _ in range(self.max_retries):
            outcome = self.store.transactional_update(request.fabric_id, sale_mutation(request))
            attempts += outcome.attempts
            if outcome.committed:
                break
            error = self._diagnose_abort(request)
            if error is not None:
                logger.warning("inventory reduction aborted for %s: %s", request.label, error)
                raise error
            logger.warning(
                "stock for fabric_id=%s changed after abort, retrying: requested=%s",
                request.fabric_id,
                request.quantity,
            )
        else:
            raise TransactionConflict(request.fabric_id, attempts)

        sale: SaleResult = outcome.payload
        logger.info(
            "inventory reduced: fabric_id=%s quantity=%s cost=%s batches=%s attempts=%s",
            request.fabric_id,
            request.quantity,
            sale.total_cost,
            len(sale.updated_batches),
            attempts,
        )
        return ReductionResult(
            fabric_id=request.fabric_id,
            product_name=request.label,
            quantity_reduced=request.quantity,
            total_cost=sale.total_cost,
            cost_of_goods_sold=list(sale.cost_of_goods_sold),
            attempts=attempts,
        )

    def reduce_inventory_atomic(self, sale_products: Iterable[SaleRequest | Mapping[str, Any]]) -> list[ReductionResult]:
        """Apply each sale in its own transaction, in order.

        Atomicity is per product only: when product ``n`` fails, products
        before it stay committed and the error is raised to the caller.
        Malformed requests are rejected before any product is touched.
        """
        requests = [coerce_sale_request(raw) for raw in sale_products or []]
        if not requests:
            raise InvalidQuantity("no products provided for inventory reduction")
        for request in requests:
            if not request.fabric_id:
                raise FabricNotFound(None, request.name)
            validate_quantity(request.quantity)

        logger.info("starting atomic inventory reduction: products=%s", len(requests))
        results = [self._reduce_one(request) for request in requests]
        logger.info("atomic inventory reduction completed: products=%s", len(results))
        return results

    def check_stock_availability(self, products: Iterable[SaleRequest | Mapping[str, Any]]) -> StockAvailability:
        availability: list[ProductAvailability] = []
        for raw in products or []:
            request = coerce_sale_request(raw)
            item = ProductAvailability(
                product_name=request.label,
                fabric_id=request.fabric_id,
                available=False,
                requested_quantity=request.quantity,
            )
            availability.append(item)

            if not request.fabric_id:
                item.reason = "no fabric id"
                continue
            batches = self.store.read_fabric_batches(request.fabric_id)
            if batches is None:
                item.reason = "fabric not found"
                continue
            if not batches:
                item.reason = "no batches available"
                continue

            item.current_stock = available_quantity(batches, request.color)
            item.available = request.quantity > 0 and item.current_stock >= request.quantity
            if not item.available:
                item.reason = "insufficient stock" if request.quantity > 0 else "invalid quantity"
        return StockAvailability(products=availability)
