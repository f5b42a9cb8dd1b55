from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping

from pydantic import AliasChoices, BaseModel, Field

from stockbook.domain.inventory.batches import Batch, normalize_color
from stockbook.domain.inventory.errors import (
    FabricNotFound,
    InsufficientStock,
    InvalidPrice,
    InvalidQuantity,
    NoBatchesAvailable,
)
from stockbook.domain.inventory.fifo import CostLine, calculate_fifo_sale, validate_quantity
from stockbook.domain.inventory.reducer import InventoryReducer, SaleRequest
from stockbook.domain.inventory.store import FabricStore

logger = logging.getLogger(__name__)


class MemoLine(BaseModel):
    fabric_id: str = Field(validation_alias=AliasChoices("fabric_id", "fabricId"))
    name: str | None = None
    quantity: float
    price: float
    color: str | None = None

    def to_sale_request(self) -> SaleRequest:
        return SaleRequest(fabric_id=self.fabric_id, quantity=self.quantity, color=self.color, name=self.name)


@dataclass
class MemoLineQuote:
    fabric_id: str
    name: str
    color: str | None
    quantity: float
    price: float
    cost: float
    cost_of_goods_sold: list[CostLine] = field(default_factory=list)

    @property
    def total(self) -> float:
        return self.quantity * self.price

    @property
    def profit(self) -> float:
        return self.total - self.cost

    def to_dict(self) -> dict[str, Any]:
        return {
            "fabric_id": self.fabric_id,
            "name": self.name,
            "color": self.color,
            "quantity": self.quantity,
            "price": self.price,
            "total": self.total,
            "cost": self.cost,
            "profit": self.profit,
            "cost_of_goods_sold": [line.to_dict() for line in self.cost_of_goods_sold],
        }


@dataclass
class MemoSummary:
    lines: list[MemoLineQuote]

    @property
    def grand_total(self) -> float:
        return sum(line.total for line in self.lines)

    @property
    def total_cost(self) -> float:
        return sum(line.cost for line in self.lines)

    @property
    def profit(self) -> float:
        return self.grand_total - self.total_cost

    def to_dict(self) -> dict[str, Any]:
        return {
            "lines": [line.to_dict() for line in self.lines],
            "grand_total": self.grand_total,
            "total_cost": self.total_cost,
            "profit": self.profit,
        }


def _coerce_line(raw: MemoLine | Mapping[str, Any]) -> MemoLine:
    return raw if isinstance(raw, MemoLine) else MemoLine.model_validate(raw)


def quote_memo_line(batches: Iterable[Batch | Mapping[str, Any]] | None, line: MemoLine) -> MemoLineQuote:
    """Estimate one memo line against a stock snapshot; nothing is written."""
    quantity = validate_quantity(line.quantity)
    if line.price <= 0:
        raise InvalidPrice(f"price must be greater than zero, got {line.price:g}")
    try:
        sale = calculate_fifo_sale(batches, quantity, line.color)
    except InsufficientStock as exc:
        raise InsufficientStock(
            requested=exc.requested,
            available=exc.available,
            color=exc.color,
            name=line.name,
        ) from exc
    return MemoLineQuote(
        fabric_id=line.fabric_id,
        name=line.name or line.fabric_id,
        color=normalize_color(line.color),
        quantity=quantity,
        price=line.price,
        cost=sale.total_cost,
        cost_of_goods_sold=list(sale.cost_of_goods_sold),
    )


class MemoService:
    def __init__(self, store: FabricStore):
        self.store = store
        self.reducer = InventoryReducer(store)

    def quote(self, raw_lines: Iterable[MemoLine | Mapping[str, Any]]) -> MemoSummary:
        quotes: list[MemoLineQuote] = []
        for line in (_coerce_line(raw) for raw in raw_lines):
            batches = self.store.read_fabric_batches(line.fabric_id)
            if batches is None:
                raise FabricNotFound(line.fabric_id, line.name)
            if not batches:
                raise NoBatchesAvailable(line.fabric_id, line.name)
            quotes.append(quote_memo_line(batches, line))
        return MemoSummary(lines=quotes)

    def commit(self, raw_lines: Iterable[MemoLine | Mapping[str, Any]]) -> MemoSummary:
        """Pre-validate every line, then reduce stock line by line.

        A shortage found up front leaves all stock untouched. A sale that races
        in between the check and the reduction can still fail a later line
        after earlier lines have committed.
        """
        lines = [_coerce_line(raw) for raw in raw_lines]
        if not lines:
            raise InvalidQuantity("add at least one product to the memo")
        for line in lines:
            validate_quantity(line.quantity)
            if line.price <= 0:
                raise InvalidPrice(f"price must be greater than zero for {line.name or line.fabric_id}")

        availability = self.reducer.check_stock_availability([line.to_sale_request() for line in lines])
        for line, item in zip(lines, availability.products):
            if item.available:
                continue
            logger.warning("memo rejected before reduction: %s (%s)", item.product_name, item.reason)
            if item.reason == "fabric not found":
                raise FabricNotFound(item.fabric_id, line.name)
            if item.reason == "no batches available":
                raise NoBatchesAvailable(item.fabric_id, line.name)
            raise InsufficientStock(
                requested=item.requested_quantity,
                available=item.current_stock,
                color=normalize_color(line.color),
                name=line.name,
            )

        reductions = self.reducer.reduce_inventory_atomic([line.to_sale_request() for line in lines])
        quotes = [
            MemoLineQuote(
                fabric_id=line.fabric_id,
                name=line.name or line.fabric_id,
                color=normalize_color(line.color),
                quantity=line.quantity,
                price=line.price,
                cost=reduction.total_cost,
                cost_of_goods_sold=reduction.cost_of_goods_sold,
            )
            for line, reduction in zip(lines, reductions)
        ]
        summary = MemoSummary(lines=quotes)
        logger.info(
            "memo committed: lines=%s grand_total=%s total_cost=%s",
            len(quotes),
            summary.grand_total,
            summary.total_cost,
        )
        return summary
