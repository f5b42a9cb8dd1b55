from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Iterable, Mapping

from stockbook.domain.inventory.batches import (
    Batch,
    ColorItem,
    ColoredBatch,
    adapt_batches,
    batch_to_dict,
    normalize_batches,
    normalize_color,
    to_decimal,
)
from stockbook.domain.inventory.errors import InsufficientStock, InvalidQuantity

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CostLine:
    batch_id: str
    quantity_taken: float
    unit_cost: float
    color_name: str | None = None

    @property
    def cost(self) -> float:
        return self.quantity_taken * self.unit_cost

    def to_dict(self) -> dict[str, Any]:
        return {
            "batch_id": self.batch_id,
            "quantity_taken": self.quantity_taken,
            "unit_cost": self.unit_cost,
            "color_name": self.color_name,
        }


@dataclass(frozen=True)
class SaleResult:
    total_cost: float
    cost_of_goods_sold: tuple[CostLine, ...]
    updated_batches: tuple[Batch, ...]

    @property
    def quantity(self) -> float:
        return sum(line.quantity_taken for line in self.cost_of_goods_sold)

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_cost": self.total_cost,
            "cost_of_goods_sold": [line.to_dict() for line in self.cost_of_goods_sold],
            "updated_batches": [batch_to_dict(batch) for batch in self.updated_batches],
        }


def validate_quantity(quantity: Any) -> float:
    if isinstance(quantity, bool):
        raise InvalidQuantity(f"quantity must be a number, got {quantity!r}")
    try:
        value = float(quantity)
    except (TypeError, ValueError) as exc:
        raise InvalidQuantity(f"quantity must be a number, got {quantity!r}") from exc
    if math.isnan(value) or math.isinf(value):
        raise InvalidQuantity(f"quantity must be finite, got {quantity!r}")
    if value <= 0:
        raise InvalidQuantity(f"quantity must be greater than zero, got {value:g}")
    return value


def _eligible(batch: Batch, color: str | None) -> Decimal:
    if isinstance(batch, ColoredBatch):
        return sum(
            (
                to_decimal(item.quantity)
                for item in batch.items
                if item.quantity > 0 and (color is None or item.color_name == color)
            ),
            Decimal(0),
        )
    return to_decimal(batch.stock)


def available_quantity(
    batches: Iterable[Batch | Mapping[str, Any]] | Mapping[str, Any] | None,
    color: str | None = None,
) -> float:
    color = normalize_color(color)
    return float(sum((_eligible(batch, color) for batch in normalize_batches(batches, color)), Decimal(0)))


def _draw_items(
    batch: ColoredBatch, needed: Decimal, color: str | None
) -> tuple[ColoredBatch, list[tuple[Decimal, str | None]], Decimal]:
    # Items are drained in stored order; a colour filter leaves other colours untouched.
    draws: list[tuple[Decimal, str | None]] = []
    items: list[ColorItem] = []
    for item in batch.items:
        eligible = color is None or item.color_name == color
        stock = to_decimal(item.quantity)
        if needed <= 0 or not eligible or stock <= 0:
            items.append(item)
            continue
        take = min(stock, needed)
        needed -= take
        items.append(ColorItem(color_name=item.color_name, quantity=float(stock - take)))
        draws.append((take, item.color_name or None))
    return batch.with_items(items), draws, needed


def _settle(takes: list[float], target: float) -> list[float]:
    """Nudge the last take by a few ulps so the floats add back to ``target``.

    The takes are exact decimals, but their float images summed left to
    right can miss ``target`` by rounding (0.1 + 0.2).
    """
    if not takes:
        return takes
    head = sum(takes[:-1])
    last = target - head
    for _ in range(8):
        total = head + last
        if total == target:
            break
        last = math.nextafter(last, math.inf if total < target else -math.inf)
    return takes[:-1] + [last]


def calculate_fifo_sale(
    batches: Iterable[Batch | Mapping[str, Any]] | Mapping[str, Any] | None,
    quantity: Any,
    color: str | None = None,
) -> SaleResult:
    """Plan a sale of ``quantity`` units against ``batches``, oldest batch first.

    ``batches`` may be raw stored records or canonical batches, in any order.
    With ``color`` set only items of that colour are drawn. Either the whole
    request is satisfiable and a complete plan is returned, or
    ``InsufficientStock`` is raised carrying the eligible total; the input is
    never modified.

    The walk runs in ``Decimal`` so the segment takes always add up to the
    request and a sale of exactly the available stock goes through.
    """
    requested = validate_quantity(quantity)
    color = normalize_color(color)
    ordered = normalize_batches(batches, color)

    needed = to_decimal(requested)
    available = sum((_eligible(batch, color) for batch in ordered), Decimal(0))
    if available < needed:
        raise InsufficientStock(requested=requested, available=float(available), color=color)

    segments: list[tuple[Batch, Decimal, str | None]] = []
    updated: list[Batch] = []
    for batch in ordered:
        if needed <= 0:
            break
        if isinstance(batch, ColoredBatch):
            new_batch, draws, needed = _draw_items(batch, needed, color)
            logger.debug("fifo draw: batch_id=%s lines=%s remaining=%s", batch.id, len(draws), needed)
            segments.extend((batch, take, color_name) for take, color_name in draws)
            updated.append(new_batch)
            continue
        stock = to_decimal(batch.stock)
        take = min(stock, needed)
        needed -= take
        logger.debug("fifo draw: batch_id=%s taken=%s remaining=%s", batch.id, take, needed)
        segments.append((batch, take, None))
        updated.append(batch.with_quantity(float(stock - take)))

    takes = _settle([float(take) for _, take, _ in segments], requested)
    lines = tuple(
        CostLine(batch_id=batch.id, quantity_taken=taken, unit_cost=batch.unit_cost, color_name=color_name)
        for (batch, _, color_name), taken in zip(segments, takes)
    )
    total_cost = sum((take * to_decimal(batch.unit_cost) for batch, take, _ in segments), Decimal(0))
    return SaleResult(
        total_cost=float(total_cost),
        cost_of_goods_sold=lines,
        updated_batches=tuple(updated),
    )


def apply_sale(
    batches: Iterable[Batch | Mapping[str, Any]] | Mapping[str, Any] | None,
    result: SaleResult,
    drop_exhausted: bool = False,
) -> list[Batch]:
    """Return the full batch set with ``result.updated_batches`` swapped in, in input order."""
    replacements = {batch.id: batch for batch in result.updated_batches}
    merged: list[Batch] = []
    for batch in adapt_batches(batches):
        batch = replacements.get(batch.id, batch)
        if drop_exhausted and batch.quantity <= 0:
            continue
        merged.append(batch)
    return merged
