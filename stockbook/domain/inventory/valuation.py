from __future__ import annotations

from typing import Any, Iterable, Mapping

from stockbook.domain.inventory.batches import Batch, ColoredBatch, adapt_batches

BatchesInput = Iterable[Batch | Mapping[str, Any]] | Mapping[str, Any] | None


def total_quantity(batches: BatchesInput) -> float:
    return sum(batch.quantity for batch in adapt_batches(batches))


def inventory_value(batches: BatchesInput) -> float:
    return sum(batch.quantity * batch.unit_cost for batch in adapt_batches(batches))


def weighted_average_cost(batches: BatchesInput) -> float:
    # Display only: sales are always costed per batch segment, never at this average.
    adapted = adapt_batches(batches)
    qty = sum(batch.quantity for batch in adapted)
    if qty <= 0:
        return 0.0
    return sum(batch.quantity * batch.unit_cost for batch in adapted) / qty


def quantity_by_color(batches: BatchesInput) -> dict[str, float]:
    colors: dict[str, float] = {}
    for batch in adapt_batches(batches):
        if not isinstance(batch, ColoredBatch):
            continue
        for item in batch.items:
            if item.color_name and item.quantity > 0:
                colors[item.color_name] = colors.get(item.color_name, 0.0) + item.quantity
    return colors


def available_colors(batches: BatchesInput) -> list[dict[str, Any]]:
    return [
        {"color": color, "quantity": qty}
        for color, qty in quantity_by_color(batches).items()
        if qty > 0
    ]


def is_low_stock(batches: BatchesInput, threshold: float | None) -> bool:
    return total_quantity(batches) <= float(threshold or 0)


def stock_summary(batches: BatchesInput, low_stock_threshold: float | None = None) -> dict[str, Any]:
    adapted = adapt_batches(batches)
    return {
        "total_quantity": total_quantity(adapted),
        "inventory_value": inventory_value(adapted),
        "weighted_average_cost": weighted_average_cost(adapted),
        "colors": available_colors(adapted),
        "low_stock": is_low_stock(adapted, low_stock_threshold),
        "batch_count": sum(1 for batch in adapted if batch.quantity > 0),
    }
