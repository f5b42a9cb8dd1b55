from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Iterable, Mapping

UNIT_COST_KEYS = ("unitCost", "unit_cost", "costPerPiece", "cost_per_piece")
TIMESTAMP_KEYS = ("purchaseDate", "purchase_date", "createdAt", "created_at")
ID_KEYS = ("id", "batchId", "batch_id", "batchNumber", "batch_number")


def to_decimal(value: float) -> Decimal:
    # Through str so 0.1 stays 0.1 instead of its binary expansion.
    return Decimal(str(value))


def exact_sum(values: Iterable[float]) -> float:
    return float(sum((to_decimal(value) for value in values), Decimal(0)))


@dataclass(frozen=True)
class ColorItem:
    color_name: str
    quantity: float


@dataclass(frozen=True)
class _BatchBase:
    id: str
    unit_cost: float
    purchase_date: datetime | None = None
    seq: int = 0
    batch_number: str | None = None
    container_no: str | None = None
    supplier_id: str | None = None


@dataclass(frozen=True)
class FlatBatch(_BatchBase):
    stock: float = 0.0

    @property
    def quantity(self) -> float:
        return self.stock

    def quantity_for(self, color: str | None = None) -> float:
        # Untracked stock carries no colour breakdown and serves any colour.
        return self.stock

    def with_quantity(self, quantity: float) -> FlatBatch:
        return replace(self, stock=quantity)


@dataclass(frozen=True)
class ColoredBatch(_BatchBase):
    items: tuple[ColorItem, ...] = field(default_factory=tuple)

    @property
    def quantity(self) -> float:
        return exact_sum(item.quantity for item in self.items)

    def quantity_for(self, color: str | None = None) -> float:
        if not color:
            return self.quantity
        return exact_sum(item.quantity for item in self.items if item.color_name == color)

    def with_items(self, items: Iterable[ColorItem]) -> ColoredBatch:
        return replace(self, items=tuple(items))


Batch = FlatBatch | ColoredBatch


def _to_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(number) or math.isinf(number):
        return 0.0
    return number


def _to_int(value: Any, default: int) -> int:
    if value is None or isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default


def _first(raw: Mapping[str, Any], keys: Iterable[str]) -> Any:
    for key in keys:
        value = raw.get(key)
        if value not in (None, ""):
            return value
    return None


def _optional_str(value: Any) -> str | None:
    if value in (None, ""):
        return None
    return str(value)


def normalize_color(color: str | None) -> str | None:
    if color is None:
        return None
    text = str(color).strip()
    return text or None


def parse_timestamp(value: Any) -> datetime | None:
    """Best-effort conversion of a stored purchase timestamp to aware UTC.

    Accepts datetimes, dates, epoch milliseconds and ISO-8601 strings (a
    trailing ``Z`` is allowed). Anything else yields ``None`` instead of
    raising, so a malformed record only loses its place in the FIFO order.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, date):
        parsed = datetime(value.year, value.month, value.day)
    elif isinstance(value, (int, float)):
        try:
            parsed = datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    else:
        text = str(value).strip()
        if not text:
            return None
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def _items_from_raw(raw_items: Any) -> tuple[ColorItem, ...]:
    if isinstance(raw_items, Mapping):
        raw_items = list(raw_items.values())
    items: list[ColorItem] = []
    for entry in raw_items or []:
        if isinstance(entry, ColorItem):
            items.append(entry)
            continue
        if not isinstance(entry, Mapping):
            continue
        name = entry.get("colorName", entry.get("color_name", entry.get("color")))
        items.append(
            ColorItem(
                color_name=str(name or "").strip(),
                quantity=max(_to_float(entry.get("quantity")), 0.0),
            )
        )
    return tuple(items)


def batch_from_raw(raw: Batch | Mapping[str, Any], seq: int = 0, batch_id: str | None = None) -> Batch:
    """Adapt one stored batch record into the canonical Batch shape."""
    if isinstance(raw, (FlatBatch, ColoredBatch)):
        return raw

    resolved_id = batch_id or _optional_str(_first(raw, ID_KEYS)) or f"batch-{seq}"
    common = {
        "id": resolved_id,
        "unit_cost": max(_to_float(_first(raw, UNIT_COST_KEYS)), 0.0),
        "purchase_date": parse_timestamp(_first(raw, TIMESTAMP_KEYS)),
        "seq": _to_int(raw.get("seq"), seq),
        "batch_number": _optional_str(raw.get("batchNumber", raw.get("batch_number"))),
        "container_no": _optional_str(raw.get("containerNo", raw.get("container_no"))),
        "supplier_id": _optional_str(raw.get("supplierId", raw.get("supplier_id"))),
    }
    raw_items = raw.get("items")
    if raw_items is not None:
        return ColoredBatch(items=_items_from_raw(raw_items), **common)
    return FlatBatch(stock=max(_to_float(raw.get("quantity")), 0.0), **common)


def adapt_batches(raw_batches: Iterable[Batch | Mapping[str, Any]] | Mapping[str, Any] | None) -> list[Batch]:
    """Adapt a list of records, or a ``{batch_id: record}`` mapping, keeping input order."""
    if raw_batches is None:
        return []
    if isinstance(raw_batches, Mapping):
        return [
            batch_from_raw(raw, seq=index, batch_id=str(key))
            for index, (key, raw) in enumerate(raw_batches.items())
        ]
    return [batch_from_raw(raw, seq=index) for index, raw in enumerate(raw_batches)]


def effective_quantity(batch: Batch, color: str | None = None) -> float:
    return batch.quantity_for(normalize_color(color))


def _fifo_key(batch: Batch) -> tuple[bool, datetime]:
    stamp = batch.purchase_date
    return (stamp is None, stamp or datetime.min.replace(tzinfo=timezone.utc))


def order_batches(batches: Iterable[Batch]) -> list[Batch]:
    # sorted() is stable: equal or missing timestamps keep their input order.
    return sorted(batches, key=_fifo_key)


def normalize_batches(
    raw_batches: Iterable[Batch | Mapping[str, Any]] | Mapping[str, Any] | None,
    color: str | None = None,
) -> list[Batch]:
    color = normalize_color(color)
    eligible = [batch for batch in adapt_batches(raw_batches) if batch.quantity_for(color) > 0]
    return order_batches(eligible)


def batch_to_dict(batch: Batch) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": batch.id,
        "quantity": batch.quantity,
        "unit_cost": batch.unit_cost,
        "purchase_date": batch.purchase_date.isoformat().replace("+00:00", "Z") if batch.purchase_date else None,
        "batch_number": batch.batch_number,
        "container_no": batch.container_no,
        "supplier_id": batch.supplier_id,
    }
    if isinstance(batch, ColoredBatch):
        out["items"] = [{"color_name": item.color_name, "quantity": item.quantity} for item in batch.items]
    return out
