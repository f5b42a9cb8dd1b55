from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Mapping, Protocol

from stockbook.domain.inventory.batches import (
    ID_KEYS,
    Batch,
    ColoredBatch,
    adapt_batches,
    batch_from_raw,
    parse_timestamp,
)
from stockbook.domain.inventory.errors import (
    BatchNotFound,
    FabricNotFound,
    InvalidPrice,
    InvalidQuantity,
)

logger = logging.getLogger(__name__)

METADATA_FIELDS = ("unit_cost", "purchase_date", "batch_number", "container_no", "supplier_id")


@dataclass(frozen=True)
class FabricState:
    fabric_id: str
    name: str
    version: int = 0
    code: str | None = None
    unit: str = "piece"
    low_stock_threshold: float = 0.0
    batches: tuple[Batch, ...] = field(default_factory=tuple)

    def find_batch(self, batch_id: str) -> Batch | None:
        for batch in self.batches:
            if batch.id == batch_id:
                return batch
        return None


class Abort:
    """Returned by a mutate function to leave the stored value untouched."""

    _instance: Abort | None = None

    def __new__(cls) -> Abort:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "ABORT"


ABORT = Abort()


@dataclass(frozen=True)
class Commit:
    batches: tuple[Batch, ...]
    payload: Any = None


@dataclass(frozen=True)
class TransactionResult:
    committed: bool
    final_value: FabricState | None
    attempts: int
    payload: Any = None


MutateFn = Callable[[FabricState | None], "Commit | Abort"]


class FabricStore(Protocol):
    backend: str

    def read_fabric(self, fabric_id: str) -> FabricState | None:
        ...

    def read_fabric_batches(self, fabric_id: str) -> list[Batch] | None:
        ...

    def transactional_update(self, fabric_id: str, mutate_fn: MutateFn) -> TransactionResult:
        ...

    def persist_batch_state(self, fabric_id: str, updated_batches: Iterable[Batch]) -> None:
        ...


def resolve_commit(outcome: Commit, drop_exhausted: bool) -> tuple[Batch, ...]:
    batches = tuple(adapt_batches(outcome.batches))
    if drop_exhausted:
        batches = tuple(batch for batch in batches if batch.quantity > 0)
    return batches


class BaseFabricStore:
    """Stock operations shared by every backend, built on the three primitives.

    Every quantity change goes through ``transactional_update``. Only
    ``update_batch_metadata`` uses the blind ``persist_batch_state`` path.
    """

    backend = "base"

    def read_fabric(self, fabric_id: str) -> FabricState | None:
        raise NotImplementedError

    def transactional_update(self, fabric_id: str, mutate_fn: MutateFn) -> TransactionResult:
        raise NotImplementedError

    def persist_batch_state(self, fabric_id: str, updated_batches: Iterable[Batch]) -> None:
        raise NotImplementedError

    def read_fabric_batches(self, fabric_id: str) -> list[Batch] | None:
        state = self.read_fabric(fabric_id)
        if state is None:
            return None
        return list(state.batches)

    def get_fabric(self, fabric_id: str) -> FabricState:
        state = self.read_fabric(fabric_id)
        if state is None:
            raise FabricNotFound(fabric_id)
        return state

    def purchase_stock(self, fabric_id: str, raw_batch: Batch | Mapping[str, Any]) -> Batch:
        candidate = batch_from_raw(raw_batch)
        if candidate.quantity <= 0:
            raise InvalidQuantity("purchased quantity must be greater than zero")
        if candidate.purchase_date is None:
            candidate = replace(candidate, purchase_date=datetime.now(timezone.utc))
        explicit_id = not isinstance(raw_batch, Mapping) or any(raw_batch.get(key) for key in ID_KEYS)

        def mutate(current: FabricState | None) -> Commit | Abort:
            if current is None:
                return ABORT
            seq = max((batch.seq for batch in current.batches), default=-1) + 1
            batch_id = candidate.id
            if not explicit_id or current.find_batch(batch_id) is not None:
                batch_id = f"{fabric_id}-{seq}"
            new_batch = replace(candidate, id=batch_id, seq=seq)
            return Commit(batches=current.batches + (new_batch,), payload=new_batch)

        result = self.transactional_update(fabric_id, mutate)
        if not result.committed:
            raise FabricNotFound(fabric_id)
        logger.info(
            "stock purchased: fabric_id=%s batch_id=%s quantity=%s unit_cost=%s",
            fabric_id,
            result.payload.id,
            result.payload.quantity,
            result.payload.unit_cost,
        )
        return result.payload

    def adjust_batch_quantity(
        self,
        fabric_id: str,
        batch_id: str,
        quantity: float | None = None,
        items: Iterable[Mapping[str, Any]] | None = None,
    ) -> Batch:
        """Manual stock correction, applied under the same compare-and-swap as sales."""
        if quantity is None and items is None:
            raise InvalidQuantity("either quantity or items is required")
        if quantity is not None and quantity < 0:
            raise InvalidQuantity("quantity must not be negative")

        def mutate(current: FabricState | None) -> Commit | Abort:
            if current is None:
                return ABORT
            batch = current.find_batch(batch_id)
            if batch is None:
                return ABORT
            if items is not None:
                base = {
                    "id": batch.id,
                    "unit_cost": batch.unit_cost,
                    "purchase_date": batch.purchase_date,
                    "items": list(items),
                }
                adjusted = batch_from_raw(base)
                adjusted = replace(
                    adjusted,
                    seq=batch.seq,
                    batch_number=batch.batch_number,
                    container_no=batch.container_no,
                    supplier_id=batch.supplier_id,
                )
            elif isinstance(batch, ColoredBatch):
                raise InvalidQuantity("colour-tracked batches are adjusted through items")
            else:
                adjusted = batch.with_quantity(float(quantity))
            batches = tuple(adjusted if b.id == batch_id else b for b in current.batches)
            return Commit(batches=batches, payload=adjusted)

        result = self.transactional_update(fabric_id, mutate)
        if not result.committed:
            if result.final_value is None:
                raise FabricNotFound(fabric_id)
            raise BatchNotFound(fabric_id, batch_id)
        logger.info("batch quantity adjusted: fabric_id=%s batch_id=%s", fabric_id, batch_id)
        return result.payload

    def update_batch_metadata(self, fabric_id: str, batch_id: str, **fields: Any) -> Batch:
        """Blind write of non-quantity fields; last writer wins."""
        unknown = set(fields) - set(METADATA_FIELDS)
        if unknown:
            raise ValueError(f"unsupported batch fields: {', '.join(sorted(unknown))}")
        state = self.get_fabric(fabric_id)
        batch = state.find_batch(batch_id)
        if batch is None:
            raise BatchNotFound(fabric_id, batch_id)

        changes = {key: value for key, value in fields.items() if value is not None}
        if "unit_cost" in changes:
            changes["unit_cost"] = float(changes["unit_cost"])
            if changes["unit_cost"] < 0:
                raise InvalidPrice("unit cost must not be negative")
        if "purchase_date" in changes and not isinstance(changes["purchase_date"], datetime):
            changes["purchase_date"] = parse_timestamp(changes["purchase_date"])
        updated = replace(batch, **changes)
        self.persist_batch_state(fabric_id, [updated])
        return updated
