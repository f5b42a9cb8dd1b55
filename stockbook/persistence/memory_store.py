from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import replace
from typing import Iterable

from stockbook.core.config import get_settings
from stockbook.domain.inventory.batches import Batch
from stockbook.domain.inventory.errors import TransactionConflict
from stockbook.domain.inventory.store import (
    Abort,
    BaseFabricStore,
    Commit,
    FabricState,
    MutateFn,
    TransactionResult,
    resolve_commit,
)

logger = logging.getLogger(__name__)


class MemoryFabricStore(BaseFabricStore):
    """In-process fabric store with the same compare-and-swap contract as the SQL one.

    The lock guards only the read and the swap; the mutate function runs
    outside it, so concurrent callers really do race and retry.
    """

    backend = "memory"

    def __init__(self, max_attempts: int | None = None, delete_exhausted: bool | None = None):
        settings = get_settings()
        self.max_attempts = max_attempts or settings.transaction_max_retries
        self.delete_exhausted = (
            settings.delete_exhausted_batches if delete_exhausted is None else delete_exhausted
        )
        self._fabrics: dict[str, FabricState] = {}
        self._lock = threading.Lock()

    def create_fabric(
        self,
        name: str,
        code: str | None = None,
        unit: str = "piece",
        low_stock_threshold: float = 0.0,
        fabric_id: str | None = None,
    ) -> FabricState:
        state = FabricState(
            fabric_id=fabric_id or str(uuid.uuid4()),
            name=name,
            code=code,
            unit=unit,
            low_stock_threshold=low_stock_threshold,
        )
        with self._lock:
            if code and any(item.code == code for item in self._fabrics.values()):
                raise ValueError(f"fabric code already exists: {code}")
            self._fabrics[state.fabric_id] = state
        logger.info("fabric created: fabric_id=%s name=%s", state.fabric_id, name)
        return state

    def list_fabrics(self) -> list[FabricState]:
        with self._lock:
            return sorted(self._fabrics.values(), key=lambda item: item.name)

    def read_fabric(self, fabric_id: str) -> FabricState | None:
        with self._lock:
            return self._fabrics.get(fabric_id)

    def transactional_update(self, fabric_id: str, mutate_fn: MutateFn) -> TransactionResult:
        for attempt in range(1, self.max_attempts + 1):
            current = self.read_fabric(fabric_id)
            outcome = mutate_fn(current)
            if isinstance(outcome, Abort) or outcome is None or current is None:
                return TransactionResult(committed=False, final_value=current, attempts=attempt)
            if not isinstance(outcome, Commit):
                raise TypeError(f"mutate function must return Commit or ABORT, got {type(outcome).__name__}")

            final = replace(
                current,
                version=current.version + 1,
                batches=resolve_commit(outcome, self.delete_exhausted),
            )
            with self._lock:
                stored = self._fabrics.get(fabric_id)
                if stored is not None and stored.version == current.version:
                    self._fabrics[fabric_id] = final
                    return TransactionResult(committed=True, final_value=final, attempts=attempt, payload=outcome.payload)
            logger.warning(
                "stock update conflict: fabric_id=%s version=%s attempt=%s",
                fabric_id,
                current.version,
                attempt,
            )

        raise TransactionConflict(fabric_id, self.max_attempts)

    def persist_batch_state(self, fabric_id: str, updated_batches: Iterable[Batch]) -> None:
        updates = {batch.id: batch for batch in updated_batches}
        with self._lock:
            stored = self._fabrics.get(fabric_id)
            if stored is None:
                return
            batches = [updates.pop(batch.id, batch) for batch in stored.batches]
            batches.extend(updates.values())
            self._fabrics[fabric_id] = replace(stored, version=stored.version + 1, batches=tuple(batches))
        logger.info("batch state persisted without version check: fabric_id=%s", fabric_id)
