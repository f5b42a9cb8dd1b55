from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Iterable

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stockbook.core.config import get_settings
from stockbook.domain.inventory.batches import Batch, ColoredBatch, batch_from_raw
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
from stockbook.persistence import db
from stockbook.persistence.models import FabricBatchModel, FabricModel

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _row_to_batch(row: FabricBatchModel) -> Batch:
    raw: dict[str, Any] = {
        "id": row.batch_id,
        "seq": row.seq,
        "unit_cost": row.unit_cost,
        "purchase_date": row.purchase_date,
        "batch_number": row.batch_number,
        "container_no": row.container_no,
        "supplier_id": row.supplier_id,
    }
    if row.items is not None:
        raw["items"] = row.items
    else:
        raw["quantity"] = row.quantity
    return batch_from_raw(raw, seq=row.seq)


def _fill_row(row: FabricBatchModel, batch: Batch, now: datetime) -> None:
    if isinstance(batch, ColoredBatch):
        row.items = [{"colorName": item.color_name, "quantity": item.quantity} for item in batch.items]
        row.quantity = None
    else:
        row.items = None
        row.quantity = batch.quantity
    row.seq = batch.seq
    row.unit_cost = batch.unit_cost
    row.purchase_date = batch.purchase_date
    row.batch_number = batch.batch_number
    row.container_no = batch.container_no
    row.supplier_id = batch.supplier_id
    row.updated_at = now


class SqlFabricStore(BaseFabricStore):
    """Fabric store on SQLAlchemy with optimistic concurrency on ``fabrics.version``.

    Reads run without locks. A write commits only if the fabric's version is
    still the one that was read; otherwise the attempt is rolled back and the
    mutate function runs again on a fresh read.
    """

    backend = "sql"

    def __init__(self, max_attempts: int | None = None, delete_exhausted: bool | None = None):
        settings = get_settings()
        self.max_attempts = max_attempts or settings.transaction_max_retries
        self.delete_exhausted = (
            settings.delete_exhausted_batches if delete_exhausted is None else delete_exhausted
        )

    def _load_state(self, session: Session, fabric: FabricModel) -> FabricState:
        rows = session.scalars(
            select(FabricBatchModel)
            .where(FabricBatchModel.fabric_id == fabric.id)
            .order_by(FabricBatchModel.seq.asc(), FabricBatchModel.id.asc())
        ).all()
        return FabricState(
            fabric_id=fabric.id,
            name=fabric.name,
            version=fabric.version,
            code=fabric.code,
            unit=fabric.unit,
            low_stock_threshold=fabric.low_stock_threshold,
            batches=tuple(_row_to_batch(row) for row in rows),
        )

    def _write_batches(self, session: Session, fabric_id: str, batches: tuple[Batch, ...]) -> None:
        now = _now()
        existing = {
            row.batch_id: row
            for row in session.scalars(
                select(FabricBatchModel).where(FabricBatchModel.fabric_id == fabric_id)
            ).all()
        }
        keep = {batch.id for batch in batches}
        for batch_id, row in existing.items():
            if batch_id not in keep:
                session.delete(row)
        for batch in batches:
            row = existing.get(batch.id)
            if row is None:
                row = FabricBatchModel(fabric_id=fabric_id, batch_id=batch.id)
                session.add(row)
            _fill_row(row, batch, now)
        session.flush()

    def create_fabric(
        self,
        name: str,
        code: str | None = None,
        unit: str = "piece",
        low_stock_threshold: float = 0.0,
        fabric_id: str | None = None,
    ) -> FabricState:
        now = _now()
        with db.session_scope() as session:
            fabric = FabricModel(
                name=name,
                code=code,
                unit=unit,
                low_stock_threshold=low_stock_threshold,
                version=0,
                created_at=now,
                updated_at=now,
            )
            if fabric_id:
                fabric.id = fabric_id
            session.add(fabric)
            try:
                session.flush()
            except IntegrityError as exc:
                raise ValueError(f"fabric code already exists: {code}") from exc
            state = self._load_state(session, fabric)
        logger.info("fabric created: fabric_id=%s name=%s", state.fabric_id, name)
        return state

    def list_fabrics(self) -> list[FabricState]:
        with db.session_scope() as session:
            fabrics = session.scalars(select(FabricModel).order_by(FabricModel.name.asc())).all()
            return [self._load_state(session, fabric) for fabric in fabrics]

    def read_fabric(self, fabric_id: str) -> FabricState | None:
        with db.session_scope() as session:
            fabric = session.get(FabricModel, fabric_id)
            if fabric is None:
                return None
            return self._load_state(session, fabric)

    def transactional_update(self, fabric_id: str, mutate_fn: MutateFn) -> TransactionResult:
        for attempt in range(1, self.max_attempts + 1):
            with db.session_scope() as session:
                fabric = session.get(FabricModel, fabric_id)
                current = self._load_state(session, fabric) if fabric is not None else None
                outcome = mutate_fn(current)
                if isinstance(outcome, Abort) or outcome is None or current is None:
                    return TransactionResult(committed=False, final_value=current, attempts=attempt)
                if not isinstance(outcome, Commit):
                    raise TypeError(f"mutate function must return Commit or ABORT, got {type(outcome).__name__}")

                swapped = session.execute(
                    update(FabricModel)
                    .where(FabricModel.id == fabric_id)
                    .where(FabricModel.version == current.version)
                    .values(version=current.version + 1, updated_at=_now())
                    .execution_options(synchronize_session=False)
                ).rowcount
                if swapped != 1:
                    session.rollback()
                    logger.warning(
                        "stock update conflict: fabric_id=%s version=%s attempt=%s",
                        fabric_id,
                        current.version,
                        attempt,
                    )
                    continue

                batches = resolve_commit(outcome, self.delete_exhausted)
                self._write_batches(session, fabric_id, batches)
                final = FabricState(
                    fabric_id=current.fabric_id,
                    name=current.name,
                    version=current.version + 1,
                    code=current.code,
                    unit=current.unit,
                    low_stock_threshold=current.low_stock_threshold,
                    batches=batches,
                )
            return TransactionResult(committed=True, final_value=final, attempts=attempt, payload=outcome.payload)

        raise TransactionConflict(fabric_id, self.max_attempts)

    def persist_batch_state(self, fabric_id: str, updated_batches: Iterable[Batch]) -> None:
        # Blind write: no version check. The bump still makes in-flight sales retry.
        now = _now()
        with db.session_scope() as session:
            for batch in updated_batches:
                row = session.scalar(
                    select(FabricBatchModel)
                    .where(FabricBatchModel.fabric_id == fabric_id)
                    .where(FabricBatchModel.batch_id == batch.id)
                )
                if row is None:
                    row = FabricBatchModel(fabric_id=fabric_id, batch_id=batch.id)
                    session.add(row)
                _fill_row(row, batch, now)
            session.execute(
                update(FabricModel)
                .where(FabricModel.id == fabric_id)
                .values(version=FabricModel.version + 1, updated_at=now)
            )
        logger.info("batch state persisted without version check: fabric_id=%s", fabric_id)
