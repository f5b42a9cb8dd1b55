from __future__ import annotations

import uuid
from datetime import datetime
from typing import Optional

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import JSON


def _json_type():
    return JSON().with_variant(JSONB(astext_type=Text()), "postgresql")


class Base(DeclarativeBase):
    pass


class FabricModel(Base):
    __tablename__ = "fabrics"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    code: Mapped[Optional[str]] = mapped_column(String(64), unique=True, nullable=True)
    unit: Mapped[str] = mapped_column(String(32), default="piece", nullable=False)
    low_stock_threshold: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    # Bumped on every batch write; the compare-and-swap token for stock updates.
    version: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class FabricBatchModel(Base):
    __tablename__ = "fabric_batches"
    __table_args__ = (
        UniqueConstraint("fabric_id", "batch_id", name="uq_fabric_batches_fabric_batch"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    fabric_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("fabrics.id", ondelete="CASCADE"),
        nullable=False,
    )
    batch_id: Mapped[str] = mapped_column(String(128), nullable=False)
    seq: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    # NULL for colour-tracked batches: their quantity is always the sum of items.
    quantity: Mapped[Optional[float]] = mapped_column(Float, nullable=True)
    items: Mapped[Optional[list]] = mapped_column(_json_type(), nullable=True)
    unit_cost: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    purchase_date: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    batch_number: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    container_no: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    supplier_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


Index("ix_fabric_batches_fabric_id", FabricBatchModel.fabric_id)
Index("ix_fabrics_name", FabricModel.name)
