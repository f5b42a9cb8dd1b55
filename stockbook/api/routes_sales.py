from __future__ import annotations

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from stockbook.domain.inventory.errors import FabricNotFound, NoBatchesAvailable
from stockbook.domain.inventory.fifo import calculate_fifo_sale
from stockbook.domain.inventory.reducer import InventoryReducer, SaleRequest
from stockbook.domain.inventory.store import BaseFabricStore
from stockbook.domain.sales.memo import MemoLine, MemoService
from stockbook.persistence.factory import get_store

router = APIRouter(tags=["sales"])


class SaleBatchRequest(BaseModel):
    products: list[SaleRequest] = Field(default_factory=list)


class MemoRequest(BaseModel):
    lines: list[MemoLine] = Field(default_factory=list)


@router.post("/sales/quote")
def quote_sale(request: SaleRequest, store: BaseFabricStore = Depends(get_store)):
    # Estimate only: computed on a snapshot, the reduction re-runs it under compare-and-swap.
    batches = store.read_fabric_batches(request.fabric_id) if request.fabric_id else None
    if batches is None:
        raise FabricNotFound(request.fabric_id, request.name)
    if not batches:
        raise NoBatchesAvailable(request.fabric_id, request.name)
    result = calculate_fifo_sale(batches, request.quantity, request.color)
    return {"fabric_id": request.fabric_id, "quantity": request.quantity, **result.to_dict()}


@router.post("/sales/check")
def check_stock(request: SaleBatchRequest, store: BaseFabricStore = Depends(get_store)):
    return InventoryReducer(store).check_stock_availability(request.products).to_dict()


@router.post("/sales/reduce")
def reduce_stock(request: SaleBatchRequest, store: BaseFabricStore = Depends(get_store)):
    results = InventoryReducer(store).reduce_inventory_atomic(request.products)
    return {"count": len(results), "results": [item.to_dict() for item in results]}


@router.post("/memos/quote")
def quote_memo(request: MemoRequest, store: BaseFabricStore = Depends(get_store)):
    return MemoService(store).quote(request.lines).to_dict()


@router.post("/memos/commit")
def commit_memo(request: MemoRequest, store: BaseFabricStore = Depends(get_store)):
    return MemoService(store).commit(request.lines).to_dict()
