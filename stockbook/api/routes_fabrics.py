from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from stockbook.domain.inventory.batches import batch_to_dict
from stockbook.domain.inventory.reducer import InventoryReducer, SaleRequest
from stockbook.domain.inventory.store import BaseFabricStore, FabricState
from stockbook.domain.inventory.valuation import stock_summary
from stockbook.persistence.factory import get_store

router = APIRouter(tags=["fabrics"])


class CreateFabricRequest(BaseModel):
    name: str = Field(min_length=1)
    code: str | None = None
    unit: str = "piece"
    low_stock_threshold: float = Field(default=0.0, ge=0)


class ColorItemRequest(BaseModel):
    color_name: str
    quantity: float = Field(ge=0)


class PurchaseStockRequest(BaseModel):
    unit_cost: float = Field(ge=0, description="cost per unit for every unit in the batch")
    purchase_date: datetime | date | None = None
    quantity: float | None = Field(default=None, gt=0)
    items: list[ColorItemRequest] | None = None
    batch_id: str | None = None
    batch_number: str | None = None
    container_no: str | None = None
    supplier_id: str | None = None


class BatchMetadataRequest(BaseModel):
    unit_cost: float | None = Field(default=None, ge=0)
    purchase_date: datetime | date | None = None
    batch_number: str | None = None
    container_no: str | None = None
    supplier_id: str | None = None


class BatchQuantityRequest(BaseModel):
    quantity: float | None = Field(default=None, ge=0)
    items: list[ColorItemRequest] | None = None


class SellFabricRequest(BaseModel):
    quantity: float
    color: str | None = None


def fabric_payload(state: FabricState, include_batches: bool = True) -> dict:
    payload = {
        "fabric_id": state.fabric_id,
        "name": state.name,
        "code": state.code,
        "unit": state.unit,
        "low_stock_threshold": state.low_stock_threshold,
        "version": state.version,
        "summary": stock_summary(state.batches, state.low_stock_threshold),
    }
    if include_batches:
        payload["batches"] = [batch_to_dict(batch) for batch in state.batches]
    return payload


@router.post("/fabrics", status_code=201)
def create_fabric(request: CreateFabricRequest, store: BaseFabricStore = Depends(get_store)):
    try:
        state = store.create_fabric(
            name=request.name,
            code=request.code,
            unit=request.unit,
            low_stock_threshold=request.low_stock_threshold,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return fabric_payload(state)


@router.get("/fabrics")
def list_fabrics(store: BaseFabricStore = Depends(get_store)):
    fabrics = store.list_fabrics()
    return {
        "count": len(fabrics),
        "fabrics": [fabric_payload(state, include_batches=False) for state in fabrics],
    }


@router.get("/fabrics/{fabric_id}")
def get_fabric(fabric_id: str, store: BaseFabricStore = Depends(get_store)):
    return fabric_payload(store.get_fabric(fabric_id))


@router.post("/fabrics/{fabric_id}/batches", status_code=201)
def purchase_stock(fabric_id: str, request: PurchaseStockRequest, store: BaseFabricStore = Depends(get_store)):
    if (request.quantity is None) == (request.items is None):
        raise HTTPException(status_code=400, detail="provide exactly one of quantity or items")
    raw = {
        "id": request.batch_id,
        "unit_cost": request.unit_cost,
        "purchase_date": request.purchase_date,
        "batch_number": request.batch_number,
        "container_no": request.container_no,
        "supplier_id": request.supplier_id,
    }
    if request.items is not None:
        raw["items"] = [item.model_dump() for item in request.items]
    else:
        raw["quantity"] = request.quantity
    batch = store.purchase_stock(fabric_id, raw)
    return batch_to_dict(batch)


@router.patch("/fabrics/{fabric_id}/batches/{batch_id}")
def update_batch_metadata(
    fabric_id: str,
    batch_id: str,
    request: BatchMetadataRequest,
    store: BaseFabricStore = Depends(get_store),
):
    batch = store.update_batch_metadata(fabric_id, batch_id, **request.model_dump(exclude_none=True))
    return batch_to_dict(batch)


@router.put("/fabrics/{fabric_id}/batches/{batch_id}/quantity")
def adjust_batch_quantity(
    fabric_id: str,
    batch_id: str,
    request: BatchQuantityRequest,
    store: BaseFabricStore = Depends(get_store),
):
    items = [item.model_dump() for item in request.items] if request.items is not None else None
    batch = store.adjust_batch_quantity(fabric_id, batch_id, quantity=request.quantity, items=items)
    return batch_to_dict(batch)


@router.post("/fabrics/{fabric_id}/sell")
def sell_fabric(fabric_id: str, request: SellFabricRequest, store: BaseFabricStore = Depends(get_store)):
    sale = SaleRequest(fabric_id=fabric_id, quantity=request.quantity, color=request.color)
    (result,) = InventoryReducer(store).reduce_inventory_atomic([sale])
    return result.to_dict()
