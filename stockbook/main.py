from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from stockbook.api.routes_fabrics import router as fabrics_router
from stockbook.api.routes_sales import router as sales_router
from stockbook.core.config import get_settings
from stockbook.core.logging import configure_logging
from stockbook.domain.inventory.errors import InventoryError
from stockbook.persistence.db import init_db

configure_logging()
logger = logging.getLogger(__name__)
settings = get_settings()

app = FastAPI(title=settings.app_name)


@app.on_event("startup")
def on_startup() -> None:
    if settings.store_backend == "sql":
        init_db()
    logger.info("stockbook ready: env=%s store_backend=%s", settings.env, settings.store_backend)


@app.exception_handler(InventoryError)
async def inventory_error_handler(_: Request, exc: InventoryError):
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.get("/healthz")
def healthz() -> dict:
    return {"status": "ok", "store_backend": settings.store_backend}


app.include_router(fabrics_router)
app.include_router(sales_router)
