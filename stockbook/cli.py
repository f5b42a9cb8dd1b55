from __future__ import annotations

import argparse
import json
import sys

from stockbook.api.routes_fabrics import fabric_payload
from stockbook.core.config import get_settings
from stockbook.core.logging import configure_logging
from stockbook.domain.inventory.batches import batch_to_dict
from stockbook.domain.inventory.errors import InventoryError
from stockbook.domain.inventory.reducer import InventoryReducer, SaleRequest
from stockbook.persistence.db import init_db
from stockbook.persistence.factory import get_store


def _print(payload) -> None:
    print(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


def _color_item(value: str) -> dict:
    name, sep, quantity = value.rpartition("=")
    if not sep or not name:
        raise argparse.ArgumentTypeError(f"expected COLOR=QUANTITY, got {value!r}")
    try:
        return {"color_name": name, "quantity": float(quantity)}
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"quantity must be a number in {value!r}") from exc


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Stockbook FIFO inventory CLI")
    top = parser.add_subparsers(dest="command", required=True)

    top.add_parser("init-db", help="Create database tables")

    serve = top.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)

    add = top.add_parser("add-fabric", help="Register a fabric")
    add.add_argument("name")
    add.add_argument("--code", default=None)
    add.add_argument("--unit", default="piece")
    add.add_argument("--low-stock-threshold", type=float, default=0.0)

    purchase = top.add_parser("purchase", help="Record a purchased batch")
    purchase.add_argument("fabric_id")
    purchase.add_argument("--unit-cost", type=float, required=True)
    purchase.add_argument("--date", dest="purchase_date", default=None, help="ISO-8601 purchase date")
    group = purchase.add_mutually_exclusive_group(required=True)
    group.add_argument("--quantity", type=float)
    group.add_argument("--color", dest="items", action="append", type=_color_item, metavar="COLOR=QUANTITY")
    purchase.add_argument("--batch-number", default=None)
    purchase.add_argument("--container-no", default=None)
    purchase.add_argument("--supplier-id", default=None)

    stock = top.add_parser("stock", help="Show batches and stock summary")
    stock.add_argument("fabric_id", nargs="?", default=None)

    for name, help_text in (("sell", "Reduce stock using FIFO"), ("check", "Check stock without reducing")):
        sub = top.add_parser(name, help=help_text)
        sub.add_argument("fabric_id")
        sub.add_argument("quantity", type=float)
        sub.add_argument("--color", default=None)

    return parser


def _serve(args: argparse.Namespace) -> int:
    import uvicorn

    settings = get_settings()
    uvicorn.run("stockbook.main:app", host=args.host or settings.api_host, port=args.port or settings.api_port)
    return 0


def _run(args: argparse.Namespace) -> object:
    store = get_store()
    if args.command == "init-db":
        init_db()
        return {"status": "ok", "database_url": get_settings().database_url}

    if args.command == "add-fabric":
        state = store.create_fabric(
            name=args.name,
            code=args.code,
            unit=args.unit,
            low_stock_threshold=args.low_stock_threshold,
        )
        return fabric_payload(state)

    if args.command == "purchase":
        raw = {
            "unit_cost": args.unit_cost,
            "purchase_date": args.purchase_date,
            "batch_number": args.batch_number,
            "container_no": args.container_no,
            "supplier_id": args.supplier_id,
        }
        if args.items:
            raw["items"] = args.items
        else:
            raw["quantity"] = args.quantity
        return batch_to_dict(store.purchase_stock(args.fabric_id, raw))

    if args.command == "stock":
        if args.fabric_id:
            return fabric_payload(store.get_fabric(args.fabric_id))
        return [fabric_payload(state, include_batches=False) for state in store.list_fabrics()]

    reducer = InventoryReducer(store)
    request = SaleRequest(fabric_id=args.fabric_id, quantity=args.quantity, color=args.color)
    if args.command == "check":
        return reducer.check_stock_availability([request]).to_dict()
    (result,) = reducer.reduce_inventory_atomic([request])
    return result.to_dict()


def main(argv: list[str] | None = None) -> int:
    configure_logging()
    parser = _build_parser()
    args = parser.parse_args(argv)
    if args.command == "serve":
        return _serve(args)

    try:
        payload = _run(args)
    except InventoryError as exc:
        _print(exc.to_dict())
        return 1
    except ValueError as exc:
        print(json.dumps({"detail": str(exc), "error": "invalid_request"}), file=sys.stderr)
        return 2
    _print(payload)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
