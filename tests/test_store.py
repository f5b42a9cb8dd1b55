from __future__ import annotations

from datetime import datetime, timezone

import pytest

from stockbook.domain.inventory.batches import ColoredBatch, FlatBatch
from stockbook.domain.inventory.errors import BatchNotFound, FabricNotFound, InvalidQuantity


def test_purchase_assigns_ids_and_sequence(store):
    fabric = store.create_fabric(name="Denim", code="DN-1")

    first = store.purchase_stock(fabric.fabric_id, {"quantity": 4, "unit_cost": 2})
    second = store.purchase_stock(fabric.fabric_id, {"id": "LOT-9", "quantity": 1, "unit_cost": 3})
    duplicate = store.purchase_stock(fabric.fabric_id, {"id": "LOT-9", "quantity": 1, "unit_cost": 3})

    assert first.id == f"{fabric.fabric_id}-0"
    assert second.id == "LOT-9"
    assert duplicate.id == f"{fabric.fabric_id}-2"
    assert first.purchase_date is not None

    state = store.read_fabric(fabric.fabric_id)
    assert [batch.id for batch in state.batches] == [first.id, "LOT-9", duplicate.id]
    assert state.version == 3


def test_purchase_rejects_empty_batches_and_unknown_fabrics(store):
    fabric = store.create_fabric(name="Denim")

    with pytest.raises(InvalidQuantity):
        store.purchase_stock(fabric.fabric_id, {"quantity": 0, "unit_cost": 2})
    with pytest.raises(FabricNotFound):
        store.purchase_stock("missing", {"quantity": 1, "unit_cost": 2})


def test_colored_batch_round_trips_through_store(store):
    fabric = store.create_fabric(name="Chiffon")
    store.purchase_stock(
        fabric.fabric_id,
        {
            "unit_cost": 6,
            "purchase_date": "2024-01-01T00:00:00Z",
            "items": [{"colorName": "Red", "quantity": 3}, {"colorName": "Blue", "quantity": 4}],
        },
    )

    (batch,) = store.read_fabric_batches(fabric.fabric_id)

    assert isinstance(batch, ColoredBatch)
    assert [(item.color_name, item.quantity) for item in batch.items] == [("Red", 3), ("Blue", 4)]
    assert batch.purchase_date == datetime(2024, 1, 1, tzinfo=timezone.utc)


def test_duplicate_fabric_code_is_rejected(store):
    store.create_fabric(name="One", code="X1")

    with pytest.raises(ValueError):
        store.create_fabric(name="Two", code="X1")


def test_adjust_quantity_goes_through_versioned_update(store):
    fabric = store.create_fabric(name="Velvet")
    batch = store.purchase_stock(fabric.fabric_id, {"quantity": 4, "unit_cost": 2})
    version = store.read_fabric(fabric.fabric_id).version

    adjusted = store.adjust_batch_quantity(fabric.fabric_id, batch.id, quantity=7)

    assert isinstance(adjusted, FlatBatch)
    assert adjusted.quantity == 7
    assert store.read_fabric(fabric.fabric_id).version == version + 1

    with pytest.raises(BatchNotFound):
        store.adjust_batch_quantity(fabric.fabric_id, "nope", quantity=1)
    with pytest.raises(FabricNotFound):
        store.adjust_batch_quantity("missing", batch.id, quantity=1)
    with pytest.raises(InvalidQuantity):
        store.adjust_batch_quantity(fabric.fabric_id, batch.id, quantity=-1)


def test_colored_batches_are_adjusted_through_items(store):
    fabric = store.create_fabric(name="Satin")
    batch = store.purchase_stock(
        fabric.fabric_id, {"unit_cost": 1, "items": [{"colorName": "Red", "quantity": 2}]}
    )

    with pytest.raises(InvalidQuantity):
        store.adjust_batch_quantity(fabric.fabric_id, batch.id, quantity=3)

    adjusted = store.adjust_batch_quantity(
        fabric.fabric_id, batch.id, items=[{"color_name": "Red", "quantity": 5}, {"color_name": "Green", "quantity": 1}]
    )
    assert adjusted.quantity == 6
    assert adjusted.seq == batch.seq


def test_metadata_update_is_a_blind_write_that_bumps_version(store):
    fabric = store.create_fabric(name="Tweed")
    batch = store.purchase_stock(fabric.fabric_id, {"quantity": 4, "unit_cost": 2})
    version = store.read_fabric(fabric.fabric_id).version

    updated = store.update_batch_metadata(
        fabric.fabric_id, batch.id, unit_cost=2.5, container_no="CN-1", purchase_date="2023-06-01"
    )

    assert updated.unit_cost == 2.5
    assert updated.quantity == 4
    (stored,) = store.read_fabric_batches(fabric.fabric_id)
    assert stored.container_no == "CN-1"
    assert stored.purchase_date == datetime(2023, 6, 1, tzinfo=timezone.utc)
    assert store.read_fabric(fabric.fabric_id).version == version + 1

    with pytest.raises(ValueError):
        store.update_batch_metadata(fabric.fabric_id, batch.id, quantity=10)
    with pytest.raises(BatchNotFound):
        store.update_batch_metadata(fabric.fabric_id, "nope", unit_cost=1)


def test_list_fabrics_sorted_by_name(store):
    store.create_fabric(name="Zebra print")
    store.create_fabric(name="Aida")

    assert [fabric.name for fabric in store.list_fabrics()] == ["Aida", "Zebra print"]


def test_store_backend_follows_settings(monkeypatch):
    from stockbook.core.config import get_settings
    from stockbook.persistence.factory import get_store

    settings = get_settings()
    assert get_store().backend == "sql"

    monkeypatch.setattr(settings, "store_backend", "memory")
    first = get_store()
    assert first.backend == "memory"
    assert get_store() is first
