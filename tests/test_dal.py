"""Data access layer tests."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import pytest

from vista_buena.data_access.errors import NotFoundError, StorageCorruptionError, ValidationError

from conftest import run

POOL = {
    "name": "Pool",
    "type": "pool",
    "capacity": 20,
    "description": "Heated pool",
    "available": True,
    "image": "https://example.com/pool.jpg",
}


def test_resource_crud_flow(repos):
    """Resources can be created, read back, updated and deleted."""

    created = run(repos.resources.create(POOL))
    assert created.id
    stored = run(repos.resources.get_all())
    assert len(stored) == 1
    assert stored[0] == created
    assert {key: value for key, value in stored[0].to_record().items() if key != "id"} == POOL

    run(repos.resources.update(created.id, {"name": "Rooftop Pool"}))
    assert run(repos.resources.get(created.id)).name == "Rooftop Pool"

    run(repos.resources.delete(created.id))
    assert run(repos.resources.get_all()) == []


def test_get_all_on_empty_namespace(repos):
    assert run(repos.users.get_all()) == []
    assert run(repos.reservations.get_all()) == []


def test_generated_ids_are_unique(repos):
    async def _create_many():
        return [
            await repos.inventory.create({"name": f"Item {n}", "category": "Misc", "quantity": n, "unit": "units"})
            for n in range(25)
        ]

    items = run(_create_many())
    assert len({item.id for item in items}) == 25
    assert [item.name for item in run(repos.inventory.get_all())] == [f"Item {n}" for n in range(25)]


def test_partial_update_only_touches_named_fields(repos):
    """Scenario: marking the pool unavailable keeps every other field."""

    created = run(repos.resources.create(POOL))
    run(repos.resources.update(created.id, {"available": False}))

    (after,) = run(repos.resources.get_all())
    assert after.available is False
    assert after.to_record() == {**created.to_record(), "available": False}


def test_update_accepts_wire_and_attribute_names(repos, resident, pool):
    reservation = run(
        repos.reservations.create(
            {"resourceId": pool.id, "userId": resident.id, "date": "2024-07-01", "startTime": "09:00", "endTime": "10:00"}
        )
    )
    run(repos.reservations.update(reservation.id, {"endTime": "10:30"}))
    run(repos.reservations.update(reservation.id, {"start_time": "09:30"}))
    record = run(repos.reservations.get(reservation.id)).to_record()
    assert record["startTime"] == "09:30"
    assert record["endTime"] == "10:30"


def test_update_missing_id_raises_not_found(repos):
    run(repos.resources.create(POOL))
    with pytest.raises(NotFoundError):
        run(repos.resources.update("does-not-exist", {"available": False}))


def test_delete_missing_id_raises_and_keeps_collection(repos):
    created = run(repos.resources.create(POOL))
    with pytest.raises(NotFoundError):
        run(repos.resources.delete("does-not-exist"))
    assert run(repos.resources.get_all()) == [created]


def test_caller_cannot_choose_or_change_ids(repos):
    with pytest.raises(ValidationError):
        run(repos.resources.create({**POOL, "id": "r1"}))
    created = run(repos.resources.create(POOL))
    with pytest.raises(ValidationError):
        run(repos.resources.update(created.id, {"id": "r1"}))
    assert run(repos.resources.get(created.id)) == created


@pytest.mark.parametrize(
    "fields",
    [
        {**POOL, "capacity": -1},
        {**POOL, "capacity": True},
        {**POOL, "type": "spa"},
        {**POOL, "available": "yes"},
        {key: value for key, value in POOL.items() if key != "name"},
        {**POOL, "colour": "blue"},
    ],
)
def test_invalid_resource_rejected(repos, fields):
    with pytest.raises(ValidationError):
        run(repos.resources.create(fields))
    assert run(repos.resources.get_all()) == []


def test_invalid_user_role_rejected(repos):
    with pytest.raises(ValidationError):
        run(repos.users.create({"name": "Eve", "email": "eve@vistabuena.com", "role": "owner", "apartment": "X"}))


def test_duplicate_email_rejected(seeded):
    with pytest.raises(ValidationError):
        run(
            seeded.users.create(
                {"name": "Copy", "email": "LUCIA@vistabuena.com", "role": "resident", "apartment": "Z-1"}
            )
        )


def test_inventory_last_updated_stamped_on_every_mutation(repos):
    before = datetime.now(timezone.utc)
    item = run(repos.inventory.create({"name": "Mops", "category": "Cleaning", "quantity": 3, "unit": "units"}))
    assert item.last_updated >= before

    updated = run(repos.inventory.update(item.id, {"quantity": 5}))
    assert updated.last_updated >= item.last_updated
    assert updated.quantity == 5
    assert run(repos.inventory.get(item.id)).to_record()["lastUpdated"].endswith("Z")


def test_inventory_adjust_quantity(repos):
    item = run(repos.inventory.create({"name": "Bulbs", "category": "Electrical", "quantity": 4, "unit": "units"}))
    assert run(repos.inventory.adjust_quantity(item.id, -3)).quantity == 1
    with pytest.raises(ValidationError):
        run(repos.inventory.adjust_quantity(item.id, -2))
    assert run(repos.inventory.get(item.id)).quantity == 1
    assert [i.name for i in run(repos.inventory.list_low_stock(1))] == ["Bulbs"]


@pytest.mark.parametrize(
    "payload",
    [
        b"{not json",
        b'{"id": "x"}',
        json.dumps([{"id": "x", "name": "Pool"}]).encode("utf-8"),
        b"\xff\xfe",
    ],
)
def test_corrupted_namespace_raises(repos, payload):
    run(repos.store.write(repos.resources.namespace, payload))
    with pytest.raises(StorageCorruptionError) as excinfo:
        run(repos.resources.get_all())
    assert excinfo.value.namespace == repos.resources.namespace
    with pytest.raises(StorageCorruptionError):
        run(repos.resources.create(POOL))
    assert run(repos.store.read(repos.resources.namespace)) == payload


def test_stored_layout_is_json_array_with_wire_names(seeded):
    raw = run(seeded.store.read(seeded.reservations.namespace))
    records = json.loads(raw)
    assert isinstance(records, list)
    assert set(records[0]) == {"id", "resourceId", "userId", "date", "startTime", "endTime", "status"}
    assert seeded.reservations.namespace == "vista_buena_reservations"


def test_listing_helpers(seeded, resident):
    assert [user.name for user in run(seeded.users.list_by_role("maintenance"))] == ["Mario Mantenimiento"]
    assert "Tennis Court" not in {resource.name for resource in run(seeded.resources.list_available())}
    assert {item.name for item in run(seeded.inventory.list_by_category("Cleaning"))} == {
        "Pool chlorine",
        "Floor detergent",
    }
    assert [r.status for r in run(seeded.reservations.list_for_user(resident.id))] == ["pending"]


def test_set_availability(seeded):
    court = next(r for r in run(seeded.resources.get_all()) if r.name == "Tennis Court")
    reopened = run(seeded.resources.set_availability(court.id, True))
    assert reopened.available is True
    assert run(seeded.resources.get(court.id)).description == court.description


def test_duplicate_ids_are_reported_as_corruption(repos):
    record = {"id": "r1", **POOL}
    payload = json.dumps([record, {**record, "name": "Second Pool"}]).encode("utf-8")
    run(repos.store.write(repos.resources.namespace, payload))
    with pytest.raises(StorageCorruptionError) as excinfo:
        run(repos.resources.get_all())
    assert excinfo.value.record_id == "r1"
    assert run(repos.store.read(repos.resources.namespace)) == payload
