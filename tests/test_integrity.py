"""Referential integrity between reservations, users and resources."""

from __future__ import annotations

import pytest

from vista_buena.data_access.errors import ReferentialIntegrityError

from conftest import run


def test_reservation_requires_existing_resource_and_user(seeded, pool, resident):
    base = {"date": "2024-06-15", "startTime": "10:00", "endTime": "11:00"}
    with pytest.raises(ReferentialIntegrityError):
        run(seeded.reservations.create({**base, "resourceId": "missing", "userId": resident.id}))
    with pytest.raises(ReferentialIntegrityError):
        run(seeded.reservations.create({**base, "resourceId": pool.id, "userId": "missing"}))


def test_update_cannot_point_at_missing_user(seeded, pending_reservation):
    with pytest.raises(ReferentialIntegrityError):
        run(seeded.reservations.update(pending_reservation.id, {"userId": "missing"}))
    assert run(seeded.reservations.get(pending_reservation.id)) == pending_reservation


def test_delete_referenced_user_blocked(seeded, pool):
    """Scenario: deleting u1 while reservation v1 references it fails."""

    u1 = run(seeded.users.create({"name": "U One", "email": "u1@vistabuena.com", "role": "resident", "apartment": "D-1"}))
    v1 = run(
        seeded.reservations.create(
            {"resourceId": pool.id, "userId": u1.id, "date": "2024-06-01", "startTime": "10:00", "endTime": "11:00"}
        )
    )

    with pytest.raises(ReferentialIntegrityError) as excinfo:
        run(seeded.users.delete(u1.id))
    assert excinfo.value.record_id == u1.id
    assert run(seeded.users.get(u1.id)) == u1

    run(seeded.reservations.delete(v1.id))
    run(seeded.users.delete(u1.id))
    assert run(seeded.users.get_by_email("u1@vistabuena.com")) is None


def test_delete_referenced_resource_blocked_even_when_completed(seeded):
    gym = next(r for r in run(seeded.resources.get_all()) if r.name == "Gym")
    assert [r.status for r in run(seeded.reservations.list_for_resource(gym.id))] == ["completed"]
    with pytest.raises(ReferentialIntegrityError):
        run(seeded.resources.delete(gym.id))


def test_delete_unreferenced_resource(seeded):
    court = next(r for r in run(seeded.resources.get_all()) if r.name == "Tennis Court")
    run(seeded.resources.delete(court.id))
    assert court.id not in {r.id for r in run(seeded.resources.get_all())}


def test_seed_is_idempotent(seeded):
    from vista_buena.data_access.seed import seed

    counts = run(seed(seeded))
    assert counts == {"users": 0, "resources": 0, "inventory": 0, "reservations": 0}
    assert len(run(seeded.users.get_all())) == 5
