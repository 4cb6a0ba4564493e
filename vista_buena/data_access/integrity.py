"""Rules that span collections: foreign keys, slot exclusivity, status workflow.

Each check returns ``None`` when the rule holds or the error describing the
violation, leaving it to the repository to raise before anything is persisted.
"""

from __future__ import annotations

from typing import Iterable, Optional

from ..models.entities import Reservation, Resource, User
from .errors import InvalidTransitionError, OverlapError, ReferentialIntegrityError

INITIAL_STATUS = "pending"

TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"approved", "rejected"}),
    "approved": frozenset({"completed"}),
    "rejected": frozenset(),
    "completed": frozenset(),
}


def check_references(
    reservation: Reservation,
    users: Iterable[User],
    resources: Iterable[Resource],
) -> Optional[ReferentialIntegrityError]:
    if not any(resource.id == reservation.resource_id for resource in resources):
        return ReferentialIntegrityError(
            f"Resource '{reservation.resource_id}' does not exist.", record_id=reservation.id
        )
    if not any(user.id == reservation.user_id for user in users):
        return ReferentialIntegrityError(f"User '{reservation.user_id}' does not exist.", record_id=reservation.id)
    return None


def find_overlap(candidate: Reservation, reservations: Iterable[Reservation]) -> Optional[Reservation]:
    """First active reservation sharing part of ``candidate``'s slot.

    Inactive candidates never conflict. Touching slots (one ends when the
    other starts) do not overlap.
    """

    if not candidate.is_active:
        return None
    for other in reservations:
        if other.id != candidate.id and other.is_active and candidate.overlaps(other):
            return other
    return None


def check_overlap(candidate: Reservation, reservations: Iterable[Reservation]) -> Optional[OverlapError]:
    clash = find_overlap(candidate, reservations)
    if clash is None:
        return None
    return OverlapError(
        f"Resource '{candidate.resource_id}' is already reserved on {candidate.date.isoformat()} "
        f"from {clash.start_time:%H:%M} to {clash.end_time:%H:%M}.",
        record_id=candidate.id,
        conflicting_id=clash.id,
    )


def check_initial_status(reservation: Reservation) -> Optional[InvalidTransitionError]:
    if reservation.status != INITIAL_STATUS:
        return InvalidTransitionError("new", reservation.status, record_id=reservation.id)
    return None


def check_transition(before: Reservation, after: Reservation) -> Optional[InvalidTransitionError]:
    if before.status == after.status or after.status in TRANSITIONS[before.status]:
        return None
    return InvalidTransitionError(before.status, after.status, record_id=before.id)


def referencing(
    reservations: Iterable[Reservation],
    user_id: Optional[str] = None,
    resource_id: Optional[str] = None,
) -> list[Reservation]:
    """Reservations (any status) pointing at the given user and/or resource."""

    return [
        reservation
        for reservation in reservations
        if (user_id is not None and reservation.user_id == user_id)
        or (resource_id is not None and reservation.resource_id == resource_id)
    ]


def check_unreferenced(
    kind: str,
    record_id: str,
    reservations: Iterable[Reservation],
) -> Optional[ReferentialIntegrityError]:
    if kind == "user":
        holders = referencing(reservations, user_id=record_id)
    else:
        holders = referencing(reservations, resource_id=record_id)
    if not holders:
        return None
    return ReferentialIntegrityError(
        f"Cannot delete {kind} '{record_id}': {len(holders)} reservation(s) still reference it.",
        record_id=record_id,
    )
