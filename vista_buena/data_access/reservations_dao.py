"""Repository for resource reservations and their approval workflow."""

from __future__ import annotations

import logging
from datetime import date, time
from typing import Any, Optional, Union

from ..models.entities import Reservation, parse_date, parse_time
from .db import KeyValueStore
from .integrity import (
    INITIAL_STATUS,
    check_initial_status,
    check_overlap,
    check_references,
    check_transition,
    find_overlap,
)
from .repository import Repository, new_id
from .resources_dao import ResourceRepository
from .users_dao import UserRepository

LOGGER = logging.getLogger(__name__)


class ReservationRepository(Repository[Reservation]):
    """Reservations validated against users, resources and each other.

    Every create and update checks that the referenced user and resource
    exist, that no other pending or approved reservation holds an
    overlapping slot of the same resource on the same day, and that the
    status change follows ``pending -> approved | rejected`` and
    ``approved -> completed``.
    """

    entity_class = Reservation

    def __init__(
        self,
        store: KeyValueStore,
        namespace: str,
        users: UserRepository,
        resources: ResourceRepository,
    ) -> None:
        super().__init__(store, namespace)
        self.users = users
        self.resources = resources

    def lock_namespaces(self) -> tuple[str, ...]:
        return (self.namespace, self.users.namespace, self.resources.namespace)

    async def prepare_create(self, values: dict[str, Any]) -> dict[str, Any]:
        values.setdefault("status", INITIAL_STATUS)
        return values

    async def validate_create(self, record: Reservation, existing: list[Reservation]) -> None:
        for error in (check_initial_status(record), await self._check_links(record), check_overlap(record, existing)):
            if error is not None:
                self._reject(error)

    async def validate_update(self, before: Reservation, after: Reservation, existing: list[Reservation]) -> None:
        error = check_transition(before, after)
        if error is None and (before.user_id, before.resource_id) != (after.user_id, after.resource_id):
            error = await self._check_links(after)
        if error is None:
            error = check_overlap(after, existing)
        if error is not None:
            self._reject(error)

    async def _check_links(self, record: Reservation):
        users = await self.load_related(self.users)
        resources = await self.load_related(self.resources)
        return check_references(record, users, resources)

    def _reject(self, error) -> None:
        error.namespace = self.namespace
        LOGGER.info("Rejected reservation change: %s", error)
        raise error

    # Workflow ----------------------------------------------------------

    async def approve(self, reservation_id: str) -> Reservation:
        return await self.update(reservation_id, {"status": "approved"})

    async def reject(self, reservation_id: str) -> Reservation:
        return await self.update(reservation_id, {"status": "rejected"})

    async def complete(self, reservation_id: str) -> Reservation:
        return await self.update(reservation_id, {"status": "completed"})

    # Queries -----------------------------------------------------------

    async def list_for_user(self, user_id: str) -> list[Reservation]:
        return self._sorted(r for r in await self.get_all() if r.user_id == user_id)

    async def list_for_resource(self, resource_id: str) -> list[Reservation]:
        return self._sorted(r for r in await self.get_all() if r.resource_id == resource_id)

    async def list_pending(self) -> list[Reservation]:
        """Reservations waiting for an approve/reject decision."""

        return self._sorted(r for r in await self.get_all() if r.status == "pending")

    async def has_conflict(
        self,
        resource_id: str,
        on: Union[str, date],
        start_time: Union[str, time],
        end_time: Union[str, time],
        exclude_reservation_id: Optional[str] = None,
    ) -> bool:
        """Return True when the slot overlaps a pending or approved reservation."""

        candidate = Reservation(
            id=exclude_reservation_id or new_id(),
            resource_id=resource_id,
            user_id="-",
            date=parse_date(on),
            start_time=parse_time(start_time),
            end_time=parse_time(end_time),
            status=INITIAL_STATUS,
        )
        return find_overlap(candidate, await self.get_all()) is not None

    @staticmethod
    def _sorted(reservations) -> list[Reservation]:
        return sorted(reservations, key=lambda r: (r.date, r.start_time))
