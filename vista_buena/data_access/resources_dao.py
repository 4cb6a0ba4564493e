"""Repository for bookable common areas."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from ..models.entities import Resource
from .db import KeyValueStore
from .integrity import check_unreferenced
from .repository import Repository

if TYPE_CHECKING:
    from .reservations_dao import ReservationRepository


class ResourceRepository(Repository[Resource]):
    entity_class = Resource

    def __init__(
        self,
        store: KeyValueStore,
        namespace: str,
        reservations: Optional["ReservationRepository"] = None,
    ) -> None:
        super().__init__(store, namespace)
        self.reservations = reservations

    def lock_namespaces(self) -> tuple[str, ...]:
        if self.reservations is None:
            return (self.namespace,)
        return (self.namespace, self.reservations.namespace)

    async def before_delete(self, record: Resource) -> None:
        if self.reservations is None:
            return
        reservations = await self.load_related(self.reservations)
        error = check_unreferenced("resource", record.id, reservations)
        if error is not None:
            error.namespace = self.namespace
            raise error

    async def list_available(self) -> list[Resource]:
        """Resources currently open for booking."""

        return [resource for resource in await self.get_all() if resource.available]

    async def set_availability(self, resource_id: str, available: bool) -> Resource:
        return await self.update(resource_id, {"available": available})
