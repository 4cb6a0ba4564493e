"""Wire the four entity repositories to one explicitly opened store."""

from __future__ import annotations

from dataclasses import dataclass

from .db import KeyValueStore
from .inventory_dao import InventoryRepository
from .repository import Repository
from .reservations_dao import ReservationRepository
from .resources_dao import ResourceRepository
from .users_dao import UserRepository

NAMESPACE_SUFFIXES = {
    "users": "users",
    "resources": "resources",
    "inventory": "inventory",
    "reservations": "reservations",
}


def namespace_for(prefix: str, kind: str) -> str:
    return f"{prefix}_{NAMESPACE_SUFFIXES[kind]}" if prefix else NAMESPACE_SUFFIXES[kind]


@dataclass
class Repositories:
    """The repositories sharing one store handle."""

    store: KeyValueStore
    users: UserRepository
    resources: ResourceRepository
    inventory: InventoryRepository
    reservations: ReservationRepository

    @classmethod
    def build(cls, store: KeyValueStore, prefix: str = "vista_buena") -> "Repositories":
        users = UserRepository(store, namespace_for(prefix, "users"))
        resources = ResourceRepository(store, namespace_for(prefix, "resources"))
        inventory = InventoryRepository(store, namespace_for(prefix, "inventory"))
        reservations = ReservationRepository(store, namespace_for(prefix, "reservations"), users, resources)
        users.reservations = reservations
        resources.reservations = reservations
        return cls(store, users, resources, inventory, reservations)

    def by_kind(self, kind: str) -> Repository:
        if kind not in NAMESPACE_SUFFIXES:
            raise KeyError(f"Unknown entity kind '{kind}'")
        return getattr(self, kind)

    def all(self) -> dict[str, Repository]:
        return {kind: getattr(self, kind) for kind in NAMESPACE_SUFFIXES}
