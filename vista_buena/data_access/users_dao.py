"""Repository for residents, maintenance staff and administrators."""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

from ..models.entities import User
from .db import KeyValueStore
from .errors import ValidationError
from .integrity import check_unreferenced
from .repository import Repository

if TYPE_CHECKING:
    from .reservations_dao import ReservationRepository


class UserRepository(Repository[User]):
    """Users, with deletes blocked while any reservation references them."""

    entity_class = User

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

    async def validate_create(self, record: User, existing: list[User]) -> None:
        self._ensure_unique_email(record, existing)

    async def validate_update(self, before: User, after: User, existing: list[User]) -> None:
        if after.email != before.email:
            self._ensure_unique_email(after, existing)

    def _ensure_unique_email(self, record: User, existing: list[User]) -> None:
        email = record.email.casefold()
        for other in existing:
            if other.id != record.id and other.email.casefold() == email:
                raise ValidationError(f"Email '{record.email}' is already registered.", self.namespace, record.id)

    async def before_delete(self, record: User) -> None:
        if self.reservations is None:
            return
        reservations = await self.load_related(self.reservations)
        error = check_unreferenced("user", record.id, reservations)
        if error is not None:
            error.namespace = self.namespace
            raise error

    async def get_by_email(self, email: str) -> User | None:
        """Fetch a user by email address (case-insensitive)."""

        wanted = email.casefold()
        for user in await self.get_all():
            if user.email.casefold() == wanted:
                return user
        return None

    async def list_by_role(self, role: str) -> list[User]:
        return [user for user in await self.get_all() if user.role == role]
