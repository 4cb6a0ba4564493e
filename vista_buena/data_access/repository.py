"""Generic collection-at-a-time repository shared by every entity kind."""

from __future__ import annotations

import json
import logging
import uuid
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Callable, Generic, Iterable, Mapping, Type, TypeVar

from ..models.entities import Entity
from .db import KeyValueStore
from .errors import NotFoundError, StorageCorruptionError, ValidationError

LOGGER = logging.getLogger(__name__)

E = TypeVar("E", bound=Entity)


def new_id() -> str:
    """Random 128-bit identifier rendered as a UUID string."""

    return str(uuid.uuid4())


class Repository(Generic[E]):
    """CRUD over a single namespace holding a JSON array of records.

    Every operation loads the whole collection, changes it in memory and
    writes the whole collection back. Mutations run while holding the
    store's writer lock for the namespaces returned by ``lock_namespaces``
    and write with the version they read (plus the versions of any other
    collection loaded through ``load_related``), so an interleaved writer from
    another process surfaces as ``ConflictError`` instead of a lost update.
    """

    entity_class: Type[E]

    def __init__(self, store: KeyValueStore, namespace: str, entity_class: Type[E] | None = None) -> None:
        self.store = store
        self.namespace = namespace
        self._guards: dict[str, int] = {}
        if entity_class is not None:
            self.entity_class = entity_class

    def __repr__(self) -> str:
        return f"{type(self).__name__}(namespace={self.namespace!r})"

    # Serialization -----------------------------------------------------

    def decode(self, payload: bytes | None) -> list[E]:
        if payload is None:
            return []
        try:
            data = json.loads(payload.decode("utf-8"))
        except (UnicodeDecodeError, ValueError) as exc:
            LOGGER.warning("Namespace %s holds undecodable data: %s", self.namespace, exc)
            raise StorageCorruptionError(
                f"Stored data for '{self.namespace}' is not valid JSON.", namespace=self.namespace
            ) from exc
        if not isinstance(data, list):
            LOGGER.warning("Namespace %s holds %s instead of an array", self.namespace, type(data).__name__)
            raise StorageCorruptionError(
                f"Stored data for '{self.namespace}' is not an array of records.", namespace=self.namespace
            )
        records: list[E] = []
        seen: set[str] = set()
        for index, record in enumerate(data):
            try:
                entity = self.entity_class.from_record(record)
            except (ValidationError, TypeError) as exc:
                LOGGER.warning("Namespace %s has an invalid record at index %d: %s", self.namespace, index, exc)
                raise StorageCorruptionError(
                    f"Stored record #{index} in '{self.namespace}' is invalid: {exc}", namespace=self.namespace
                ) from exc
            if entity.id in seen:
                LOGGER.warning("Namespace %s repeats id %s at index %d", self.namespace, entity.id, index)
                raise StorageCorruptionError(
                    f"Stored record #{index} in '{self.namespace}' repeats id '{entity.id}'.",
                    namespace=self.namespace,
                    record_id=entity.id,
                )
            seen.add(entity.id)
            records.append(entity)
        return records

    def encode(self, records: Iterable[E]) -> bytes:
        return json.dumps([record.to_record() for record in records]).encode("utf-8")

    # Low-level load/persist (callers hold the lock) ---------------------

    async def load(self) -> tuple[list[E], int]:
        payload, version = await self.store.read_versioned(self.namespace)
        return self.decode(payload), version

    async def load_related(self, other: "Repository[Any]") -> list[Any]:
        """Load another repository's records and guard the pending write on them.

        The version read here is checked again when ``persist`` writes, so a
        change to ``other`` made through a different store handle in between
        turns the write into ``ConflictError``.
        """

        records, version = await other.load()
        self._guards[other.namespace] = version
        return records

    async def persist(self, records: list[E], version: int) -> int:
        return await self.store.write(
            self.namespace, self.encode(records), expected_version=version, guards=self._guards
        )

    @asynccontextmanager
    async def _mutation(self) -> AsyncIterator[None]:
        async with self.store.locked(*self.lock_namespaces()):
            self._guards = {}
            try:
                yield
            finally:
                self._guards = {}

    def lock_namespaces(self) -> tuple[str, ...]:
        """Namespaces whose writer lock a mutation of this repository needs."""

        return (self.namespace,)

    # Hooks -------------------------------------------------------------

    async def prepare_create(self, values: dict[str, Any]) -> dict[str, Any]:
        return values

    async def prepare_update(self, current: E, changes: dict[str, Any]) -> dict[str, Any]:
        return changes

    async def validate_create(self, record: E, existing: list[E]) -> None:
        """Cross-record checks for a new record; raise to abort."""

    async def validate_update(self, before: E, after: E, existing: list[E]) -> None:
        """Cross-record checks for a changed record; raise to abort."""

    async def before_delete(self, record: E) -> None:
        """Raise to block deleting ``record``."""

    # Public contract ---------------------------------------------------

    async def get_all(self) -> list[E]:
        """Every record in insertion order; empty when nothing is stored yet."""

        records, _ = await self.load()
        return records

    async def get(self, record_id: str) -> E:
        for record in await self.get_all():
            if record.id == record_id:
                return record
        raise NotFoundError(f"No record '{record_id}' in '{self.namespace}'.", self.namespace, record_id)

    async def create(self, fields: Mapping[str, Any]) -> E:
        """Assign a fresh id to ``fields``, append the record and persist."""

        values = self.entity_class.normalize(fields)
        if "id" in values:
            raise ValidationError("Identifiers are assigned by the repository.", self.namespace)
        async with self._mutation():
            records, version = await self.load()
            values = await self.prepare_create(dict(values))
            values["id"] = new_id()
            record = self.entity_class.build(values)
            await self.validate_create(record, records)
            records.append(record)
            await self.persist(records, version)
        LOGGER.info("Created %s in %s", record.id, self.namespace)
        return record

    async def update(self, record_id: str, fields: Mapping[str, Any]) -> E:
        """Merge ``fields`` onto the record ``record_id`` and persist.

        Fields not mentioned keep their stored value. Raises ``NotFoundError``
        when the id is unknown.
        """

        changes = self.entity_class.normalize(fields)
        if changes.get("id", record_id) != record_id:
            raise ValidationError("Identifiers are immutable.", self.namespace, record_id)
        changes.pop("id", None)
        return await self.modify(record_id, lambda current: changes)

    async def modify(self, record_id: str, change: Callable[[E], Mapping[str, Any]]) -> E:
        """Read-modify-write one record, computing the changes from its stored state."""

        async with self._mutation():
            records, version = await self.load()
            index = self._index_of(records, record_id)
            before = records[index]
            changes = await self.prepare_update(before, dict(change(before)))
            after = before.merged(changes)
            await self.validate_update(before, after, records)
            records[index] = after
            await self.persist(records, version)
        LOGGER.info("Updated %s in %s (%s)", record_id, self.namespace, ", ".join(sorted(changes)) or "no changes")
        return after

    async def delete(self, record_id: str) -> None:
        """Remove the record ``record_id``; ``NotFoundError`` when it is absent."""

        async with self._mutation():
            records, version = await self.load()
            index = self._index_of(records, record_id)
            await self.before_delete(records[index])
            del records[index]
            await self.persist(records, version)
        LOGGER.info("Deleted %s from %s", record_id, self.namespace)

    def _index_of(self, records: list[E], record_id: str) -> int:
        for index, record in enumerate(records):
            if record.id == record_id:
                return index
        raise NotFoundError(f"No record '{record_id}' in '{self.namespace}'.", self.namespace, record_id)
